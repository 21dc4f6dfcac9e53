"""Click-based CLI for quotesync.

Thin wrapper around library modules. Loads a YAML host model, runs a
download task over it, and writes the updated model back.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from quotesync.core import ConfigError, load_config

        try:
            ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
        except ConfigError as e:
            raise click.ClickException(f"Invalid configuration: {e}") from e
    return ctx.obj["config"]


def _load_host(path: str):
    from quotesync.core import ConfigError
    from quotesync.host import load_host

    try:
        return load_host(path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


class _RichProgressSink:
    """Forwards task progress reports to a rich progress bar."""

    def __init__(self, progress: Progress, task_id) -> None:
        self._progress = progress
        self._task_id = task_id

    def report(self, percent: float, message: str) -> None:
        self._progress.update(self._task_id, completed=percent * 100, description=message)


def _print_summary(summary) -> None:
    from quotesync.core import RunState

    style = {
        RunState.COMPLETED: "green",
        RunState.CANCELLED: "yellow",
        RunState.FAILED: "red",
    }.get(summary.state, "white")
    console.print(f"[{style}]{summary.message}[/{style}]")

    table = Table(title="Download summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("State", summary.state.value)
    table.add_row("Entries", str(summary.total))
    table.add_row("Obtained", str(summary.succeeded))
    table.add_row("Skipped", str(summary.skipped))
    table.add_row("Errors", str(summary.errored))
    console.print(table)


async def _run_task(build_task) -> object:
    """Build a task around a rich progress sink and run it."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        console=console,
    ) as progress:
        task_id = progress.add_task("Starting...", total=100)
        task = build_task(_RichProgressSink(progress, task_id))
        return await task.run()


def _finish(host, instruments: str, summary, dry_run: bool) -> None:
    from quotesync.core import RunState
    from quotesync.host import dump_host

    _print_summary(summary)
    if dry_run:
        console.print("[yellow]Dry run: instrument file not updated.[/yellow]")
    else:
        dump_host(host, instruments)
        console.print(f"[green]✓[/green] Updated {instruments}")
    if summary.state == RunState.FAILED:
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="QUOTESYNC_CONFIG",
    default=None,
    help="Path to quotesync.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose output.",
)
@click.version_option(package_name="quotesync")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """quotesync: download security prices and exchange rates."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# download
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--instruments",
    "-i",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="YAML file holding the currency table and exchanges.",
)
@click.option(
    "--save-history/--no-save-history",
    default=True,
    help="Append downloaded prices to the snapshot store.",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Download and report without writing the instrument file.",
)
@click.pass_context
def download(
    ctx: click.Context, instruments: str, save_history: bool, dry_run: bool
) -> None:
    """Download price history and current prices for securities."""
    config = _load_config(ctx)
    host = _load_host(instruments)

    async def _run():
        from quotesync.download import DownloadQuotesTask
        from quotesync.host import SqliteSnapshotStore

        store = SqliteSnapshotStore(config.storage.sqlite_path) if save_history else None
        return await _run_task(
            lambda sink: DownloadQuotesTask.from_config(
                config, host.table, host.symbol_map, progress=sink, snapshot_store=store
            )
        )

    summary = _run_async(_run())
    _finish(host, instruments, summary, dry_run)


# ---------------------------------------------------------------------------
# rates
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--instruments",
    "-i",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="YAML file holding the currency table and exchanges.",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Download and report without writing the instrument file.",
)
@click.pass_context
def rates(ctx: click.Context, instruments: str, dry_run: bool) -> None:
    """Download exchange rates for currencies against the base currency."""
    config = _load_config(ctx)
    host = _load_host(instruments)

    async def _run():
        from quotesync.download import DownloadRatesTask

        return await _run_task(
            lambda sink: DownloadRatesTask.from_config(
                config, host.table, host.symbol_map, progress=sink
            )
        )

    summary = _run_async(_run())
    _finish(host, instruments, summary, dry_run)


# ---------------------------------------------------------------------------
# quote
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("ticker")
@click.option(
    "--connection",
    "connection_id",
    type=str,
    default=None,
    help="Connection to ask. Default: the configured current-price connection.",
)
@click.option(
    "--currency",
    type=str,
    default="USD",
    show_default=True,
    help="Currency the quote is expressed in.",
)
@click.pass_context
def quote(
    ctx: click.Context, ticker: str, connection_id: str | None, currency: str
) -> None:
    """Fetch and print the current price of a single TICKER."""
    config = _load_config(ctx)
    name = connection_id or config.connections.current_price
    if not name:
        raise click.UsageError("No current-price connection configured; pass --connection")

    async def _run():
        from quotesync.connections import ConnectionContext, registry
        from quotesync.core import DownloadError, InstrumentKind
        from quotesync.host import MemoryCurrencyTable, MemoryInstrument, TagSymbolMap

        if name not in registry:
            raise click.UsageError(
                f"Unknown connection '{name}'. Available: {', '.join(registry.list_names())}"
            )
        code = currency.strip().upper()
        table = MemoryCurrencyTable(
            [
                MemoryInstrument(
                    id=code, name=code, kind=InstrumentKind.CURRENCY, currency_code=code
                ),
                MemoryInstrument(id=ticker, name=ticker, ticker=ticker),
            ],
            base_id=code,
        )
        context = ConnectionContext(config, table, TagSymbolMap([]))
        conn = registry.create(name, context)
        if not conn.can_get_current_price():
            raise click.UsageError(f"{conn.display_name} does not provide current prices")

        try:
            record = await conn.get_current_price(table.get_by_id(ticker), False)
        except DownloadError as e:
            console.print(f"[red]Error fetching {ticker}: {e}[/red]")
            raise SystemExit(1)

        if record is None or not record.is_valid:
            console.print(f"[yellow]No price available for {ticker}.[/yellow]")
            raise SystemExit(1)

        out = Table(title=f"{ticker} via {conn.display_name}")
        out.add_column("Field", style="bold")
        out.add_column("Value", justify="right")
        out.add_row("Price", f"{record.close_price:,.4f} {code}")
        out.add_row("As of", record.timestamp.strftime("%Y-%m-%d %H:%M"))
        out.add_row("Fetched", datetime.now().strftime("%Y-%m-%d %H:%M"))
        console.print(out)

    _run_async(_run())


# ---------------------------------------------------------------------------
# connections
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def connections(ctx: click.Context) -> None:
    """List registered connections and the configured selection."""
    from quotesync.connections import ConnectionContext, registry
    from quotesync.core import InstrumentKind
    from quotesync.host import MemoryCurrencyTable, MemoryInstrument, TagSymbolMap

    config = _load_config(ctx)
    table = MemoryCurrencyTable(
        [MemoryInstrument(id="USD", name="USD", kind=InstrumentKind.CURRENCY, currency_code="USD")],
        base_id="USD",
    )
    context = ConnectionContext(config, table, TagSymbolMap([]))

    out = Table(title="Connections")
    out.add_column("Id", style="bold")
    out.add_column("Name")
    out.add_column("History", justify="center")
    out.add_column("Current price", justify="center")
    out.add_column("Selected for")

    for name in registry.list_names():
        conn = registry.create(name, context)
        selected = []
        if config.connections.history == name:
            selected.append("history" if config.connections.history_enabled else "history (off)")
        if config.connections.current_price == name:
            selected.append(
                "current price"
                if config.connections.current_price_enabled
                else "current price (off)"
            )
        out.add_row(
            name,
            conn.display_name,
            "✓" if conn.can_get_history() else "",
            "✓" if conn.can_get_current_price() else "",
            ", ".join(selected),
        )
    console.print(out)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
