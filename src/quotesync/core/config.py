"""Configuration loading, validation, and access."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from quotesync.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

_NONE_ALIASES = {"", "none", "null", "off"}
_DEFAULT_CONFIG_FILES = ("quotesync.yml", "quotesync.yaml")


class ConnectionsConfig(BaseModel):
    """Which connection serves each capability, and whether it is wanted."""

    model_config = ConfigDict(frozen=True)

    history: str | None = "yahoo"
    current_price: str | None = "yahoo"
    history_enabled: bool = True
    current_price_enabled: bool = True

    @field_validator("history", "current_price")
    @classmethod
    def normalize_connection_id(cls, v: str | None) -> str | None:
        """Map 'none' (any case) and blanks to None: no connection picked."""
        if v is None or v.strip().lower() in _NONE_ALIASES:
            return None
        return v.strip().lower()


class DownloadConfig(BaseModel):
    """Download run settings."""

    model_config = ConfigDict(frozen=True)

    history_days: int = 5
    local_utc_offset_hours: float | None = None

    @field_validator("history_days")
    @classmethod
    def history_days_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("history_days must be >= 1")
        return v

    @field_validator("local_utc_offset_hours")
    @classmethod
    def offset_in_range(cls, v: float | None) -> float | None:
        if v is not None and (v < -12.0 or v > 14.0):
            raise ValueError("local_utc_offset_hours must be within [-12, 14]")
        return v


class HttpConfig(BaseModel):
    """Provider HTTP access configuration."""

    model_config = ConfigDict(frozen=True)

    timeout: float = 15.0
    rate_limit: int = 5
    user_agent: str = "Mozilla/5.0 (compatible; quotesync/0.1)"

    @field_validator("timeout")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be > 0")
        return v

    @field_validator("rate_limit")
    @classmethod
    def rate_limit_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("rate_limit must be >= 1")
        return v


class ProvidersConfig(BaseModel):
    """Provider endpoints. Overridable so tests can inject local URLs."""

    model_config = ConfigDict(frozen=True)

    yahoo_quotes_url: str = "http://download.finance.yahoo.com/d/quotes.csv"
    yahoo_history_url: str = "http://ichart.finance.yahoo.com/table.csv"
    google_history_url: str = "http://www.google.com/finance/historical"
    fx_quotes_url: str = "http://finance.yahoo.com/d/quotes.csv"

    @field_validator(
        "yahoo_quotes_url", "yahoo_history_url", "google_history_url", "fx_quotes_url"
    )
    @classmethod
    def url_has_scheme(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"provider URL must be http(s), got {v!r}")
        return v


class StorageConfig(BaseModel):
    """Snapshot store configuration."""

    model_config = ConfigDict(frozen=True)

    sqlite_path: str = "./data/quotesync.db"


class QuoteSyncConfig(BaseModel):
    """Root configuration for quotesync."""

    model_config = ConfigDict(frozen=True)

    connections: ConnectionsConfig = ConnectionsConfig()
    download: DownloadConfig = DownloadConfig()
    http: HttpConfig = HttpConfig()
    providers: ProvidersConfig = ProvidersConfig()
    storage: StorageConfig = StorageConfig()


_SECTIONS = frozenset(QuoteSyncConfig.model_fields)


def load_config(
    config_path: str | None = None,
    env_prefix: str = "QUOTESYNC_",
) -> QuoteSyncConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (QUOTESYNC_HTTP__TIMEOUT, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        QUOTESYNC_DOWNLOAD__HISTORY_DAYS=10  ->  download.history_days = 10
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return QuoteSyncConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Pick the config file: explicit path, then QUOTESYNC_CONFIG, then the
    first of ``quotesync.yml`` / ``quotesync.yaml`` in the working directory.

    An explicit or env-named file must exist; the working-directory files
    are optional.
    """
    for source, named in (("config_path", explicit), ("QUOTESYNC_CONFIG", _env_config_path())):
        if named is None:
            continue
        p = Path(named)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {named}",
                context={"field": source, "value": named},
            )
        return p

    return next((p for p in map(Path, _DEFAULT_CONFIG_FILES) if p.exists()), None)


def _env_config_path() -> str | None:
    return os.environ.get("QUOTESYNC_CONFIG") or None


def _load_yaml(path: Path) -> dict:
    """Read a config file and check its top level names known sections only.

    A misspelt section (``conections:``) would otherwise be dropped silently
    and the defaults used in its place.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"YAML config must be a mapping, got {type(data).__name__}",
            context={"field": "config_file", "value": str(path)},
        )
    unknown = sorted(str(k) for k in data if k not in _SECTIONS)
    if unknown:
        raise ConfigError(
            f"Unknown config section(s) {', '.join(unknown)}; expected one of "
            f"{', '.join(sorted(_SECTIONS))}",
            context={"field": "config_file", "value": str(path)},
        )
    return data


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay ``<PREFIX><SECTION>__<KEY>`` variables onto the config dict.

    Only variables naming a config section are applied, so unrelated
    ``QUOTESYNC_*`` variables (such as QUOTESYNC_CONFIG) pass through.
    Sections touched here are copied, never edited in place.
    """
    result = dict(base)

    for key, value in sorted(os.environ.items()):
        if not key.startswith(prefix):
            continue
        parts = [p.lower() for p in key[len(prefix) :].split("__")]
        if len(parts) < 2 or parts[0] not in _SECTIONS:
            logger.debug("Ignoring environment variable %s", key)
            continue

        target = result
        for part in parts[:-1]:
            current = target.get(part)
            target[part] = dict(current) if isinstance(current, dict) else {}
            target = target[part]
        target[parts[-1]] = _auto_cast(value)

    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Cast an environment value: booleans, then numbers, else the trimmed text.

    Connection ids such as ``none`` stay strings for the field validators.
    """
    text = value.strip()
    lowered = text.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    for cast in (int, float):
        try:
            return cast(text)
        except ValueError:
            continue
    return text
