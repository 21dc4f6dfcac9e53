"""quotesync.connections — Pluggable price providers.

Adding a new provider:
1. Subclass ``BaseConnection`` (or implement ``Connection`` directly).
2. Register a factory: ``registry.register("name", MyConnection.from_context)``.
3. Select it in config: ``connections.history: name``.
"""

from quotesync.connections.base import (
    BaseConnection,
    Connection,
    ConnectionContext,
    ConnectionFactory,
    ConnectionRegistry,
    HttpTransport,
    registry,
    split_symbol_override,
)
from quotesync.connections.fx import FXConnection
from quotesync.connections.google import GoogleConnection
from quotesync.connections.yahoo import YahooConnection

# Register built-in connections
registry.register("yahoo", YahooConnection.from_context)
registry.register("google", GoogleConnection.from_context)

__all__ = [
    "BaseConnection",
    "Connection",
    "ConnectionContext",
    "ConnectionFactory",
    "ConnectionRegistry",
    "FXConnection",
    "GoogleConnection",
    "HttpTransport",
    "YahooConnection",
    "registry",
    "split_symbol_override",
]
