"""quotesync: security quote and exchange-rate downloader."""

__version__ = "0.1.0"
