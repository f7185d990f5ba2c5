# core/errors.py


class ExporterError(Exception):
    """Base class for exporter errors."""


class FetchError(ExporterError):
    """The catalog could not be fetched or decoded."""


class PriceParseError(ExporterError, ValueError):
    """An item's price string is not a number."""

    def __init__(self, raw: str, item_id: int | None = None):
        self.raw = raw
        self.item_id = item_id
        super().__init__(f"could not convert price string [{raw}] to float")


class ConfigError(ExporterError):
    """Startup configuration or credentials are unusable."""
