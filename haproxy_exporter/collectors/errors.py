"""Exception hierarchy for the scrape pipeline."""


class ExporterError(Exception):
    """Base class for all exporter errors."""


class ConfigurationError(ExporterError, ValueError):
    """Invalid exporter configuration, raised at construction time."""


class UnsupportedSchemeError(ConfigurationError):
    """Scrape URI uses a scheme no transport can serve."""

    def __init__(self, scheme: str):
        self.scheme = scheme
        super().__init__(f'unsupported scheme: "{scheme}"')


class FetchError(ExporterError):
    """The statistics endpoint could not be fetched."""


class StatsReadError(ExporterError):
    """The statistics stream broke after it was opened."""
