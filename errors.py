# Filename: errors.py

class SniperError(Exception):
    """Base class for every error raised inside the launch radar."""


class SourceError(SniperError):
    """A data source could not produce token records."""

    def __init__(self, source: str, message: str):
        super().__init__(f"[{source}] {message}")
        self.source = source


class ProviderUnavailable(SourceError):
    """Transport error, timeout or non-200 status from a provider."""


class MalformedPayload(SourceError):
    """Provider answered, but not with the shape we expect."""


class DeliveryFailure(SniperError):
    """The notification channel rejected or never acknowledged a message."""
