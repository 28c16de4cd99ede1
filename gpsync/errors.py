"""Exception types raised across the sync pipeline."""


class GpSyncError(Exception):
    """Base class for every error raised by gpsync."""


class TransportError(GpSyncError):
    """Connectivity or timeout failure after the retry budget is spent."""


class ThrottledError(GpSyncError):
    """Server answered 429. Handled inside the fetch client, never surfaced."""

    def __init__(self, retry_after: float | None = None) -> None:
        super().__init__("too many requests")
        self.retry_after = retry_after


class ExtractionError(GpSyncError):
    """Album page could not be turned into an album record."""


class ResolveError(GpSyncError):
    """Media for one item could not be probed or downloaded."""


class UploadError(GpSyncError):
    """Destination rejected the upload of one item."""


class DestinationError(GpSyncError):
    """Destination API call (other than upload) failed."""


class ConfigurationError(GpSyncError):
    """Invalid or missing configuration. Fatal at startup."""
