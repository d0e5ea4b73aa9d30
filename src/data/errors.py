"""exception taxonomy for sync and backfill runs."""


class SyncError(Exception):
    """base class for all sync errors."""


class ConfigurationError(SyncError):
    """required configuration (endpoint, api key) is missing. fatal for the run."""


class SyncInProgressError(SyncError):
    """another run holds the advisory lock for this feed."""


class ApiRequestError(SyncError):
    """an outbound api request did not produce a usable payload."""


class TransportError(ApiRequestError):
    """network failure or timeout."""


class RateLimitError(ApiRequestError):
    """http 429 persisted past the retry budget."""


class UpstreamError(ApiRequestError):
    """non-200 status other than 429."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class DecodeError(ApiRequestError):
    """body missing or not valid json."""


class StoreError(SyncError):
    """content store rejected an insert or update."""


class ParseError(SyncError):
    """archive page did not contain the expected fields."""
