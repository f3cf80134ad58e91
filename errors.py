"""Exception types raised by the sync pipeline."""
from typing import Optional


class SyncError(Exception):
    """Base class for pipeline failures that abort a run."""


class ConfigurationError(SyncError):
    """Required configuration or reference data is missing."""


class UpstreamFetchError(SyncError):
    """A provider request failed while fetching source events."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class CatalogStoreError(SyncError):
    """The Airtable API rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class InvalidPayloadError(SyncError):
    """An inbound webhook or submission payload is malformed."""
