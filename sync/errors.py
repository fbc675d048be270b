"""Error types raised by the calendar sync engine."""
from typing import Optional


class SyncError(Exception):
    """Base class for calendar sync errors."""


class AuthError(SyncError):
    """No usable access token was supplied."""


class ConfigError(SyncError):
    """Invalid configuration or sync arguments."""


class ProviderError(SyncError):
    """A calendar provider request failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class MalformedEventError(SyncError):
    """A provider event is missing fields required for normalization."""

    def __init__(self, message: str, event_id: Optional[str] = None):
        super().__init__(message)
        self.event_id = event_id
