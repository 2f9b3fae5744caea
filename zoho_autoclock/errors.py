"""Exception hierarchy for the autoclock service."""

from typing import Any, Optional


class AutoClockError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(AutoClockError):
    """A required setting is missing or malformed. Retrying will not help."""


class ScheduleError(ConfigurationError):
    """A cron expression or time zone could not be armed."""


class _HTTPFailure(AutoClockError):
    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail

    def __str__(self) -> str:
        msg = super().__str__()
        if self.status_code is not None:
            msg = f"{msg} (HTTP {self.status_code})"
        if self.detail:
            msg = f"{msg}: {self.detail}"
        return msg


class CredentialRefreshError(_HTTPFailure):
    """The token endpoint could not be reached or refused the refresh grant."""


class AttendanceError(_HTTPFailure):
    """The attendance endpoint could not be reached or rejected the request."""


class StorageError(AutoClockError):
    """A freshly issued token could not be written to the token file."""
