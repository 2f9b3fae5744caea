"""Scheduled Zoho People check-in/check-out with a self-refreshing OAuth token."""

from .attendance import CHECK_IN, CHECK_OUT, AttendanceClient, AttendanceEvent
from .config import Settings
from .errors import (AttendanceError, AutoClockError, ConfigurationError, CredentialRefreshError,
                     ScheduleError, StorageError)
from .schedule import Scheduler, parse_expression, validate_expression
from .token_manager import TokenManager
from .token_store import CredentialRecord, FileTokenStore, MemoryTokenStore

__version__ = "1.0.0"

__all__ = [
    "CHECK_IN", "CHECK_OUT", "AttendanceClient", "AttendanceEvent", "Settings",
    "AttendanceError", "AutoClockError", "ConfigurationError", "CredentialRefreshError",
    "ScheduleError", "StorageError", "Scheduler", "parse_expression", "validate_expression", "TokenManager",
    "CredentialRecord", "FileTokenStore", "MemoryTokenStore",
]
