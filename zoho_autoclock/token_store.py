"""
Durable storage for the cached access credential.

Only one record is ever kept. ``load`` never raises: a missing, unreadable or
malformed file is reported as ``None`` so the caller simply refreshes.
"""

import datetime
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialRecord:
    access_token: str
    obtained_at: datetime.datetime
    expires_at: datetime.datetime

    @classmethod
    def issued(cls, access_token: str, expires_in: float, now: datetime.datetime) -> "CredentialRecord":
        return cls(access_token, now, now + datetime.timedelta(seconds=expires_in))

    def is_valid(self, now: datetime.datetime, buffer: datetime.timedelta) -> bool:
        return now + buffer < self.expires_at

    @property
    def preview(self) -> str:
        return f"{self.access_token[:10]}..."

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "obtained_at": self.obtained_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "expires_in": int((self.expires_at - self.obtained_at).total_seconds()),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CredentialRecord":
        """Raises ``KeyError``/``TypeError``/``ValueError`` on anything but a complete record."""
        token = data["access_token"]
        if not isinstance(token, str) or not token:
            raise ValueError("access_token must be a non-empty string")
        obtained_at = _aware(datetime.datetime.fromisoformat(data["obtained_at"]))
        expires_at = _aware(datetime.datetime.fromisoformat(data["expires_at"]))
        return cls(token, obtained_at, expires_at)


def _aware(dt: datetime.datetime) -> datetime.datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=datetime.timezone.utc)
    return dt


class FileTokenStore:
    """Keeps the record in a JSON file readable only by the owning user."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Optional[CredentialRecord]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.debug(f"No token file at {self.path}")
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Token file {self.path} unreadable, ignoring it: {e}")
            return None
        try:
            return CredentialRecord.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Token file {self.path} has no usable record, ignoring it: {e!r}")
            return None

    def save(self, record: CredentialRecord):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        # one temp file per write; concurrent savers must not share it
        fd, tmp = tempfile.mkstemp(dir=directory or ".", prefix=os.path.basename(self.path) + ".", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record.to_dict(), f, indent=2)
            os.chmod(tmp, 0o600)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise
        logger.info(f"Saved access token to {self.path} (expires {record.expires_at.isoformat()})")


class MemoryTokenStore:
    """Process-local store, used when nothing should touch the filesystem."""

    def __init__(self, record: Optional[CredentialRecord] = None):
        self.record = record
        self.saves = 0

    def load(self) -> Optional[CredentialRecord]:
        return self.record

    def save(self, record: CredentialRecord):
        self.record = record
        self.saves += 1
