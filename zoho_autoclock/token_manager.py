"""
Zoho OAuth access-token cache.

``get_valid_credential`` returns the stored token while it is comfortably
inside its lifetime and otherwise exchanges the refresh token for a new one.
Failures are raised to the caller; nothing is retried here.
"""

import datetime
import logging
import math
from typing import Callable, Optional

import requests

from .config import Settings
from .errors import CredentialRefreshError, StorageError
from .token_store import CredentialRecord, FileTokenStore

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600  # Zoho access tokens live one hour


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def response_detail(r: requests.Response):
    """JSON body when there is one, else the raw text."""
    try:
        return r.json()
    except ValueError:
        return r.text


class TokenManager:
    def __init__(self, settings: Settings, store=None, session: Optional[requests.Session] = None,
                 clock: Callable[[], datetime.datetime] = utcnow):
        self.settings = settings
        self.store = store if store is not None else FileTokenStore(settings.token_file)
        self.session = session or requests.Session()
        self.clock = clock
        self.buffer = datetime.timedelta(seconds=settings.refresh_buffer)

    def get_valid_credential(self) -> str:
        record = self.store.load()
        if record is not None:
            if record.is_valid(self.clock(), self.buffer):
                logger.debug(f"Using cached access token {record.preview} (expires {record.expires_at.isoformat()})")
                return record.access_token
            logger.info(f"Cached access token expires at {record.expires_at.isoformat()}, refreshing")
        else:
            logger.info("No cached access token, refreshing")
        return self.refresh()

    def refresh(self) -> str:
        # raises ConfigurationError before any network traffic
        self.settings.require_credentials()

        url = self.settings.token_url
        params = {
            "refresh_token": self.settings.refresh_token,
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
            "grant_type": "refresh_token",
        }
        logger.info(f"Requesting new access token from {url}")
        try:
            r = self.session.post(url, data=params, timeout=self.settings.http_timeout)
        except requests.RequestException as e:
            raise CredentialRefreshError(f"Token refresh failed: {e}") from e

        detail = response_detail(r)
        if not 200 <= r.status_code < 300:
            logger.error(f"Token refresh returned status {r.status_code}. Body: {str(detail)[:400]}")
            raise CredentialRefreshError("Token refresh failed", status_code=r.status_code, detail=detail)

        # Zoho reports some grant errors as 200 {"error": ...}
        if not isinstance(detail, dict) or not detail.get("access_token"):
            logger.error(f"Token refresh response has no access_token. Body: {str(detail)[:400]}")
            raise CredentialRefreshError("Token refresh returned no access token",
                                         status_code=r.status_code, detail=detail)

        try:
            expires_in = float(detail.get("expires_in", DEFAULT_EXPIRES_IN))
            if not math.isfinite(expires_in) or expires_in <= 0:
                raise ValueError(expires_in)
            record = CredentialRecord.issued(detail["access_token"], expires_in, self.clock())
        except (TypeError, ValueError, OverflowError):
            raise CredentialRefreshError("Token refresh returned an invalid expires_in",
                                         status_code=r.status_code, detail=detail) from None

        try:
            self.store.save(record)
        except OSError as e:
            logger.error(f"Could not persist access token: {e}")
            raise StorageError(f"Could not persist access token: {e}") from e
        logger.info(f"Obtained access token {record.preview} valid for {int(expires_in)}s")
        return record.access_token
