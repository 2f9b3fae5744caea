"""
Runtime settings.

Values come from the process environment (optionally seeded from a ``.env``
file) and are frozen into a single ``Settings`` object that is handed to the
token manager, the attendance client and the scheduler.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from .errors import ConfigurationError

# ----------------- DEFAULTS -----------------
DEFAULT_TOKEN_FILE = "access_token.json"
DEFAULT_CHECKIN_TIME = "0 9 * * 1-5"    # 09:00 Mon-Fri
DEFAULT_CHECKOUT_TIME = "0 18 * * 1-5"  # 18:00 Mon-Fri
DEFAULT_TIMEZONE = "Europe/Berlin"

DEFAULT_ACCOUNTS_URL = "https://accounts.zoho.eu"
DEFAULT_PEOPLE_URL = "https://people.zoho.eu"
TOKEN_PATH = "/oauth/v2/token"
ATTENDANCE_PATH = "/people/api/attendance"

DEFAULT_HTTP_TIMEOUT = 30            # seconds
DEFAULT_REFRESH_BUFFER = 5 * 60      # seconds
DEFAULT_MISFIRE_GRACE = 60           # seconds
DEFAULT_LOG_LEVEL = "INFO"

CREDENTIAL_KEYS = ("ZOHO_CLIENT_ID", "ZOHO_CLIENT_SECRET", "ZOHO_REFRESH_TOKEN")
# ------------------------------------------


@dataclass(frozen=True)
class Settings:
    client_id: Optional[str] = None
    client_secret: Optional[str] = field(default=None, repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)
    token_file: str = DEFAULT_TOKEN_FILE
    checkin_time: str = DEFAULT_CHECKIN_TIME
    checkout_time: str = DEFAULT_CHECKOUT_TIME
    timezone: str = DEFAULT_TIMEZONE
    accounts_url: str = DEFAULT_ACCOUNTS_URL
    people_url: str = DEFAULT_PEOPLE_URL
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    refresh_buffer: float = DEFAULT_REFRESH_BUFFER
    misfire_grace: float = DEFAULT_MISFIRE_GRACE
    log_level: str = DEFAULT_LOG_LEVEL
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None,
                 dotenv_path: Optional[str] = None) -> "Settings":
        """Build settings from ``environ`` (defaults to ``os.environ`` after loading ``.env``)."""
        if environ is None:
            # exported variables win over the .env file
            load_dotenv(dotenv_path, override=False)
            environ = os.environ

        def get(key: str, default: Optional[str] = None) -> Optional[str]:
            value = environ.get(key)
            if value is None or not value.strip():
                return default
            return value.strip()

        settings = cls(
            client_id=get("ZOHO_CLIENT_ID"),
            client_secret=get("ZOHO_CLIENT_SECRET"),
            refresh_token=get("ZOHO_REFRESH_TOKEN"),
            token_file=get("TOKEN_FILE", DEFAULT_TOKEN_FILE),
            checkin_time=get("CHECKIN_TIME", DEFAULT_CHECKIN_TIME),
            checkout_time=get("CHECKOUT_TIME", DEFAULT_CHECKOUT_TIME),
            timezone=get("TIMEZONE", DEFAULT_TIMEZONE),
            accounts_url=get("ZOHO_ACCOUNTS_URL", DEFAULT_ACCOUNTS_URL).rstrip("/"),
            people_url=get("ZOHO_PEOPLE_URL", DEFAULT_PEOPLE_URL).rstrip("/"),
            http_timeout=_number(get, "HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
            refresh_buffer=_number(get, "TOKEN_REFRESH_BUFFER", DEFAULT_REFRESH_BUFFER),
            misfire_grace=_number(get, "MISFIRE_GRACE_SECONDS", DEFAULT_MISFIRE_GRACE),
            log_level=get("LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
            log_file=get("LOG_FILE"),
        )
        settings.validate()
        return settings

    @property
    def token_url(self) -> str:
        return self.accounts_url + TOKEN_PATH

    @property
    def attendance_url(self) -> str:
        return self.people_url + ATTENDANCE_PATH

    def zone(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(f"Unknown time zone {self.timezone!r}") from e

    def validate(self):
        """Reject settings that can never work, such as an unknown time zone."""
        self.zone()
        return self

    def missing_credentials(self):
        values = (self.client_id, self.client_secret, self.refresh_token)
        return [key for key, value in zip(CREDENTIAL_KEYS, values) if not value]

    def require_credentials(self):
        missing = self.missing_credentials()
        if missing:
            raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")


def _number(get, key: str, default: float) -> float:
    raw = get(key)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from None
    if value < 0:
        raise ConfigurationError(f"{key} must not be negative, got {raw!r}")
    return value
