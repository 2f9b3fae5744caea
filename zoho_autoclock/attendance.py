"""Check-in / check-out calls against the Zoho People attendance API."""

import datetime
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import requests

from .config import Settings
from .errors import AttendanceError, AutoClockError
from .token_manager import TokenManager, response_detail

logger = logging.getLogger(__name__)

CHECK_IN = "in"
CHECK_OUT = "out"
DIRECTIONS = (CHECK_IN, CHECK_OUT)

TIMESTAMP_FORMAT = "%d/%m/%Y %H:%M:%S"
ZOHO_DATE_FORMAT = "dd/MM/yyyy HH:mm:ss"  # same layout, in Zoho's notation

_FIELDS = {CHECK_IN: "checkIn", CHECK_OUT: "checkOut"}
_LABELS = {CHECK_IN: "CHECK IN", CHECK_OUT: "CHECK OUT"}


@dataclass
class AttendanceEvent:
    direction: str
    timestamp: str
    status_code: Optional[int] = None
    payload: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.status_code is not None and 200 <= self.status_code < 300


def local_now() -> datetime.datetime:
    # wall clock of the host, not the schedule's zone
    return datetime.datetime.now()


def format_timestamp(dt: datetime.datetime) -> str:
    return dt.strftime(TIMESTAMP_FORMAT)


def build_payload(direction: str, timestamp: str) -> dict:
    if direction not in _FIELDS:
        raise ValueError(f"direction must be one of {DIRECTIONS}, got {direction!r}")
    return {"dateFormat": ZOHO_DATE_FORMAT, _FIELDS[direction]: timestamp}


class AttendanceClient:
    def __init__(self, settings: Settings, tokens: TokenManager,
                 session: Optional[requests.Session] = None,
                 clock: Callable[[], datetime.datetime] = local_now):
        self.settings = settings
        self.tokens = tokens
        self.session = session or tokens.session
        self.clock = clock

    def trigger_action(self, direction: str, timestamp: Optional[str] = None) -> AttendanceEvent:
        """Send one check-in or check-out (stamped now unless ``timestamp`` is given). Raises on any failure."""
        label = _LABELS.get(direction, direction)
        timestamp = timestamp or format_timestamp(self.clock())
        payload = build_payload(direction, timestamp)

        try:
            token = self.tokens.get_valid_credential()
        except AutoClockError as e:
            logger.error(f"{label} aborted, no access token: {e}")
            raise

        headers = {
            "Authorization": f"Zoho-oauthtoken {token}",
            "Content-Type": "application/x-www-form-urlencoded",
        }
        try:
            r = self.session.post(self.settings.attendance_url, data=payload, headers=headers,
                                  timeout=self.settings.http_timeout)
        except requests.RequestException as e:
            logger.error(f"{label} FAILED: {e}")
            raise AttendanceError(f"{label} request failed: {e}") from e

        detail = response_detail(r)
        event = AttendanceEvent(direction, timestamp, r.status_code, detail)
        if not event.ok:
            logger.error(f"{label} FAILED. Status {r.status_code}. Body: {_dump(detail)}")
            raise AttendanceError(f"{label} rejected", status_code=r.status_code, detail=detail)

        logger.info(f"{label} - Status: {r.status_code}")
        logger.info(f"Time sent: {timestamp}")
        logger.info(f"Response: {_dump(detail)}")
        return event

    def check_in(self) -> AttendanceEvent:
        return self.trigger_action(CHECK_IN)

    def check_out(self) -> AttendanceEvent:
        return self.trigger_action(CHECK_OUT)

    def run_scheduled(self, direction: str) -> AttendanceEvent:
        """Job body for the scheduler: never raises, failures end up on the event."""
        label = _LABELS.get(direction, direction)
        logger.info(f"Automated {label.lower()} triggered")
        timestamp = format_timestamp(self.clock())
        try:
            return self.trigger_action(direction, timestamp)
        except AutoClockError as e:
            logger.error(f"Automated {label.lower()} failed: {e}")
            error = e
        except Exception as e:
            logger.exception(f"Automated {label.lower()} crashed")
            error = e
        return AttendanceEvent(direction, timestamp,
                               status_code=getattr(error, "status_code", None),
                               payload=getattr(error, "detail", None), error=str(error))


def _dump(detail) -> str:
    if isinstance(detail, (dict, list)):
        return json.dumps(detail, indent=2, ensure_ascii=False)
    return str(detail)[:1200]
