"""
Cron-driven scheduling of the check-in and check-out actions.

Each action gets its own ``ActionRunner`` thread: it sleeps until the next
instant matching its cron expression (in the configured zone), runs the job to
completion and re-arms. The two runners are independent of each other.
"""

import datetime
import logging
import re
import signal
import threading
from typing import Callable, Dict, Optional

from apscheduler.triggers.cron import CronTrigger

from .attendance import CHECK_IN, CHECK_OUT
from .config import Settings
from .errors import ScheduleError

logger = logging.getLogger(__name__)

MAX_SLEEP = 30  # seconds between wake-ups while waiting for a fire time

# cron numbering: 0 and 7 are Sunday
_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")
_LABELS = {CHECK_IN: "check-in", CHECK_OUT: "check-out"}


def _day_of_week(field: str) -> str:
    """Rewrite numeric cron weekdays as names; APScheduler numbers Monday as 0."""
    days = []
    for part in field.split(","):
        expr, slash, step = part.partition("/")
        if slash and not step.isdigit():
            raise ValueError(f"invalid step in {part!r}")
        if expr in ("*", "?"):
            if not slash:
                return "*"
            first, last = 0, 6
        elif re.fullmatch(r"\d+", expr):
            first = int(expr)
            last = 6 if slash else first
        elif re.fullmatch(r"\d+-\d+", expr):
            first, last = (int(x) for x in expr.split("-"))
        else:
            days.append(part.lower())
            continue
        if first > 7 or last > 7 or first > last:
            raise ValueError(f"day of week {part!r} out of range 0-7")
        increment = int(step) if slash else 1
        if increment < 1:
            raise ValueError(f"invalid step in {part!r}")
        days.extend(_WEEKDAYS[d % 7] for d in range(first, last + 1, increment))
    return ",".join(dict.fromkeys(days))


def parse_expression(expression: str, tz: datetime.tzinfo) -> CronTrigger:
    """Turn a 5-field cron expression into a trigger, or raise ``ScheduleError``."""
    fields = expression.split()
    if len(fields) != 5:
        raise ScheduleError(f"Invalid cron expression {expression!r}: expected 5 fields, got {len(fields)}")
    minute, hour, day, month, day_of_week = fields
    try:
        return CronTrigger(minute=minute, hour=hour, day=day, month=month,
                           day_of_week=_day_of_week(day_of_week), timezone=tz)
    except ValueError as e:
        raise ScheduleError(f"Invalid cron expression {expression!r}: {e}") from e


def validate_expression(expression: str, tz: Optional[datetime.tzinfo] = None) -> bool:
    try:
        parse_expression(expression, tz or datetime.timezone.utc)
    except ScheduleError:
        return False
    return True


class ActionRunner:
    def __init__(self, direction: str, expression: str, trigger: CronTrigger,
                 job: Callable[[str], object], clock: Callable[[], datetime.datetime],
                 stop_event: threading.Event, misfire_grace: float = 60,
                 wait: Optional[Callable[[float], bool]] = None):
        self.direction = direction
        self.expression = expression
        self.trigger = trigger
        self.job = job
        self.clock = clock
        self.stop_event = stop_event
        self.misfire_grace = misfire_grace
        self.wait = wait or stop_event.wait
        self.next_fire: Optional[datetime.datetime] = None

    @property
    def label(self) -> str:
        return _LABELS.get(self.direction, self.direction)

    def arm(self) -> Optional[datetime.datetime]:
        self.next_fire = self.trigger.get_next_fire_time(None, self.clock())
        return self.next_fire

    def wait_for_next(self) -> bool:
        """Sleep until ``next_fire``. Returns False if stopped first."""
        while True:
            remaining = (self.next_fire - self.clock()).total_seconds()
            if remaining <= 0:
                return True
            if self.wait(min(MAX_SLEEP, max(0.5, remaining))):
                return False

    def fire(self):
        """Run the job for the armed instant (unless woken too late) and re-arm."""
        fire_time = self.next_fire
        late = (self.clock() - fire_time).total_seconds()
        result = None
        if late > self.misfire_grace:
            logger.warning(f"Skipping {self.label} due at {fire_time.isoformat()}: woke up {int(late)}s late")
        else:
            result = self.job(self.direction)

        now = self.clock()
        upcoming = self.trigger.get_next_fire_time(fire_time, now)
        if upcoming is not None and upcoming < now:
            # still busy when later occurrences came due
            logger.warning(f"Skipping {self.label} occurrence(s) from {upcoming.isoformat()} "
                           f"missed while the previous run was in progress")
            upcoming = self.trigger.get_next_fire_time(None, now)
        self.next_fire = upcoming
        return result

    def run(self):
        self.arm()
        while not self.stop_event.is_set():
            if self.next_fire is None:
                logger.warning(f"Schedule {self.expression!r} has no future {self.label} time, runner exiting")
                return
            wait_seconds = (self.next_fire - self.clock()).total_seconds()
            logger.info(f"Next {self.label} at {self.next_fire.strftime('%Y-%m-%d %H:%M:%S %Z')} "
                        f"(in {int(wait_seconds)}s)")
            if not self.wait_for_next():
                break
            self.fire()
        logger.info(f"{self.label} runner stopped")


class Scheduler:
    """Arms both actions; invalid expressions are rejected in the constructor."""

    def __init__(self, settings: Settings, job: Callable[[str], object],
                 clock: Optional[Callable[[], datetime.datetime]] = None,
                 stop_event: Optional[threading.Event] = None):
        self.settings = settings
        self.tz = settings.zone()
        self.clock = clock or (lambda: datetime.datetime.now(self.tz))
        self.stop_event = stop_event or threading.Event()
        self.runners = [
            ActionRunner(direction, expression, parse_expression(expression, self.tz), job,
                         self.clock, self.stop_event, settings.misfire_grace)
            for direction, expression in ((CHECK_IN, settings.checkin_time),
                                          (CHECK_OUT, settings.checkout_time))
        ]
        self.threads = []

    def next_fire_times(self) -> Dict[str, Optional[datetime.datetime]]:
        now = self.clock()
        return {r.direction: r.next_fire or r.trigger.get_next_fire_time(None, now) for r in self.runners}

    def start(self):
        for runner in self.runners:
            t = threading.Thread(target=runner.run, name=f"autoclock-{runner.direction}", daemon=True)
            t.start()
            self.threads.append(t)
        logger.info("Cron jobs scheduled:")
        logger.info(f"   - Check-in: {self.settings.checkin_time}")
        logger.info(f"   - Check-out: {self.settings.checkout_time}")
        logger.info(f"   - Timezone: {self.settings.timezone}")
        logger.info("Attendance scheduler started")

    def stop(self):
        self.stop_event.set()

    def _handle_signal(self, signum, frame):
        logger.info(f"Received signal {signum}, stopping attendance scheduler...")
        self.stop()

    def run_forever(self):
        """Block until SIGINT/SIGTERM. In-flight jobs are not waited for."""
        signal.signal(signal.SIGINT, self._handle_signal)
        signal.signal(signal.SIGTERM, self._handle_signal)
        self.start()
        while not self.stop_event.wait(1):
            pass
        logger.info("Attendance scheduler stopped")
