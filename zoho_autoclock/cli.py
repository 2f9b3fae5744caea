"""
Command line entry point.

    zoho-autoclock                 Start the cron scheduler (default)
    zoho-autoclock checkin         Manual check-in
    zoho-autoclock checkout        Manual check-out
    zoho-autoclock schedule        Start the cron scheduler
    zoho-autoclock test            Test configuration and credentials
    zoho-autoclock help            Show this help message
"""

import argparse
import logging
import sys
from typing import List, Optional

from .attendance import CHECK_IN, CHECK_OUT, AttendanceClient
from .config import Settings
from .errors import AutoClockError
from .log import setup_logging
from .schedule import Scheduler, validate_expression
from .token_manager import TokenManager

logger = logging.getLogger(__name__)

EPILOG = """\
commands:
  schedule, start        Start the cron scheduler (default)
  checkin, check-in      Manual check-in
  checkout, check-out    Manual check-out
  test                   Test configuration and credentials
  help                   Show this help message

environment variables:
  ZOHO_CLIENT_ID, ZOHO_CLIENT_SECRET, ZOHO_REFRESH_TOKEN   OAuth credentials (required)
  TOKEN_FILE       Access token cache (default: access_token.json)
  CHECKIN_TIME     Cron schedule for check-in (default: 0 9 * * 1-5)
  CHECKOUT_TIME    Cron schedule for check-out (default: 0 18 * * 1-5)
  TIMEZONE         Timezone for schedules (default: Europe/Berlin)
  LOG_LEVEL, LOG_FILE, HTTP_TIMEOUT, ZOHO_ACCOUNTS_URL, ZOHO_PEOPLE_URL
"""

COMMANDS = {
    None: "schedule",
    "schedule": "schedule",
    "start": "schedule",
    "checkin": "checkin",
    "check-in": "checkin",
    "checkout": "checkout",
    "check-out": "checkout",
    "test": "test",
    "help": "help",
}


class _Parser(argparse.ArgumentParser):
    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(prog="zoho-autoclock", description="Zoho People attendance manager",
                     epilog=EPILOG, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("command", nargs="?", help="command to run (default: schedule)")
    parser.add_argument("--env-file", help="read environment variables from this file (default: .env)")
    parser.add_argument("--log-level", help="override LOG_LEVEL")
    parser.add_argument("--force-refresh", action="store_true",
                        help="test: ignore the cached token and request a new one")
    return parser


def cmd_action(client: AttendanceClient, direction: str) -> int:
    label = "Check-in" if direction == CHECK_IN else "Check-out"
    logger.info(f"Manual {label.lower()} initiated...")
    try:
        client.trigger_action(direction)
    except AutoClockError as e:
        logger.error(f"{label} failed: {e}")
        return 1
    logger.info(f"{label} completed successfully")
    return 0


def cmd_schedule(settings: Settings, client: AttendanceClient) -> int:
    try:
        scheduler = Scheduler(settings, client.run_scheduled)
    except AutoClockError as e:
        logger.error(f"Cannot start scheduler: {e}")
        return 1
    scheduler.run_forever()
    return 0


def cmd_test(settings: Settings, tokens: TokenManager, force_refresh: bool = False) -> int:
    print("Testing configuration...")
    print(f"CHECKIN_TIME: {settings.checkin_time}")
    print(f"CHECKOUT_TIME: {settings.checkout_time}")
    print(f"TIMEZONE: {settings.timezone}")
    print(f"TOKEN_FILE: {settings.token_file}")

    ok = True
    tz = settings.zone()
    for name, expression in (("Check-in", settings.checkin_time), ("Check-out", settings.checkout_time)):
        if validate_expression(expression, tz):
            print(f"[OK] {name} schedule is valid")
        else:
            print(f"[FAIL] {name} schedule is invalid")
            ok = False

    if ok:
        for direction, when in Scheduler(settings, lambda d: None).next_fire_times().items():
            label = "check-in" if direction == CHECK_IN else "check-out"
            shown = when.strftime("%Y-%m-%d %H:%M:%S %Z") if when else "never"
            print(f"Next {label}: {shown}")

    missing = settings.missing_credentials()
    if missing:
        print(f"[WARN] Missing credentials: {', '.join(missing)}")

    try:
        token = tokens.refresh() if force_refresh else tokens.get_valid_credential()
    except AutoClockError as e:
        print(f"[FAIL] Token retrieval failed: {e}")
        return 1
    print("[OK] Token retrieval successful")
    print(f"Token preview: {token[:10]}...")
    return 0 if ok else 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is not None and args.command.lower() not in COMMANDS:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        print(f'Use "{parser.prog} help" for available commands', file=sys.stderr)
        return 1
    command = COMMANDS[args.command.lower() if args.command else None]
    if command == "help":
        parser.print_help()
        return 0

    try:
        settings = Settings.from_env(dotenv_path=args.env_file)
    except AutoClockError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    setup_logging(args.log_level or settings.log_level, settings.log_file)

    tokens = TokenManager(settings)
    client = AttendanceClient(settings, tokens)

    if command == "checkin":
        return cmd_action(client, CHECK_IN)
    if command == "checkout":
        return cmd_action(client, CHECK_OUT)
    if command == "test":
        return cmd_test(settings, tokens, force_refresh=args.force_refresh)
    return cmd_schedule(settings, client)


if __name__ == "__main__":
    sys.exit(main())
