import logging

import pytest

from zoho_autoclock import cli
from zoho_autoclock.attendance import CHECK_IN, AttendanceClient
from zoho_autoclock.log import LOGGER_NAME
from zoho_autoclock.token_manager import TokenManager
from zoho_autoclock.token_store import CredentialRecord, MemoryTokenStore

from .conftest import FakeResponse, FakeSession

TOKEN_URL = "https://accounts.zoho.eu/oauth/v2/token"
ATTENDANCE_URL = "https://people.zoho.eu/people/api/attendance"


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    for key in ("ZOHO_CLIENT_ID", "ZOHO_CLIENT_SECRET", "ZOHO_REFRESH_TOKEN", "CHECKIN_TIME",
                "CHECKOUT_TIME", "TIMEZONE", "LOG_FILE", "LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("TOKEN_FILE", str(tmp_path / "access_token.json"))
    env_file = tmp_path / ".env"
    env_file.write_text("")
    yield str(env_file)
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


def test_help_exits_zero(capsys, isolated):
    assert cli.main(["help"]) == 0
    out = capsys.readouterr().out
    assert "checkin" in out and "CHECKIN_TIME" in out


def test_unknown_command_exits_one(capsys, isolated):
    assert cli.main(["dance", "--env-file", isolated]) == 1
    assert "Unknown command: dance" in capsys.readouterr().err


def test_bad_option_exits_one(isolated):
    with pytest.raises(SystemExit) as info:
        cli.main(["--bogus"])
    assert info.value.code == 1


def test_checkin_without_secrets_exits_one(isolated):
    assert cli.main(["check-in", "--env-file", isolated]) == 1


def test_invalid_schedule_refuses_to_start(monkeypatch, isolated):
    monkeypatch.setenv("CHECKIN_TIME", "99 99 * * *")
    assert cli.main(["schedule", "--env-file", isolated]) == 1


def test_unknown_timezone_exits_one(monkeypatch, capsys, isolated):
    monkeypatch.setenv("TIMEZONE", "Nowhere/Special")
    assert cli.main(["test", "--env-file", isolated]) == 1
    assert "Nowhere/Special" in capsys.readouterr().err


def test_manual_action_exit_codes(settings, clock):
    record = CredentialRecord.issued("cached-token", 3600, clock())
    session = FakeSession({ATTENDANCE_URL: [FakeResponse(200, {"status": "success"}),
                                            FakeResponse(500, {"message": "boom"})]})
    tokens = TokenManager(settings, store=MemoryTokenStore(record), session=session, clock=clock)
    client = AttendanceClient(settings, tokens)

    assert cli.cmd_action(client, CHECK_IN) == 0
    assert cli.cmd_action(client, CHECK_IN) == 1


def test_test_command_reports_token_preview(settings, clock, capsys):
    session = FakeSession({TOKEN_URL: [FakeResponse(200, {"access_token": "1000.abcdefghijkl", "expires_in": 3600})]})
    tokens = TokenManager(settings, store=MemoryTokenStore(), session=session, clock=clock)

    assert cli.cmd_test(settings, tokens) == 0
    out = capsys.readouterr().out
    assert "Check-in schedule is valid" in out
    assert "Check-out schedule is valid" in out
    assert "Token preview: 1000.abcde..." in out


def test_test_command_fails_on_rejected_grant(settings, clock, capsys):
    session = FakeSession({TOKEN_URL: [FakeResponse(400, {"error": "invalid_grant"})]})
    tokens = TokenManager(settings, store=MemoryTokenStore(), session=session, clock=clock)

    assert cli.cmd_test(settings, tokens) == 1
    assert "invalid_grant" in capsys.readouterr().out


def test_force_refresh_ignores_valid_cache(settings, clock, capsys):
    record = CredentialRecord.issued("cached-token", 3600, clock())
    session = FakeSession({TOKEN_URL: [FakeResponse(200, {"access_token": "brand-new-token", "expires_in": 3600})]})
    tokens = TokenManager(settings, store=MemoryTokenStore(record), session=session, clock=clock)

    assert cli.cmd_test(settings, tokens, force_refresh=True) == 0
    assert len(session.calls) == 1
    assert "Token preview: brand-new-..." in capsys.readouterr().out


def test_unwritable_token_file_fails_cleanly(settings, clock):
    class ReadOnlyStore(MemoryTokenStore):
        def save(self, record):
            raise OSError(30, "Read-only file system")

    session = FakeSession({TOKEN_URL: [FakeResponse(200, {"access_token": "fresh", "expires_in": 3600})]})
    tokens = TokenManager(settings, store=ReadOnlyStore(), session=session, clock=clock)

    assert cli.cmd_action(AttendanceClient(settings, tokens), CHECK_IN) == 1
    assert session.calls_to(ATTENDANCE_URL) == []
