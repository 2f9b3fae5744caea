import datetime
import json

import pytest

from zoho_autoclock.config import Settings

UTC = datetime.timezone.utc


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body
        self.text = body if isinstance(body, str) else json.dumps(body)

    def json(self):
        if isinstance(self._body, str):
            raise ValueError("not JSON")
        return self._body


class FakeSession:
    """Stands in for requests.Session; replies are served in order per URL."""

    def __init__(self, replies=None):
        self.replies = {url: list(items) for url, items in (replies or {}).items()}
        self.calls = []

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
        reply = self.replies[url].pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def calls_to(self, url):
        return [c for c in self.calls if c["url"] == url]


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += datetime.timedelta(seconds=seconds)


@pytest.fixture
def settings():
    return Settings(client_id="client-id", client_secret="client-secret", refresh_token="refresh-secret",
                    token_file="unused.json", timezone="Europe/Berlin")


@pytest.fixture
def clock():
    return FakeClock(datetime.datetime(2024, 3, 4, 8, 0, tzinfo=UTC))
