from __future__ import annotations

import dataclasses
import json
import typing as t

import pytest

from keygen_admin.config import Config
from keygen_admin.http import RetryPolicy


class FakeResponse:
    def __init__(self, status_code: int, body: t.Any = None, *, text: str | None = None,
                 headers: dict | None = None, url: str = "https://api.keygen.sh/"):
        self.status_code = status_code
        self.text = text if text is not None else ("" if body is None else json.dumps(body))
        self.headers = headers or {}
        self.url = url

    def json(self) -> t.Any:
        return json.loads(self.text)


@dataclasses.dataclass
class Call:
    method: str
    url: str
    params: dict
    body: t.Any
    timeout: float | None


class FakeSession:
    """Stands in for requests.Session; replies from a list or a handler(call)."""

    def __init__(self, responses: list | None = None,
                 handler: t.Callable[[Call], t.Any] | None = None):
        self.headers: dict[str, str] = {}
        self.calls: list[Call] = []
        self._responses = list(responses or [])
        self._handler = handler

    def request(self, method, url, params=None, data=None, timeout=None):
        call = Call(method, url, dict(params or {}), json.loads(data) if data else None, timeout)
        self.calls.append(call)
        result = self._handler(call) if self._handler else self._responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def items(count: int, start: int = 0, kind: str = "policies") -> list[dict]:
    return [{"id": f"{kind}-{i}", "type": kind, "attributes": {"name": f"{kind} {i}"}}
            for i in range(start, start + count)]


def paged(pages: list[list[dict]]) -> t.Callable[[Call], FakeResponse]:
    """Handler serving `pages[n-1]` for page[number]=n."""

    def handler(call: Call) -> FakeResponse:
        number = int(call.params["page[number]"])
        return FakeResponse(200, {"data": pages[number - 1]})

    return handler


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def cfg() -> Config:
    return Config(
        api_url="https://api.keygen.sh",
        account_id="acct",
        api_token="tok",
        retry=RetryPolicy(timeout=5, max_attempts=3, delay=2),
    )
