"""Shared fixtures: a scripted requests session and an env-isolated client."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, List

import pytest
from requests.structures import CaseInsensitiveDict

from openaikit import Client, Config
from openaikit.core.retry import RetryConfig

ENV_VARS = (
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "OPENAI_ORG_ID",
    "OPENAI_PROJECT_ID",
    "OPENAI_TIMEOUT",
    "OPENAI_MAX_RETRIES",
    "OPENAIKIT_MODEL",
    "OPENAIKIT_LOG",
    "OPENAIKIT_CODE_THEME",
)

BASE_URL = "https://api.test/v1"


class FakeResponse:
    """Just enough of ``requests.Response`` for the transport."""

    def __init__(self, status_code: int = 200, json_body: Any = None, content: bytes = None,
                 headers: dict = None, lines: List[str] = None):
        self.status_code = status_code
        if json_body is not None:
            content = json.dumps(json_body).encode("utf-8")
        self.content = content or b""
        self.headers = CaseInsensitiveDict(headers or {"content-type": "application/json"})
        self._lines = lines or []
        self.closed = False

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")

    def iter_lines(self, decode_unicode: bool = False):
        yield from self._lines

    def close(self):
        self.closed = True


class FakeSession:
    """Replays queued responses (or raises queued exceptions) and records calls."""

    def __init__(self):
        self.responses: List[Any] = []
        self.calls: List[SimpleNamespace] = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def request(self, method, url, **kwargs):
        self.calls.append(SimpleNamespace(method=method, url=url, **kwargs))
        if not self.responses:
            raise AssertionError(f"Unexpected request {method} {url}")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def last(self) -> SimpleNamespace:
        return self.calls[-1]

    def close(self):
        pass


def sse(*events) -> List[str]:
    """SSE lines for the given payloads, terminated by ``[DONE]``."""
    lines = []
    for event in events:
        lines.append(f"data: {json.dumps(event)}")
        lines.append("")
    lines.append("data: [DONE]")
    return lines


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(Config, "ACTIVE_MODEL", None)
    monkeypatch.setattr(Config, "_env_loaded", True)


@pytest.fixture
def sleeps(monkeypatch):
    """Capture retry and polling sleeps instead of waiting."""
    recorded = []
    monkeypatch.setattr("time.sleep", recorded.append)
    return recorded


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def client(session, sleeps):
    return Client(
        api_key="sk-test",
        base_url=BASE_URL,
        session=session,
        retry_config=RetryConfig(max_attempts=3, base_delay=0.5, jitter_factor=0.0),
    )
