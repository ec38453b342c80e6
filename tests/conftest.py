"""Shared test fixtures for authrelay.

Provides token factories, a scripted fake API served through
:class:`httpx.MockTransport`, an event recorder, isolated config
directories, and output/CLI helpers. Async behaviour is driven with
:func:`asyncio.run` inside plain test functions; the fake API awaits
:func:`asyncio.sleep` in its handler so concurrent calls genuinely
interleave.
"""

from __future__ import annotations

import asyncio
import base64
import json
import time
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
import pytest

from authrelay.auth.events import AuthEventBus
from authrelay.models import AuthEvent, AuthEventKind, ClientConfig
from authrelay.output import OutputFormat, OutputManager, reset_output, set_output

BASE_URL = "http://api.test"
REFRESH_PATH = "/api/v2/auth/refresh/"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager holds references to sys.stdout/sys.stderr taken at
    creation time, which go stale once CliRunner restores the streams.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


def _b64(data: dict[str, Any]) -> str:
    raw = json.dumps(data, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def build_jwt(expires_in: float = 3600, **claims: Any) -> str:
    """Build an unsigned JWT whose ``exp`` lies *expires_in* seconds from now."""
    payload = {"exp": int(time.time() + expires_in), **claims}
    return f"{_b64({'alg': 'HS256', 'typ': 'JWT'})}.{_b64(payload)}.c2lnbmF0dXJl"


@pytest.fixture
def make_jwt() -> Callable[..., str]:
    """Factory for unsigned JWTs: ``make_jwt(expires_in=-60, sub="a1")``."""
    return build_jwt


# ---------------------------------------------------------------------------
# Fake API
# ---------------------------------------------------------------------------


class FakeAPI:
    """Scripted backend for pipeline tests.

    Any non-refresh path answers ``200`` with ``{"path", "token"}`` when the
    bearer token is in :attr:`accepted`, otherwise ``401``. Each answer waits
    :attr:`call_delay` seconds, or the per-path entry in :attr:`delays`. The
    refresh endpoint answers with :attr:`refresh_status` / :attr:`refresh_body`
    after :attr:`refresh_delay` seconds.
    """

    def __init__(self) -> None:
        self.accepted: set[str] = set()
        self.call_delay = 0.01
        self.delays: dict[str, float] = {}
        self.refresh_delay = 0.05
        self.refresh_status = 200
        self.refresh_body: Any = {}
        self.refresh_requests: list[dict[str, Any]] = []
        self.calls: list[tuple[str, Optional[str]]] = []
        self.routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.before_response: Optional[Callable[[httpx.Request], None]] = None

    @property
    def refresh_count(self) -> int:
        return len(self.refresh_requests)

    def calls_to(self, path: str) -> list[Optional[str]]:
        """Return the Authorization headers sent to *path*, in order."""
        return [auth for p, auth in self.calls if p == path]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == REFRESH_PATH:
            self.refresh_requests.append(json.loads(request.content or b"{}"))
            await asyncio.sleep(self.refresh_delay)
            return httpx.Response(self.refresh_status, json=self.refresh_body)

        await asyncio.sleep(self.delays.get(path, self.call_delay))
        auth = request.headers.get("Authorization")
        self.calls.append((path, auth))
        if self.before_response is not None:
            self.before_response(request)
        if path in self.routes:
            return self.routes[path](request)
        token = auth[len("Bearer "):] if auth and auth.startswith("Bearer ") else None
        if token in self.accepted:
            return httpx.Response(200, json={"path": path, "token": token})
        return httpx.Response(401, json={"detail": "Given token not valid for any token type"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_api() -> FakeAPI:
    return FakeAPI()


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(base_url=BASE_URL, sync_interval=0.05)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class EventRecorder:
    """Subscribes to every event kind on a bus and keeps what it receives."""

    def __init__(self, bus: AuthEventBus) -> None:
        self.events: list[AuthEvent] = []
        for kind in AuthEventKind:
            bus.subscribe(kind, self.events.append)

    def kinds(self) -> list[str]:
        return [event.kind.value for event in self.events]

    def count(self, kind: str) -> int:
        return self.kinds().count(kind)


@pytest.fixture
def event_bus() -> AuthEventBus:
    return AuthEventBus()


@pytest.fixture
def recorder(event_bus: AuthEventBus) -> EventRecorder:
    return EventRecorder(event_bus)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point XDG directories at *tmp_path*, clear AUTHRELAY_* env, and chdir.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("authrelay.config._is_xdg_platform", lambda: True)
    for var in ("AUTHRELAY_BASE_URL", "AUTHRELAY_NAMESPACE", "NO_COLOR"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
