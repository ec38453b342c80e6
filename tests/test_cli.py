"""Tests for the ``authrelay`` command line.

Commands are invoked on the real :data:`authrelay.app.app` with
``obj={"storage": ..., "transport": ...}`` so they run against an in-memory
credential store and the scripted fake API.
"""

from __future__ import annotations

import json
from pathlib import Path

import httpx

from authrelay.app import app
from authrelay.auth.storage import ACCESS_KEY, REFRESH_KEY, MemoryStorage
from authrelay.exceptions import InvalidUsageError, RefreshRejectedError

BASE = ["--base-url", "http://api.test", "--plain", "--no-color"]


def _obj(storage: MemoryStorage, fake_api) -> dict:
    return {"storage": storage, "transport": fake_api.transport()}


class TestRoot:
    def test_version(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.output.startswith("authrelay ")


class TestAuthCommands:
    def test_login(self, cli_runner, isolated_config: Path, fake_api, make_jwt) -> None:
        access = make_jwt()
        fake_api.routes["/api/v2/auth/login/"] = lambda request: httpx.Response(
            200, json={"user": {"username": "alice"}, "tokens": {"access": access, "refresh": "r1"}}
        )
        storage = MemoryStorage()
        result = cli_runner.invoke(
            app, [*BASE, "auth", "login", "alice", "--password", "pw"], obj=_obj(storage, fake_api)
        )
        assert result.exit_code == 0, result.output
        assert "Logged in as alice" in result.output
        assert storage.get(ACCESS_KEY) == access

    def test_status(self, cli_runner, isolated_config: Path, fake_api, make_jwt) -> None:
        storage = MemoryStorage({ACCESS_KEY: make_jwt(), REFRESH_KEY: "r1"})
        result = cli_runner.invoke(app, [*BASE, "auth", "status"], obj=_obj(storage, fake_api))
        assert result.exit_code == 0, result.output
        assert "state\tauthenticated" in result.output
        assert "access_valid\ttrue" in result.output
        assert "refresh\tpresent" in result.output
        assert fake_api.calls == []

    def test_status_logged_out(self, cli_runner, isolated_config: Path, fake_api) -> None:
        result = cli_runner.invoke(app, [*BASE, "auth", "status"], obj=_obj(MemoryStorage(), fake_api))
        assert "state\tunauthenticated" in result.output

    def test_refresh(self, cli_runner, isolated_config: Path, fake_api, make_jwt) -> None:
        a2 = make_jwt(sub="a2")
        fake_api.refresh_body = {"access": a2}
        storage = MemoryStorage({ACCESS_KEY: make_jwt(expires_in=-60), REFRESH_KEY: "r1"})
        result = cli_runner.invoke(app, [*BASE, "auth", "refresh"], obj=_obj(storage, fake_api))
        assert result.exit_code == 0, result.output
        assert storage.get(ACCESS_KEY) == a2

    def test_refresh_rejected_raises_typed_error(self, cli_runner, isolated_config: Path, fake_api, make_jwt) -> None:
        fake_api.refresh_status = 401
        fake_api.refresh_body = {"detail": "Token is blacklisted"}
        storage = MemoryStorage({ACCESS_KEY: make_jwt(expires_in=-60), REFRESH_KEY: "r1"})
        result = cli_runner.invoke(app, [*BASE, "auth", "refresh"], obj=_obj(storage, fake_api))
        assert isinstance(result.exception, RefreshRejectedError)
        assert storage.get(REFRESH_KEY) is None

    def test_logout(self, cli_runner, isolated_config: Path, fake_api, make_jwt) -> None:
        fake_api.routes["/api/v2/auth/logout/"] = lambda request: httpx.Response(205)
        storage = MemoryStorage({ACCESS_KEY: make_jwt(), REFRESH_KEY: "r1"})
        result = cli_runner.invoke(app, [*BASE, "auth", "logout"], obj=_obj(storage, fake_api))
        assert result.exit_code == 0, result.output
        assert "Logged out" in result.output
        assert storage.get(ACCESS_KEY) is None


class TestCallCommand:
    def test_get_with_params(self, cli_runner, isolated_config: Path, fake_api, make_jwt) -> None:
        access = make_jwt()
        seen: list[httpx.Request] = []

        def route(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"id": 1, "title": "Email"}])

        fake_api.routes["/api/v2/templates/"] = route
        storage = MemoryStorage({ACCESS_KEY: access, REFRESH_KEY: "r1"})
        result = cli_runner.invoke(
            app,
            ["--base-url", "http://api.test", "--json", "call", "get", "/api/v2/templates/", "--param", "page=2"],
            obj=_obj(storage, fake_api),
        )
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == [{"id": 1, "title": "Email"}]
        assert seen[0].url.params["page"] == "2"
        assert seen[0].headers["Authorization"] == f"Bearer {access}"

    def test_post_json_body(self, cli_runner, isolated_config: Path, fake_api, make_jwt) -> None:
        bodies: list[dict] = []

        def route(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json={"id": 5})

        fake_api.routes["/api/v2/templates/"] = route
        storage = MemoryStorage({ACCESS_KEY: make_jwt(), REFRESH_KEY: "r1"})
        result = cli_runner.invoke(
            app,
            [*BASE, "call", "POST", "/api/v2/templates/", "--json-body", '{"title": "x"}'],
            obj=_obj(storage, fake_api),
        )
        assert result.exit_code == 0, result.output
        assert bodies == [{"title": "x"}]

    def test_bad_param(self, cli_runner, isolated_config: Path, fake_api) -> None:
        result = cli_runner.invoke(
            app, [*BASE, "call", "GET", "/x", "--param", "novalue"], obj=_obj(MemoryStorage(), fake_api)
        )
        assert isinstance(result.exception, InvalidUsageError)

    def test_bad_method(self, cli_runner, isolated_config: Path, fake_api) -> None:
        result = cli_runner.invoke(app, [*BASE, "call", "TRACE", "/x"], obj=_obj(MemoryStorage(), fake_api))
        assert isinstance(result.exception, InvalidUsageError)


class TestConfigCommands:
    def test_set_and_show(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "client.base_url", "https://api.example.com"])
        assert result.exit_code == 0, result.output
        result = cli_runner.invoke(app, ["--json", "--quiet", "config", "show"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["client"]["base_url"] == "https://api.example.com"

    def test_set_unknown_key(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "client.retries", "3"])
        assert result.exit_code != 0

    def test_set_output_format(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "output.format", "json"])
        assert result.exit_code == 0, result.output
        config = json.loads((isolated_config / "config" / "authrelay" / "config.json").read_text())
        assert config["output"]["format"] == "json"
