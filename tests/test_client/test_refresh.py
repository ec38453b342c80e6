"""Tests for the refresh coordinator's state machine and refresh call."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from authrelay.auth.events import AuthEventBus
from authrelay.auth.storage import ACCESS_KEY, REFRESH_KEY, MemoryStorage
from authrelay.auth.token_store import TokenStore
from authrelay.client.refresh import RefreshCoordinator
from authrelay.exceptions import AuthError, NetworkError, NoRefreshTokenError, ParseError, RefreshRejectedError
from authrelay.models import CredentialPair

REFRESH_PATH = "/api/v2/auth/refresh/"


def _coordinator(handler, initial=None) -> tuple[RefreshCoordinator, TokenStore, httpx.AsyncClient]:
    store = TokenStore(MemoryStorage(initial or {ACCESS_KEY: "a1", REFRESH_KEY: "r1"}), AuthEventBus())
    http = httpx.AsyncClient(base_url="http://api.test", transport=httpx.MockTransport(handler))
    return RefreshCoordinator(store, http, REFRESH_PATH), store, http


def _unused(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request to {request.url}")


class TestQueue:
    def test_begin_twice_is_an_error(self) -> None:
        coordinator, _, _ = _coordinator(_unused)
        coordinator.begin()
        with pytest.raises(RuntimeError):
            coordinator.begin()

    def test_enqueue_requires_refresh_in_flight(self) -> None:
        coordinator, _, _ = _coordinator(_unused)

        async def scenario() -> None:
            coordinator.enqueue("/x")

        with pytest.raises(RuntimeError):
            asyncio.run(scenario())

    def test_success_resolves_waiters_in_order_and_resets(self) -> None:
        coordinator, _, _ = _coordinator(_unused)

        async def scenario():
            coordinator.begin()
            calls = [coordinator.enqueue(f"/items/{i}") for i in range(3)]
            assert coordinator.queued == 3
            coordinator.settle_success("a2")
            assert coordinator.refreshing is False
            assert coordinator.queued == 0
            return [await call.wait() for call in calls]

        assert asyncio.run(scenario()) == ["a2", "a2", "a2"]

    def test_failure_rejects_every_waiter(self) -> None:
        coordinator, _, _ = _coordinator(_unused)
        error = AuthError("nope")

        async def scenario():
            coordinator.begin()
            calls = [coordinator.enqueue("/x"), coordinator.enqueue("/y")]
            coordinator.settle_failure(error)
            return await asyncio.gather(*(call.wait() for call in calls), return_exceptions=True)

        assert asyncio.run(scenario()) == [error, error]
        assert coordinator.refreshing is False

    def test_new_refresh_after_settle_has_empty_queue(self) -> None:
        coordinator, _, _ = _coordinator(_unused)

        async def scenario() -> int:
            coordinator.begin()
            coordinator.enqueue("/x")
            coordinator.settle_success("a2")
            coordinator.begin()
            return coordinator.queued

        assert asyncio.run(scenario()) == 0


class TestRefreshCall:
    def test_success_saves_pair(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"access": "a2"})

        coordinator, store, http = _coordinator(handler)

        async def scenario() -> str:
            async with http:
                return await coordinator.refresh()

        assert asyncio.run(scenario()) == "a2"
        assert store.pair == CredentialPair(access="a2", refresh="r1")
        assert seen[0].url.path == REFRESH_PATH
        assert seen[0].method == "POST"
        assert json.loads(seen[0].content) == {"refresh": "r1"}
        assert "Authorization" not in seen[0].headers
        assert coordinator.refresh_count == 1

    def test_no_refresh_token(self) -> None:
        coordinator, _, _ = _coordinator(_unused, {ACCESS_KEY: "a1"})
        with pytest.raises(NoRefreshTokenError):
            asyncio.run(coordinator.refresh())
        assert coordinator.refresh_count == 0

    def test_placeholder_refresh_token_counts_as_missing(self) -> None:
        coordinator, _, _ = _coordinator(_unused, {ACCESS_KEY: "a1", REFRESH_KEY: "undefined"})
        with pytest.raises(NoRefreshTokenError):
            asyncio.run(coordinator.refresh())

    def test_rejection_carries_status_and_body(self) -> None:
        coordinator, store, _ = _coordinator(
            lambda request: httpx.Response(401, json={"detail": "Token is blacklisted"})
        )
        with pytest.raises(RefreshRejectedError) as excinfo:
            asyncio.run(coordinator.refresh())
        assert excinfo.value.status == 401
        assert excinfo.value.body == {"detail": "Token is blacklisted"}
        assert store.get_refresh() == "r1"

    def test_placeholder_access_is_rejected(self) -> None:
        coordinator, _, _ = _coordinator(lambda request: httpx.Response(200, json={"access": "null"}))
        with pytest.raises(RefreshRejectedError):
            asyncio.run(coordinator.refresh())

    def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        coordinator, _, _ = _coordinator(handler)
        with pytest.raises(NetworkError):
            asyncio.run(coordinator.refresh())

    def test_undecodable_body(self) -> None:
        coordinator, _, _ = _coordinator(
            lambda request: httpx.Response(200, content=b"{", headers={"content-type": "application/json"})
        )
        with pytest.raises(ParseError):
            asyncio.run(coordinator.refresh())
