"""Tests for cross-context credential convergence."""

from __future__ import annotations

import asyncio
from pathlib import Path

from authrelay.auth.events import AuthEventBus
from authrelay.auth.storage import DiskStorage, MemoryStorage
from authrelay.auth.sync import StorageWatcher
from authrelay.auth.token_store import TokenStore
from authrelay.models import CredentialPair


class TestNativeMode:
    def test_other_store_writes_are_picked_up(self) -> None:
        shared = MemoryStorage()
        mine = TokenStore(shared, AuthEventBus())
        theirs = TokenStore(shared, AuthEventBus())

        async def scenario() -> None:
            watcher = StorageWatcher(mine, shared)
            watcher.start()
            assert watcher.mode == "native"
            theirs.save(CredentialPair(access="a2", refresh="r2"))
            assert mine.pair == CredentialPair(access="a2", refresh="r2")
            theirs.clear()
            assert mine.has_credentials() is False
            await watcher.stop()
            assert watcher.running is False

        asyncio.run(scenario())

    def test_stopped_watcher_ignores_changes(self) -> None:
        shared = MemoryStorage()
        mine = TokenStore(shared, AuthEventBus())

        async def scenario() -> None:
            watcher = StorageWatcher(mine, shared)
            watcher.start()
            await watcher.stop()
            TokenStore(shared, AuthEventBus()).save(CredentialPair(access="a", refresh="r"))
            assert mine.has_credentials() is False

        asyncio.run(scenario())


class TestPollingMode:
    def test_polls_disk_storage(self, tmp_path: Path) -> None:
        mine_storage = DiskStorage(directory=tmp_path)
        their_storage = DiskStorage(directory=tmp_path)
        events = AuthEventBus()
        seen: list[str] = []
        events.subscribe("token_refresh", lambda e: seen.append(e.payload.access))
        mine = TokenStore(mine_storage, events)
        theirs = TokenStore(their_storage, AuthEventBus())

        async def scenario() -> None:
            watcher = StorageWatcher(mine, mine_storage, interval=0.02)
            watcher.start()
            assert watcher.mode == "polling"
            theirs.save(CredentialPair(access="a3", refresh="r3"))
            await asyncio.sleep(0.1)
            await watcher.stop()

        try:
            asyncio.run(scenario())
        finally:
            mine_storage.close()
            their_storage.close()

        assert mine.get_access() == "a3"
        assert seen == ["a3"]
