"""Cross-context credential convergence.

When several contexts share one durable storage, a login, refresh or logout
performed by one of them must become visible to the others.
:class:`StorageWatcher` reloads a :class:`~authrelay.auth.TokenStore`
whenever the storage reports a change. Backends without change
notifications (:class:`~authrelay.auth.storage.DiskStorage`) are polled on an
asyncio task instead; polling is the degraded mode and only used when
:meth:`~authrelay.auth.storage.KeyValueStorage.subscribe` returns ``None``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from authrelay.auth.storage import KeyValueStorage
from authrelay.auth.token_store import TokenStore

logger = logging.getLogger(__name__)


class StorageWatcher:
    """Keeps a token store in step with its backing storage.

    Args:
        store: The token store to reload.
        storage: The storage shared with other contexts.
        interval: Polling period in seconds for backends without
            native notifications.
    """

    def __init__(self, store: TokenStore, storage: KeyValueStorage, interval: float = 5.0) -> None:
        self._store = store
        self._storage = storage
        self._interval = interval
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._mode: Optional[str] = None

    @property
    def running(self) -> bool:
        return self._mode is not None

    @property
    def mode(self) -> Optional[str]:
        """``"native"``, ``"polling"``, or ``None`` when stopped."""
        return self._mode

    def start(self) -> None:
        """Begin watching. Polling mode requires a running event loop."""
        if self._mode is not None:
            return
        unsubscribe = self._storage.subscribe(self._on_change)
        if unsubscribe is not None:
            self._unsubscribe = unsubscribe
            self._mode = "native"
        else:
            self._task = asyncio.get_running_loop().create_task(self._poll())
            self._mode = "polling"
        logger.debug("Storage watcher started in %s mode", self._mode)

    async def stop(self) -> None:
        """Stop watching and wait for the polling task to finish."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._mode = None

    def _on_change(self) -> None:
        self._store.reload()

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self._store.reload()
            except Exception:
                logger.exception("Credential poll failed; retrying in %.1fs", self._interval)
