"""Durable key-value storage backing the :class:`~authrelay.auth.TokenStore`.

Credentials are stored as two independent string entries, ``access_token``
and ``refresh_token``. Two backends are provided:

- :class:`MemoryStorage` -- an in-process dict with synchronous change
  notifications. Several :class:`~authrelay.client.AuthContext` instances
  sharing one ``MemoryStorage`` behave like independent execution contexts
  sharing one browser storage area.
- :class:`DiskStorage` -- a :class:`diskcache.Cache` under the XDG data
  directory (typically ``~/.local/share/authrelay/credentials/<namespace>``).
  It is safe to share between processes but offers no change notifications,
  so watchers fall back to polling.

See Also:
    :class:`~authrelay.auth.sync.StorageWatcher` -- reloads the token store
    when another context writes to the same storage.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Callable, Optional

import diskcache

from authrelay.config import get_data_dir

ACCESS_KEY = "access_token"
REFRESH_KEY = "refresh_token"

StorageListener = Callable[[], None]
"""Called with no arguments after the storage contents changed."""


class KeyValueStorage(ABC):
    """Abstract string key-value storage.

    Multi-key writes go through :meth:`update` and :meth:`remove` so that a
    credential pair is never observed half-written.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored string for *key*, or ``None`` if absent."""
        ...

    @abstractmethod
    def update(self, values: Mapping[str, str]) -> None:
        """Atomically write every entry in *values*."""
        ...

    @abstractmethod
    def remove(self, keys: Iterable[str]) -> None:
        """Atomically delete *keys*; missing keys are ignored."""
        ...

    def subscribe(self, listener: StorageListener) -> Optional[Callable[[], None]]:
        """Register *listener* for change notifications.

        Returns:
            A callable that unsubscribes the listener, or ``None`` when the
            backend has no native change notifications.
        """
        return None

    def close(self) -> None:
        """Release backend resources. The default implementation does nothing."""


class MemoryStorage(KeyValueStorage):
    """Thread-safe in-memory storage with synchronous change notifications.

    Each :meth:`update` or :meth:`remove` call notifies every subscriber
    exactly once, after the lock is released.

    Example::

        shared = MemoryStorage()
        shared.update({"access_token": "a", "refresh_token": "r"})
        assert shared.get("access_token") == "a"
    """

    def __init__(self, initial: Optional[Mapping[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()
        self._listeners: list[StorageListener] = []

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def update(self, values: Mapping[str, str]) -> None:
        with self._lock:
            self._data.update(values)
        self._notify()

    def remove(self, keys: Iterable[str]) -> None:
        with self._lock:
            for key in keys:
                self._data.pop(key, None)
        self._notify()

    def subscribe(self, listener: StorageListener) -> Optional[Callable[[], None]]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener()


def _credentials_dir(namespace: str) -> Path:
    """Return the diskcache directory for *namespace*, creating it if needed."""
    path = get_data_dir() / "credentials" / namespace
    path.mkdir(parents=True, exist_ok=True)
    return path


class DiskStorage(KeyValueStorage):
    """Process-shareable storage backed by :class:`diskcache.Cache`.

    Args:
        namespace: Sub-directory name separating credential sets.
        directory: Explicit cache directory; overrides *namespace*.

    Example::

        storage = DiskStorage("staging")
        storage.update({"access_token": "a", "refresh_token": "r"})
        storage.close()
    """

    def __init__(self, namespace: str = "default", directory: str | Path | None = None) -> None:
        self._directory = Path(directory) if directory is not None else _credentials_dir(namespace)
        self._cache = diskcache.Cache(str(self._directory))

    @property
    def directory(self) -> Path:
        """The filesystem directory holding the cache database."""
        return self._directory

    def get(self, key: str) -> Optional[str]:
        value = self._cache.get(key)
        return value if isinstance(value, str) else None

    def update(self, values: Mapping[str, str]) -> None:
        with self._cache.transact():
            for key, value in values.items():
                self._cache.set(key, value)

    def remove(self, keys: Iterable[str]) -> None:
        with self._cache.transact():
            for key in keys:
                self._cache.delete(key)

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache`."""
        self._cache.close()
