"""Process-level authentication context.

:class:`AuthContext` is constructed once per execution context and injected
into every resource client. It owns the shared credential state:

- the :class:`~authrelay.auth.TokenStore` and its :class:`KeyValueStorage`,
- the :class:`~authrelay.auth.AuthEventBus`,
- the raw :class:`httpx.AsyncClient`,
- the :class:`~authrelay.client.refresh.RefreshCoordinator`,
- the :class:`~authrelay.auth.StorageWatcher`.

Example::

    async with AuthContext(config.client) as ctx:
        auth = AuthService(ctx)
        await auth.login("alice", "s3cret")
        profile = await auth.current_user()
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from authrelay.auth.events import AuthEventBus
from authrelay.auth.storage import DiskStorage, KeyValueStorage
from authrelay.auth.sync import StorageWatcher
from authrelay.auth.token_store import TokenStore
from authrelay.client.pipeline import RequestPipeline
from authrelay.client.refresh import RefreshCoordinator
from authrelay.models import AuthState, ClientConfig

logger = logging.getLogger(__name__)


class AuthContext:
    """Shared credential state for every pipeline in one execution context.

    Args:
        config: Connection settings; defaults to :class:`ClientConfig()`.
        storage: Durable storage for the credential pair. Defaults to a
            :class:`~authrelay.auth.storage.DiskStorage` for
            ``config.storage_namespace``, which the context then closes.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`
            in tests.
        events: Optional event bus to publish on; a new one by default.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        storage: Optional[KeyValueStorage] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        events: Optional[AuthEventBus] = None,
    ) -> None:
        self.config = config or ClientConfig()
        self._owns_storage = storage is None
        self.storage: KeyValueStorage = storage or DiskStorage(self.config.storage_namespace)
        self.events = events or AuthEventBus()
        self.tokens = TokenStore(self.storage, self.events, self.config.expiry_margin)
        self.http = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            verify=self.config.verify_ssl,
            transport=transport,
            follow_redirects=True,
        )
        self.coordinator = RefreshCoordinator(self.tokens, self.http, self.config.refresh_path)
        self.watcher = StorageWatcher(self.tokens, self.storage, self.config.sync_interval)
        self._closed = False

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> AuthContext:
        self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    def start(self) -> None:
        """Start cross-context synchronisation. Requires a running event loop."""
        self.watcher.start()

    async def aclose(self) -> None:
        """Stop the watcher, close the HTTP client, and release owned storage."""
        if self._closed:
            return
        self._closed = True
        await self.watcher.stop()
        await self.http.aclose()
        if self._owns_storage:
            self.storage.close()

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> AuthState:
        if self.coordinator.refreshing:
            return AuthState.REFRESHING
        if self.tokens.has_credentials():
            return AuthState.AUTHENTICATED
        return AuthState.UNAUTHENTICATED

    def is_authenticated(self) -> bool:
        """Return ``True`` while a credential pair is held (refreshing counts)."""
        return self.state is not AuthState.UNAUTHENTICATED

    def pipeline(self) -> RequestPipeline:
        """Return a new request pipeline bound to this context."""
        return RequestPipeline(self)
