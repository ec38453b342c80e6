"""Single-flight token refresh.

:class:`RefreshCoordinator` owns the refresh state shared by every pipeline
built on one :class:`~authrelay.client.AuthContext`: the ``refreshing`` flag
and the FIFO queue of :class:`PendingCall` continuations. It also performs
the refresh network call itself. The pipeline enforces single flight by
checking :attr:`~RefreshCoordinator.refreshing` before leading a refresh and
enqueueing otherwise; all flag and queue operations are synchronous so no
two coroutines can observe them half-updated.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

import httpx

from authrelay.auth.token_store import ABSENT_MARKERS, TokenStore
from authrelay.auth.tokens import preview
from authrelay.client.response import decode_body, extract_response_data
from authrelay.exceptions import NetworkError, NoRefreshTokenError, RefreshRejectedError
from authrelay.models import CredentialPair

logger = logging.getLogger(__name__)


@dataclass
class PendingCall:
    """A call waiting for the in-flight refresh to settle.

    The waiting coroutine awaits :meth:`wait` and replays its own request
    with the token it receives, so every queued caller gets its own
    response.
    """

    endpoint: str
    future: asyncio.Future[str] = field(repr=False)

    def resolve(self, token: str) -> None:
        if not self.future.done():
            self.future.set_result(token)

    def reject(self, error: BaseException) -> None:
        if not self.future.done():
            self.future.set_exception(error)

    async def wait(self) -> str:
        return await self.future


class RefreshCoordinator:
    """Refresh operation plus the shared in-flight flag and waiter queue.

    Args:
        store: Token store providing the refresh token and receiving the
            renewed pair.
        http: Raw HTTP client used for the refresh call. It must not be a
            request pipeline, so a rejected refresh cannot recurse into
            refresh handling.
        refresh_path: Refresh endpoint, relative to the client's base URL.
    """

    def __init__(self, store: TokenStore, http: httpx.AsyncClient, refresh_path: str) -> None:
        self._store = store
        self._http = http
        self._refresh_path = refresh_path
        self._refreshing = False
        self._queue: deque[PendingCall] = deque()
        self.refresh_count = 0

    # ------------------------------------------------------------------ #
    # Refresh state
    # ------------------------------------------------------------------ #

    @property
    def refreshing(self) -> bool:
        return self._refreshing

    @property
    def queued(self) -> int:
        """Number of calls waiting on the in-flight refresh."""
        return len(self._queue)

    def begin(self) -> None:
        """Mark a refresh as in flight.

        Raises:
            RuntimeError: If a refresh is already in flight.
        """
        if self._refreshing:
            raise RuntimeError("A token refresh is already in flight")
        self._refreshing = True

    def enqueue(self, endpoint: str) -> PendingCall:
        """Queue a continuation for the in-flight refresh.

        Raises:
            RuntimeError: If no refresh is in flight.
        """
        if not self._refreshing:
            raise RuntimeError("No token refresh in flight to wait for")
        call = PendingCall(endpoint, asyncio.get_running_loop().create_future())
        self._queue.append(call)
        logger.debug("Queued %s behind in-flight refresh (%d waiting)", endpoint, len(self._queue))
        return call

    def settle_success(self, token: str) -> None:
        """Resolve every queued call with *token*, then reset the state."""
        for call in self._queue:
            call.resolve(token)
        self._queue.clear()
        self._refreshing = False

    def settle_failure(self, error: BaseException) -> None:
        """Reject every queued call with *error*, then reset the state."""
        for call in self._queue:
            call.reject(error)
        self._queue.clear()
        self._refreshing = False

    # ------------------------------------------------------------------ #
    # Refresh operation
    # ------------------------------------------------------------------ #

    async def refresh(self) -> str:
        """Exchange the stored refresh token for a new access token.

        On success the renewed pair is saved to the token store, which
        publishes ``token_refresh``. A rotated refresh token in the response
        replaces the stored one; otherwise the old one is kept.

        Returns:
            The new access token.

        Raises:
            NoRefreshTokenError: If no refresh token is stored (no network
                call is made).
            RefreshRejectedError: If the endpoint answers with a failure
                status or without a usable access token.
            NetworkError: If no response was received.
            ParseError: If the success body is not valid JSON.
        """
        refresh_token = self._store.get_refresh()
        if refresh_token is None:
            raise NoRefreshTokenError()

        self.refresh_count += 1
        logger.debug("Refreshing access token with refresh token %s", preview(refresh_token))
        try:
            response = await self._http.post(self._refresh_path, json={"refresh": refresh_token})
        except httpx.RequestError as exc:
            raise NetworkError(f"Token refresh failed: {exc}") from exc

        if not response.is_success:
            raise RefreshRejectedError(response.status_code, extract_response_data(response))

        body = decode_body(response)
        access = _token_field(body, "access")
        if access is None:
            raise RefreshRejectedError(
                response.status_code,
                body,
                "Refresh response did not include an access token",
            )
        rotated = _token_field(body, "refresh")

        self._store.save(CredentialPair(access=access, refresh=rotated or refresh_token))
        logger.info("Access token refreshed (%s)", preview(access))
        return access


def _token_field(body: object, name: str) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    value = body.get(name)
    if not isinstance(value, str) or value.strip() in ABSENT_MARKERS:
        return None
    return value
