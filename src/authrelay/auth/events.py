"""Publish/subscribe channel for authentication lifecycle events.

Listeners are plain callables registered per :class:`~authrelay.models.AuthEventKind`
and receive an :class:`~authrelay.models.AuthEvent`. Delivery is synchronous,
in registration order, on the same call stack that changed the state. Each
listener runs inside its own error boundary: an exception is logged and the
remaining listeners still receive the event.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Union

from authrelay.models import AuthEvent, AuthEventKind

logger = logging.getLogger(__name__)

AuthListener = Callable[[AuthEvent], None]


class AuthEventBus:
    """Registry of lifecycle listeners keyed by event kind.

    Example::

        bus = AuthEventBus()
        bus.subscribe("unauthorized", lambda event: redirect_to_login())
        bus.publish(AuthEventKind.UNAUTHORIZED, {"reason": "refresh rejected"})
    """

    def __init__(self) -> None:
        self._listeners: dict[AuthEventKind, list[AuthListener]] = {
            kind: [] for kind in AuthEventKind
        }

    def subscribe(self, kind: Union[AuthEventKind, str], listener: AuthListener) -> None:
        """Register *listener* for *kind*. Registering the same listener twice is a no-op.

        Raises:
            ValueError: If *kind* is not a known event kind.
        """
        listeners = self._listeners[AuthEventKind(kind)]
        if listener not in listeners:
            listeners.append(listener)

    def unsubscribe(self, kind: Union[AuthEventKind, str], listener: AuthListener) -> None:
        """Remove *listener* from *kind*; unknown listeners are ignored."""
        listeners = self._listeners[AuthEventKind(kind)]
        if listener in listeners:
            listeners.remove(listener)

    def publish(self, kind: Union[AuthEventKind, str], payload: Any = None) -> AuthEvent:
        """Deliver an event to every current listener of *kind*.

        The listener list is snapshotted first, so listeners may subscribe or
        unsubscribe during delivery without affecting this event.

        Returns:
            The delivered :class:`~authrelay.models.AuthEvent`.
        """
        event = AuthEvent(kind=AuthEventKind(kind), payload=payload)
        for listener in list(self._listeners[event.kind]):
            try:
                listener(event)
            except Exception:
                logger.exception("Auth event listener failed for %s", event.kind.value)
        return event

    def listener_count(self, kind: Union[AuthEventKind, str]) -> int:
        """Return how many listeners are registered for *kind*."""
        return len(self._listeners[AuthEventKind(kind)])
