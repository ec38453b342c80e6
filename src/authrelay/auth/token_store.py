"""Single source of truth for the process's credential pair.

:class:`TokenStore` mirrors the two durable storage entries in memory, is the
only writer of credentials, and publishes ``token_refresh`` and ``logout``
events whenever the pair it holds changes. One instance is shared by every
client built on the same :class:`~authrelay.client.AuthContext`.
"""

from __future__ import annotations

import logging
from typing import Optional

from authrelay.auth.events import AuthEventBus
from authrelay.auth.storage import ACCESS_KEY, REFRESH_KEY, KeyValueStorage
from authrelay.auth.tokens import DEFAULT_EXPIRY_MARGIN, is_token_expired, preview
from authrelay.exceptions import InvalidUsageError
from authrelay.models import AuthEventKind, CredentialPair

logger = logging.getLogger(__name__)

ABSENT_MARKERS = frozenset({"", "undefined", "null", "None"})
"""Stored strings that mean "no credential" (serialised null/undefined)."""


def _clean(value: Optional[str]) -> Optional[str]:
    """Map placeholder strings and non-strings to ``None``."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    if value in ABSENT_MARKERS:
        return None
    return value


class TokenStore:
    """In-memory credential pair backed by durable storage.

    Args:
        storage: The durable key-value storage to load from and persist to.
        events: Bus on which ``token_refresh`` and ``logout`` are published.
        expiry_margin: Safety margin in seconds applied by :meth:`is_expired`.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        events: AuthEventBus,
        expiry_margin: float = DEFAULT_EXPIRY_MARGIN,
    ) -> None:
        self._storage = storage
        self._events = events
        self._margin = expiry_margin
        self._access: Optional[str] = None
        self._refresh: Optional[str] = None
        self._writing = False
        self._access, self._refresh = self._read()

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    def get_access(self) -> Optional[str]:
        """Return the current access token, or ``None``."""
        return self._access

    def get_refresh(self) -> Optional[str]:
        """Return the current refresh token, or ``None``."""
        return self._refresh

    @property
    def pair(self) -> Optional[CredentialPair]:
        """The full credential pair, or ``None`` unless both sides are present."""
        if self._access and self._refresh:
            return CredentialPair(access=self._access, refresh=self._refresh)
        return None

    @property
    def expiry_margin(self) -> float:
        return self._margin

    def has_credentials(self) -> bool:
        """Return ``True`` when either token is held."""
        return self._access is not None or self._refresh is not None

    def is_expired(self, token: Optional[str]) -> bool:
        """Check *token* against its ``exp`` claim and the safety margin.

        Undecodable tokens are treated as expired.
        """
        return is_token_expired(token, self._margin)

    def valid_access(self) -> Optional[str]:
        """Return the access token if it is present and not expired."""
        token = self._access
        if token is None or self.is_expired(token):
            return None
        return token

    # ------------------------------------------------------------------ #
    # Mutation
    # ------------------------------------------------------------------ #

    def save(self, pair: CredentialPair) -> None:
        """Replace the held pair, persist it, and publish ``token_refresh``.

        Raises:
            InvalidUsageError: If either token is empty or a placeholder.
        """
        access = _clean(pair.access)
        refresh = _clean(pair.refresh)
        if access is None or refresh is None:
            raise InvalidUsageError("Refusing to save an incomplete credential pair")

        self._access, self._refresh = access, refresh
        self._writing = True
        try:
            self._storage.update({ACCESS_KEY: access, REFRESH_KEY: refresh})
        finally:
            self._writing = False
        logger.debug("Saved credential pair (access %s)", preview(access))
        self._events.publish(AuthEventKind.TOKEN_REFRESH, CredentialPair(access=access, refresh=refresh))

    def clear(self) -> None:
        """Forget the held pair, delete it from storage, and publish ``logout``.

        Clearing a store that holds nothing still wipes storage but publishes
        no event.
        """
        had_credentials = self.has_credentials()
        self._access = self._refresh = None
        self._writing = True
        try:
            self._storage.remove([ACCESS_KEY, REFRESH_KEY])
        finally:
            self._writing = False
        logger.debug("Cleared credential pair")
        if had_credentials:
            self._events.publish(AuthEventKind.LOGOUT)

    def reload(self) -> bool:
        """Re-read durable storage written by another context.

        Publishes ``token_refresh`` when a different pair appeared and
        ``logout`` when the credentials disappeared. Writes made by this
        store itself are ignored.

        Returns:
            ``True`` if the in-memory state changed.
        """
        if self._writing:
            return False
        access, refresh = self._read()
        if (access, refresh) == (self._access, self._refresh):
            return False

        had_credentials = self.has_credentials()
        self._access, self._refresh = access, refresh
        logger.debug("Reloaded credentials from storage (access %s)", preview(access))
        if access is None and refresh is None:
            if had_credentials:
                self._events.publish(AuthEventKind.LOGOUT)
        elif self.pair is not None:
            self._events.publish(AuthEventKind.TOKEN_REFRESH, self.pair)
        return True

    def _read(self) -> tuple[Optional[str], Optional[str]]:
        return _clean(self._storage.get(ACCESS_KEY)), _clean(self._storage.get(REFRESH_KEY))
