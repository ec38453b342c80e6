"""Credential state for authrelay.

This package holds everything that knows about tokens but nothing about
HTTP:

- :class:`TokenStore` -- the single in-memory credential pair, persisted to
  a :class:`KeyValueStorage`.
- :class:`AuthEventBus` -- synchronous publish/subscribe for ``login``,
  ``logout``, ``token_refresh`` and ``unauthorized``.
- :class:`StorageWatcher` -- reloads the store when another context writes
  to the same storage.
- :func:`parse_auth_response` -- decodes the login/registration response
  shapes the backend returns.

Typical usage::

    from authrelay.auth import AuthEventBus, MemoryStorage, TokenStore

    events = AuthEventBus()
    store = TokenStore(MemoryStorage(), events)
"""

from authrelay.auth.events import AuthEventBus, AuthListener
from authrelay.auth.responses import parse_auth_response
from authrelay.auth.storage import DiskStorage, KeyValueStorage, MemoryStorage
from authrelay.auth.sync import StorageWatcher
from authrelay.auth.token_store import TokenStore
from authrelay.auth.tokens import decode_claims, is_token_expired, token_expiry

__all__ = [
    "AuthEventBus",
    "AuthListener",
    "DiskStorage",
    "KeyValueStorage",
    "MemoryStorage",
    "StorageWatcher",
    "TokenStore",
    "decode_claims",
    "is_token_expired",
    "parse_auth_response",
    "token_expiry",
]
