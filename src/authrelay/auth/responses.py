"""Decoding of login and registration responses.

The backend is not consistent about where it puts the issued credentials.
:func:`parse_auth_response` accepts every shape seen in practice and tries
them in a fixed order:

1. Nested -- ``{"user": {...}, "tokens": {"access": ..., "refresh": ...}}``
2. Flat -- ``{"access": ..., "refresh": ..., "user": {...}}``
3. No credentials -- the account was created but the user must log in.

A shape only matches when both tokens are non-empty strings.
"""

from __future__ import annotations

from typing import Any, Optional

from authrelay.exceptions import ParseError
from authrelay.models import AuthResult, CredentialPair

_TOKEN_KEYS = frozenset({"access", "refresh", "tokens"})


def _pair_from(source: Any) -> Optional[CredentialPair]:
    if not isinstance(source, dict):
        return None
    access = source.get("access")
    refresh = source.get("refresh")
    if isinstance(access, str) and access and isinstance(refresh, str) and refresh:
        return CredentialPair(access=access, refresh=refresh)
    return None


def parse_auth_response(raw: Any) -> AuthResult:
    """Decode a login or registration payload into an :class:`~authrelay.models.AuthResult`.

    Args:
        raw: The decoded JSON body.

    Returns:
        The user payload plus the credential pair, if one was issued.

    Raises:
        ParseError: If *raw* is not a JSON object.
    """
    if not isinstance(raw, dict):
        raise ParseError(f"Expected an object in auth response, got {type(raw).__name__}")

    tokens = _pair_from(raw.get("tokens")) or _pair_from(raw)

    user = raw.get("user")
    if not isinstance(user, dict):
        user = {key: value for key, value in raw.items() if key not in _TOKEN_KEYS}
    return AuthResult(user=user, tokens=tokens)
