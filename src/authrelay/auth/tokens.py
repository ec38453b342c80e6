"""JWT claim decoding without signature verification.

The client never holds the signing key, so it only reads the ``exp`` claim
to decide whether an access token is still worth sending. Anything that
cannot be decoded counts as expired.
"""

from __future__ import annotations

import time
from typing import Any, Optional

from jose import JWTError, jwt

from authrelay.exceptions import ParseError

DEFAULT_EXPIRY_MARGIN = 30.0
"""Seconds subtracted from ``exp`` so a token dying mid-flight is never sent."""


def decode_claims(token: str) -> dict[str, Any]:
    """Read the claims of a JWT without verifying its signature.

    Args:
        token: A ``header.payload.signature`` token string.

    Returns:
        The decoded claims mapping.

    Raises:
        ParseError: If the token is malformed or its payload is not a JSON
            object.
    """
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError as exc:
        raise ParseError(f"Token is not a decodable JWT: {exc}") from exc
    return dict(claims)


def token_expiry(token: str) -> Optional[float]:
    """Return the ``exp`` claim as a POSIX timestamp, or ``None`` if unreadable."""
    try:
        claims = decode_claims(token)
    except ParseError:
        return None
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return float(exp)


def is_token_expired(
    token: Optional[str],
    margin: float = DEFAULT_EXPIRY_MARGIN,
    now: Optional[float] = None,
) -> bool:
    """Check whether *token* should be treated as expired.

    A token is live only when its ``exp`` claim lies strictly beyond
    ``now + margin``. Missing tokens, undecodable tokens and tokens without
    a numeric ``exp`` are all expired.

    Args:
        token: The access token, or ``None``.
        margin: Safety margin in seconds.
        now: Current POSIX time; defaults to :func:`time.time`.
    """
    if not token:
        return True
    exp = token_expiry(token)
    if exp is None:
        return True
    current = time.time() if now is None else now
    return exp <= current + margin


def preview(token: Optional[str], length: int = 12) -> str:
    """Return a short, log-safe prefix of *token*."""
    if not token:
        return "<none>"
    return f"{token[:length]}..."
