"""Exception hierarchy for authrelay.

All exceptions inherit from :class:`AuthRelayError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`authrelay.exit_codes`.
Library callers catch the typed subclasses; the CLI entry point in
:func:`authrelay.app.main` catches ``AuthRelayError`` and exits with the
matching code.

Subclass hierarchy::

    AuthRelayError (exit 1)
    +-- InvalidUsageError       (exit 2)
    +-- ConfigError             (exit 1)
    +-- NetworkError            (exit 6)
    +-- ParseError              (exit 7)
    +-- HttpError               (exit depends on status)
    +-- AuthError               (exit 3)
        +-- NoRefreshTokenError
        +-- RefreshRejectedError
"""

from __future__ import annotations

from typing import Any

from authrelay.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_PARSE_ERROR,
    EXIT_SERVER_ERROR,
)


class AuthRelayError(Exception):
    """Base exception for all authrelay errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`authrelay.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(AuthRelayError):
    """Raised for invalid arguments or a broken collaborator contract."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(AuthRelayError):
    """Raised for configuration problems (invalid JSON, bad values)."""

    exit_code = EXIT_GENERIC_FAILURE


class NetworkError(AuthRelayError):
    """Raised when no response was received (timeout, DNS, connection refused)."""

    exit_code = EXIT_CONNECTION_ERROR


class ParseError(AuthRelayError):
    """Raised when a response body or token payload cannot be decoded."""

    exit_code = EXIT_PARSE_ERROR


class HttpError(AuthRelayError):
    """Raised when the API answers with a failure status.

    Carries the numeric ``status`` and the parsed ``body`` (a decoded JSON
    value when possible, otherwise the raw text) so callers can inspect
    field-level validation errors.

    Args:
        status: The HTTP status code.
        body: Parsed response body, or ``None`` when empty.
        message: Optional override for the default ``HTTP <status>`` message.
    """

    def __init__(self, status: int, body: Any = None, message: str | None = None):
        super().__init__(message or _default_message(status, body))
        self.status = status
        self.body = body
        if status in (401, 403):
            self.exit_code = EXIT_AUTH_FAILURE
        elif status == 404:
            self.exit_code = EXIT_NOT_FOUND
        elif status >= 500:
            self.exit_code = EXIT_SERVER_ERROR


class AuthError(AuthRelayError):
    """Raised when credentials cannot be renewed."""

    exit_code = EXIT_AUTH_FAILURE


class NoRefreshTokenError(AuthError):
    """A refresh was requested but no refresh token is stored."""

    def __init__(self, message: str = "No refresh token available"):
        super().__init__(message)


class RefreshRejectedError(AuthError):
    """The refresh endpoint refused to issue a new access token.

    Args:
        status: HTTP status of the refresh response (``0`` when the response
            was successful but unusable).
        body: Parsed refresh response body.
    """

    def __init__(self, status: int, body: Any = None, message: str | None = None):
        super().__init__(message or f"Token refresh rejected (HTTP {status})")
        self.status = status
        self.body = body


def _default_message(status: int, body: Any) -> str:
    """Build ``HTTP <status>: <detail>`` from the common error envelope keys."""
    detail = ""
    if isinstance(body, dict):
        detail = str(body.get("message") or body.get("error") or body.get("detail") or "")
    elif isinstance(body, str):
        detail = body[:200]
    prefix = f"HTTP {status}"
    return f"{prefix}: {detail}" if detail else prefix
