"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~authrelay.exceptions.AuthRelayError` subclass.
Shell wrappers can inspect the exit code to tell a rejected credential apart
from an unreachable server without parsing stderr.

Example::

    $ authrelay call GET /api/v2/auth/profile/
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- refresh was rejected, login again
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""Authentication failed and could not be recovered by a token refresh."""

EXIT_NOT_FOUND = 4
"""The requested resource was not found (HTTP 404)."""

EXIT_SERVER_ERROR = 5
"""The remote API returned an HTTP 5xx server error."""

EXIT_CONNECTION_ERROR = 6
"""No response was received (timeout, DNS failure, connection refused)."""

EXIT_PARSE_ERROR = 7
"""A response body could not be decoded."""
