"""Call command -- send one request through the authenticated pipeline.

Example::

    authrelay call GET /api/v2/auth/profile/
    authrelay call PATCH /api/v2/auth/profile/update/ --json '{"bio": "hi"}'
    authrelay call GET /api/v2/templates/ --param page=2 --param q=email
"""

from __future__ import annotations

import json
from typing import Any, Optional

import typer

from authrelay.client.context import AuthContext
from authrelay.commands import run_with_context
from authrelay.exceptions import InvalidUsageError
from authrelay.output import format_response

_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


def call_command(
    ctx: typer.Context,
    method: str = typer.Argument(help="HTTP method (GET, POST, PUT, PATCH, DELETE)."),
    path: str = typer.Argument(help="Path relative to the configured base URL."),
    json_body: Optional[str] = typer.Option(
        None, "--json-body", "-d", help="JSON request body."
    ),
    param: Optional[list[str]] = typer.Option(
        None, "--param", "-P", help="Query parameter as key=value; repeatable."
    ),
    no_auth: bool = typer.Option(
        False, "--no-auth", help="Send without credentials and skip refresh handling."
    ),
) -> None:
    """Send an HTTP request and print the decoded response.

    A ``401`` triggers one token refresh and a single replay; if the
    refresh fails the stored credentials are cleared.
    """
    verb = method.upper()
    if verb not in _METHODS:
        raise InvalidUsageError(f"Unsupported method '{method}'. Use one of: {', '.join(_METHODS)}")

    params = parse_params(param or [])
    body = parse_json_body(json_body)

    async def _call(auth_ctx: AuthContext) -> Any:
        return await auth_ctx.pipeline().request(
            path, method=verb, params=params, json_body=body, auth=not no_auth
        )

    format_response(run_with_context(ctx, _call))


def parse_params(pairs: list[str]) -> dict[str, str]:
    """Turn ``key=value`` strings into a dict.

    Raises:
        InvalidUsageError: If an entry has no ``=``.
    """
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise InvalidUsageError(f"Invalid --param '{pair}'; expected key=value")
        params[key] = value
    return params


def parse_json_body(body: Optional[str]) -> Any:
    if body is None:
        return None
    try:
        return json.loads(body)
    except json.JSONDecodeError as exc:
        raise InvalidUsageError(f"--json-body is not valid JSON: {exc}") from exc
