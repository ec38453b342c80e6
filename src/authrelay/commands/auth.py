"""Auth commands -- manage the stored credential pair.

Provides the ``authrelay auth`` sub-command group::

    authrelay auth login alice     # prompts for the password
    authrelay auth status          # show state and token expiry
    authrelay auth refresh         # force a token refresh
    authrelay auth logout
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import typer

from authrelay.auth.tokens import preview, token_expiry
from authrelay.client.context import AuthContext
from authrelay.client.services import AuthService
from authrelay.commands import run_with_context
from authrelay.output import get_output, info, success, suggest


auth_app = typer.Typer(no_args_is_help=True)


@auth_app.command("login")
def auth_login(
    ctx: typer.Context,
    username: str = typer.Argument(help="Account username."),
    password: str = typer.Option(
        ..., "--password", prompt=True, hide_input=True, help="Account password."
    ),
) -> None:
    """Log in and store the returned token pair.

    Example::

        authrelay auth login alice
        authrelay auth login alice --password "$PASSWORD"
    """

    async def _login(auth_ctx: AuthContext):
        return await AuthService(auth_ctx).login(username, password)

    result = run_with_context(ctx, _login)
    success(f"Logged in as {result.user.get('username', username)}")


@auth_app.command("logout")
def auth_logout(ctx: typer.Context) -> None:
    """Log out on the server (best effort) and delete stored credentials."""

    async def _logout(auth_ctx: AuthContext) -> bool:
        had_credentials = auth_ctx.tokens.has_credentials()
        await AuthService(auth_ctx).logout()
        return had_credentials

    if run_with_context(ctx, _logout):
        success("Logged out")
    else:
        info("No stored credentials")


@auth_app.command("status")
def auth_status(ctx: typer.Context) -> None:
    """Show the authentication state and token expiry.

    Reads local state only; no request is sent.
    """

    async def _status(auth_ctx: AuthContext) -> list[list[str]]:
        tokens = auth_ctx.tokens
        access = tokens.get_access()
        return [
            ["state", auth_ctx.state.value],
            ["access", preview(access)],
            ["expires", _format_expiry(access)],
            ["access_valid", str(tokens.valid_access() is not None).lower()],
            ["refresh", "present" if tokens.get_refresh() else "absent"],
            ["namespace", auth_ctx.config.storage_namespace],
        ]

    rows = run_with_context(ctx, _status)
    get_output().print_table(["field", "value"], rows, title="Authentication")
    if rows[0][1] == "unauthenticated":
        suggest("Run 'authrelay auth login <username>' to sign in.")


@auth_app.command("refresh")
def auth_refresh(ctx: typer.Context) -> None:
    """Exchange the stored refresh token for a new access token."""

    async def _refresh(auth_ctx: AuthContext) -> str:
        return await AuthService(auth_ctx).refresh_tokens()

    token = run_with_context(ctx, _refresh)
    success(f"Access token refreshed ({preview(token)})")


def _format_expiry(token: Optional[str]) -> str:
    if token is None:
        return "-"
    exp = token_expiry(token)
    if exp is None:
        return "unknown"
    return datetime.fromtimestamp(exp, tz=timezone.utc).isoformat(timespec="seconds")
