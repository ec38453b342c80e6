"""Built-in CLI sub-commands for authrelay.

* :mod:`~authrelay.commands.auth` -- log in, log out, inspect and refresh
  the stored credential pair.
* :mod:`~authrelay.commands.call` -- send one authenticated request.
* :mod:`~authrelay.commands.config` -- view and modify global settings.

Commands read the resolved :class:`~authrelay.models.GlobalConfig` from
``ctx.obj["config"]`` (set by :func:`~authrelay.app.main_callback`) and
build an :class:`~authrelay.client.AuthContext` with :func:`open_context`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Callable, TypeVar

import typer

from authrelay.client.context import AuthContext
from authrelay.config import resolve_config
from authrelay.models import GlobalConfig

T = TypeVar("T")


def get_config(ctx: typer.Context) -> GlobalConfig:
    """Return the config resolved by the root callback (or resolve it now)."""
    obj = ctx.ensure_object(dict)
    config = obj.get("config")
    if config is None:
        config = resolve_config()
        obj["config"] = config
    return config


def open_context(ctx: typer.Context) -> AuthContext:
    """Build an :class:`AuthContext` from the CLI state.

    ``ctx.obj`` may carry ``storage`` and ``transport`` overrides, which the
    test suite uses to inject a :class:`~authrelay.auth.MemoryStorage` and an
    :class:`httpx.MockTransport`.
    """
    obj = ctx.ensure_object(dict)
    return AuthContext(
        get_config(ctx).client,
        storage=obj.get("storage"),
        transport=obj.get("transport"),
    )


def run_with_context(ctx: typer.Context, action: Callable[[AuthContext], Awaitable[T]]) -> T:
    """Run *action* inside a started :class:`AuthContext` on a fresh event loop."""

    async def _runner() -> T:
        async with open_context(ctx) as auth_ctx:
            return await action(auth_ctx)

    return asyncio.run(_runner())
