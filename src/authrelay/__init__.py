"""authrelay -- authenticated request pipeline for asyncio HTTP clients.

This package attaches bearer credentials to outgoing calls, detects expired
access tokens, refreshes them exactly once when many calls race into the same
expiry, replays the calls that failed on a stale credential, and publishes
authentication-state transitions to the rest of the application.

Typical usage::

    from authrelay.client import AuthContext, AuthService
    from authrelay.models import ClientConfig

    async with AuthContext(ClientConfig(base_url="https://api.example.com")) as ctx:
        auth = AuthService(ctx)
        await auth.login("alice", "pw")
        me = await auth.current_user()

Modules:
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration loading and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
    app: Typer application and CLI entry point.
"""

__version__ = "0.3.0"
