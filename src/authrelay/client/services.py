"""Resource clients built on the request pipeline.

Every facade here routes its calls through
:meth:`RequestPipeline.request <authrelay.client.pipeline.RequestPipeline.request>`,
so credential attachment and refresh recovery are uniform. Facades never
read or write tokens directly; :class:`AuthService` goes through the
context's :class:`~authrelay.auth.TokenStore` for login and logout.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from authrelay.auth.responses import parse_auth_response
from authrelay.client.context import AuthContext
from authrelay.exceptions import AuthRelayError, HttpError, ParseError
from authrelay.models import AuthEventKind, AuthResult

logger = logging.getLogger(__name__)

FIELD_ERROR_KEYS = ("username", "email", "password", "non_field_errors", "detail")
"""Keys checked, in order, for a human-readable validation message."""

CHANGE_PASSWORD_PATH = "/api/v2/auth/change-password/"
STATS_PATH = "/api/v2/auth/stats/"
CHECK_USERNAME_PATH = "/api/v2/auth/check-username/"
CHECK_EMAIL_PATH = "/api/v2/auth/check-email/"
TELEMETRY_PATH = "/api/v2/analytics/track"


class ResourceClient:
    """Base class for API facades sharing one :class:`AuthContext`."""

    def __init__(self, context: AuthContext) -> None:
        self.context = context
        self.pipeline = context.pipeline()

    async def _call(self, endpoint: str, **options: Any) -> Any:
        return await self.pipeline.request(endpoint, **options)


class AuthService(ResourceClient):
    """Login, registration and profile operations.

    Example::

        auth = AuthService(ctx)
        result = await auth.login("alice", "s3cret")
        print(result.user["username"])
    """

    async def login(self, username: str, password: str) -> AuthResult:
        """Exchange credentials for a token pair and store it.

        Publishes ``token_refresh`` (from the store) and then ``login`` with
        ``{"user": ..., "tokens": ...}``.

        Raises:
            HttpError: If the backend rejects the credentials; the message
                names the first field error.
            ParseError: If the response carries no token pair.
        """
        raw = await self._submit(
            self.context.config.login_path,
            {"username": username, "password": password},
        )
        result = parse_auth_response(raw)
        if result.tokens is None:
            raise ParseError("Login response did not include a token pair")
        self._establish(result)
        return result

    async def register(self, **fields: Any) -> AuthResult:
        """Create an account.

        When the backend also issues tokens they are stored and ``login`` is
        published; otherwise the caller must log in separately.
        """
        raw = await self._submit(self.context.config.register_path, fields)
        result = parse_auth_response(raw)
        if result.tokens is not None:
            self._establish(result)
        return result

    async def logout(self) -> None:
        """Tell the server (best effort) and clear local credentials."""
        tokens = self.context.tokens
        try:
            # An expired session is not worth refreshing just to end it.
            if tokens.valid_access() is not None:
                body = {"refresh": tokens.get_refresh()} if tokens.get_refresh() else None
                await self._call(
                    self.context.config.logout_path, method="POST", json_body=body, retried=True
                )
        except AuthRelayError as exc:
            logger.warning("Server-side logout failed: %s", exc)
        finally:
            tokens.clear()

    async def current_user(self) -> dict[str, Any]:
        """Return the profile of the logged-in user."""
        return await self._call(self.context.config.profile_path)

    async def update_profile(self, **fields: Any) -> dict[str, Any]:
        path = self.context.config.profile_path.rstrip("/") + "/update/"
        return await self._call(path, method="PATCH", json_body=fields)

    async def change_password(self, old_password: str, new_password: str) -> None:
        await self._call(
            CHANGE_PASSWORD_PATH,
            method="POST",
            json_body={"old_password": old_password, "new_password": new_password},
        )

    async def stats(self) -> dict[str, Any]:
        return await self._call(STATS_PATH)

    async def check_username(self, username: str) -> bool:
        """Return ``True`` if *username* is still available."""
        body = await self._call(CHECK_USERNAME_PATH, params={"username": username}, auth=False)
        return _available(body)

    async def check_email(self, email: str) -> bool:
        """Return ``True`` if *email* is not registered yet."""
        body = await self._call(CHECK_EMAIL_PATH, params={"email": email}, auth=False)
        return _available(body)

    async def refresh_tokens(self) -> str:
        """Force a token refresh, joining one already in flight."""
        return await self.pipeline.refresh_credentials()

    async def _submit(self, path: str, payload: dict[str, Any]) -> Any:
        try:
            return await self._call(path, method="POST", json_body=payload, auth=False)
        except HttpError as exc:
            if exc.status != 400:
                raise
            message = field_error_message(exc.body)
            if message is None:
                raise
            raise HttpError(exc.status, exc.body, message) from exc

    def _establish(self, result: AuthResult) -> None:
        assert result.tokens is not None
        self.context.tokens.save(result.tokens)
        self.context.events.publish(
            AuthEventKind.LOGIN, {"user": result.user, "tokens": result.tokens}
        )
        logger.info("Logged in as %s", result.user.get("username", "<unknown>"))


class TelemetryService(ResourceClient):
    """Fire-and-forget analytics events."""

    async def track(self, event_type: str, data: Optional[dict[str, Any]] = None) -> bool:
        """Send one analytics event. Failures are logged, never raised.

        Returns:
            ``True`` if the backend accepted the event.
        """
        try:
            await self._call(
                TELEMETRY_PATH,
                method="POST",
                json_body={"event_type": event_type, "data": data or {}},
            )
        except AuthRelayError as exc:
            logger.warning("Telemetry event %r dropped: %s", event_type, exc)
            return False
        return True


def field_error_message(body: Any) -> Optional[str]:
    """Return the first field-level validation message in *body*, if any."""
    if not isinstance(body, dict):
        return None
    for key in FIELD_ERROR_KEYS:
        value = body.get(key)
        if isinstance(value, list) and value:
            value = value[0]
        if isinstance(value, str) and value:
            return value if key in ("non_field_errors", "detail") else f"{key}: {value}"
    return None


def _available(body: Any) -> bool:
    if isinstance(body, dict):
        return bool(body.get("available", False))
    return bool(body)
