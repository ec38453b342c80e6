"""Authenticated request pipeline.

:class:`RequestPipeline` is the one operation every resource client uses to
talk to the API. Each call goes through two stages:

1. **Pre-call** -- the current access token is attached as a bearer
   credential when it is present and outside the expiry margin. An expired
   or missing token is simply left off; the pipeline never blocks a call to
   refresh up front.
2. **Post-call** -- a ``401`` on a call that has not been retried yet is
   recovered inside the pipeline while a refresh token is held or a refresh
   is in flight: the call joins the in-flight refresh or
   leads a new one through the shared
   :class:`~authrelay.client.refresh.RefreshCoordinator`, and is then replayed
   once with the new token. A second ``401`` on the replay is final, as is a
   ``401`` that arrives with no refresh token left to use.

If the refresh fails, the triggering call and every queued call fail with
the refresh error, the token store is cleared (one ``logout`` event) and one
``unauthorized`` event is published.

See Also:
    :class:`~authrelay.client.context.AuthContext` -- owns the shared state
    every pipeline instance operates on.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING, Any, Optional

import httpx

from authrelay.auth.tokens import preview
from authrelay.client.response import decode_body, raise_for_status
from authrelay.exceptions import AuthError, AuthRelayError, InvalidUsageError, NetworkError
from authrelay.models import AuthEventKind, RequestOptions

if TYPE_CHECKING:
    from authrelay.client.context import AuthContext

logger = logging.getLogger(__name__)

AUTH_FAILURE_STATUS = 401


class RequestPipeline:
    """Credential-attaching, refresh-aware request executor.

    Pipelines are cheap; create one per resource client with
    :meth:`AuthContext.pipeline() <authrelay.client.context.AuthContext.pipeline>`.
    All pipelines of a context share its token store and refresh
    coordinator, so at most one refresh is in flight per context no matter
    how many pipelines exist.

    Example::

        pipeline = ctx.pipeline()
        templates = await pipeline.get("/api/v2/templates/", params={"page": 2})
    """

    def __init__(self, context: AuthContext) -> None:
        self._context = context

    @property
    def context(self) -> AuthContext:
        return self._context

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    async def request(
        self,
        endpoint: str,
        options: Optional[RequestOptions] = None,
        **overrides: Any,
    ) -> Any:
        """Send a call and return its decoded payload.

        Args:
            endpoint: Path relative to the configured base URL, or an
                absolute URL.
            options: Call descriptor; defaults to a plain authenticated GET.
            **overrides: Field overrides applied on top of *options*
                (``method``, ``params``, ``json_body``, ``auth``, ...).

        Returns:
            The decoded JSON value, the response text for non-JSON bodies,
            or ``None`` for an empty body.

        Raises:
            HttpError: On a failure status that the pipeline did not recover.
            NetworkError: When no response was received.
            ParseError: When a JSON body does not decode.
            AuthError: When a needed token refresh failed.
            InvalidUsageError: When the caller supplies its own
                ``Authorization`` header.
        """
        response = await self.send(endpoint, options, **overrides)
        return decode_body(response)

    async def send(
        self,
        endpoint: str,
        options: Optional[RequestOptions] = None,
        **overrides: Any,
    ) -> httpx.Response:
        """Send a call and return the raw :class:`httpx.Response`.

        Behaves like :meth:`request` but skips body decoding.
        """
        opts = _build_options(options, overrides)
        if any(name.lower() == "authorization" for name in opts.headers):
            raise InvalidUsageError(
                "Callers must not set the Authorization header; the pipeline attaches credentials"
            )

        response, sent_with = await self._dispatch(endpoint, opts)
        if (
            response.status_code == AUTH_FAILURE_STATUS
            and opts.auth
            and not opts.retried
            and self._recoverable()
        ):
            response = await self._recover(endpoint, opts, sent_with)
        raise_for_status(response)
        return response

    async def get(self, endpoint: str, **kwargs: Any) -> Any:
        """Send a GET request and return the decoded payload."""
        return await self.request(endpoint, method="GET", **kwargs)

    async def post(self, endpoint: str, **kwargs: Any) -> Any:
        """Send a POST request and return the decoded payload."""
        return await self.request(endpoint, method="POST", **kwargs)

    async def put(self, endpoint: str, **kwargs: Any) -> Any:
        """Send a PUT request and return the decoded payload."""
        return await self.request(endpoint, method="PUT", **kwargs)

    async def patch(self, endpoint: str, **kwargs: Any) -> Any:
        """Send a PATCH request and return the decoded payload."""
        return await self.request(endpoint, method="PATCH", **kwargs)

    async def delete(self, endpoint: str, **kwargs: Any) -> Any:
        """Send a DELETE request and return the decoded payload."""
        return await self.request(endpoint, method="DELETE", **kwargs)

    async def refresh_credentials(self) -> str:
        """Obtain a fresh access token, sharing any refresh already in flight.

        If a refresh is in flight this waits for its outcome instead of
        starting another one. Otherwise it leads a refresh, settles every
        call that queued behind it, and on failure clears the token store and
        publishes ``unauthorized``.

        Returns:
            The new access token.

        Raises:
            AuthError: If the refresh failed (``NoRefreshTokenError`` or
                ``RefreshRejectedError``).
            NetworkError: If the refresh endpoint could not be reached.
        """
        context = self._context
        coordinator = context.coordinator
        if coordinator.refreshing:
            return await coordinator.enqueue("refresh").wait()

        coordinator.begin()
        try:
            token = await coordinator.refresh()
        except AuthRelayError as exc:
            logger.warning("Token refresh failed: %s", exc)
            coordinator.settle_failure(exc)
            context.tokens.clear()
            context.events.publish(AuthEventKind.UNAUTHORIZED, exc)
            raise
        except asyncio.CancelledError:
            coordinator.settle_failure(AuthError("Token refresh was interrupted"))
            raise
        except Exception as exc:
            coordinator.settle_failure(exc)
            raise
        coordinator.settle_success(token)
        return token

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _recoverable(self) -> bool:
        """A 401 is recoverable only while a refresh token is held or one is in flight."""
        context = self._context
        return context.coordinator.refreshing or context.tokens.get_refresh() is not None

    async def _recover(
        self,
        endpoint: str,
        options: RequestOptions,
        sent_with: Optional[str],
    ) -> httpx.Response:
        """Handle a first 401: obtain a usable token and replay once."""
        coordinator = self._context.coordinator
        current = self._context.tokens.valid_access()

        if coordinator.refreshing:
            token = await coordinator.enqueue(endpoint).wait()
        elif current is not None and current != sent_with:
            # A refresh settled while this call was in flight.
            logger.debug("Credential changed during %s; replaying without refresh", endpoint)
            token = current
        else:
            token = await self.refresh_credentials()

        response, _ = await self._dispatch(endpoint, options.with_retry(), token=token)
        return response

    async def _dispatch(
        self,
        endpoint: str,
        options: RequestOptions,
        token: Optional[str] = None,
    ) -> tuple[httpx.Response, Optional[str]]:
        """Send one HTTP request and return it with the token it carried."""
        headers = dict(options.headers)
        request_id = uuid.uuid4().hex
        headers.setdefault("X-Request-ID", request_id)

        credential: Optional[str] = None
        if options.auth:
            credential = token or self._context.tokens.valid_access()
            if credential is not None:
                headers["Authorization"] = f"Bearer {credential}"

        kwargs: dict[str, Any] = {
            "method": options.method.upper(),
            "url": endpoint,
            "headers": headers,
            "params": options.params or None,
        }
        if options.data is not None:
            kwargs["data"] = options.data
        elif options.json_body is not None:
            kwargs["json"] = options.json_body
        elif options.content is not None:
            kwargs["content"] = options.content

        logger.debug(
            "%s %s [%s] credential=%s retried=%s",
            kwargs["method"], endpoint, request_id, preview(credential), options.retried,
        )
        try:
            response = await self._context.http.request(**kwargs)
        except httpx.RequestError as exc:
            raise NetworkError(f"{kwargs['method']} {endpoint} failed: {exc}") from exc
        logger.debug("%s %s [%s] -> %d", kwargs["method"], endpoint, request_id, response.status_code)
        return response, credential


def _build_options(options: Optional[RequestOptions], overrides: dict[str, Any]) -> RequestOptions:
    base = options or RequestOptions()
    if not overrides:
        return base
    unknown = set(overrides) - set(RequestOptions.model_fields)
    if unknown:
        raise InvalidUsageError(f"Unknown request option(s): {', '.join(sorted(unknown))}")
    return RequestOptions.model_validate({**base.model_dump(), **overrides})
