"""Canonical Pydantic models shared across all authrelay modules.

This is the single source of truth for data shapes in the project. The
models fall into three groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`ClientConfig`, :class:`OutputConfig`, and :class:`GlobalConfig`.

**Credential models** -- the credential pair and the values derived from it:
    :class:`CredentialPair`, :class:`AuthResult`, and :class:`AuthState`.

**Pipeline models** -- call descriptors and lifecycle events:
    :class:`RequestOptions`, :class:`AuthEventKind`, and :class:`AuthEvent`.

All models use Pydantic v2. Models that travel through the request pipeline
are frozen so that a layer can only derive a new descriptor, never mutate
the one a caller handed in.
"""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Config ---


class ClientConfig(BaseModel):
    """Connection and credential-handling settings for one API.

    The endpoint paths default to the layout of the prompt-library backend
    this client was written for; every path is relative to ``base_url``.

    Example::

        ClientConfig(base_url="https://api.example.com", expiry_margin=60)
    """

    base_url: str = Field(
        default="http://localhost:8000", description="API root URL"
    )
    refresh_path: str = Field(
        default="/api/v2/auth/refresh/", description="Token refresh endpoint"
    )
    login_path: str = "/api/v2/auth/login/"
    register_path: str = "/api/v2/auth/register/"
    logout_path: str = "/api/v2/auth/logout/"
    profile_path: str = "/api/v2/auth/profile/"
    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    expiry_margin: float = Field(
        default=30.0,
        ge=0,
        description="Seconds before the exp claim at which a token counts as expired",
    )
    sync_interval: float = Field(
        default=5.0,
        gt=0,
        description="Polling period for storage backends without change notifications",
    )
    storage_namespace: str = Field(
        default="default", description="Credential namespace inside durable storage"
    )


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/authrelay/config.json``.

    Loaded and saved by :func:`~authrelay.config.load_global_config` and
    :func:`~authrelay.config.save_global_config`. See
    :func:`~authrelay.config.resolve_config` for the full precedence chain.
    """

    client: ClientConfig = Field(default_factory=ClientConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)


# --- Credentials ---


class CredentialPair(BaseModel):
    """The access/refresh token pair held by :class:`~authrelay.auth.TokenStore`.

    ``access`` is a short-lived JWT whose ``exp`` claim is read without
    signature verification; ``refresh`` is the longer-lived token exchanged
    for a new access token.
    """

    model_config = ConfigDict(frozen=True)

    access: str
    refresh: str


class AuthResult(BaseModel):
    """Decoded login or registration response.

    ``tokens`` is ``None`` when the backend created an account without
    issuing credentials (the user must log in separately).
    """

    user: dict[str, Any] = Field(default_factory=dict)
    tokens: Optional[CredentialPair] = None


class AuthState(str, enum.Enum):
    """Observable authentication state of an :class:`~authrelay.client.AuthContext`.

    ``REFRESHING`` is derived from the refresh coordinator's in-flight flag
    and is never persisted.
    """

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


# --- Pipeline ---


class RequestOptions(BaseModel):
    """Immutable descriptor of one call made through the request pipeline.

    ``auth=False`` marks calls that must never carry a credential or trigger
    a refresh (login, registration, availability checks). ``retried`` records
    that the call has already been replayed once after an authentication
    failure; use :meth:`with_retry` to derive the replay descriptor.
    """

    model_config = ConfigDict(frozen=True)

    method: str = "GET"
    params: dict[str, Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    json_body: Any = None
    content: Optional[str] = None
    data: Optional[dict[str, Any]] = None
    auth: bool = True
    retried: bool = False

    def with_retry(self) -> RequestOptions:
        """Return a copy of this descriptor marked as already retried."""
        return self.model_copy(update={"retried": True})


class AuthEventKind(str, enum.Enum):
    """Lifecycle events published on the :class:`~authrelay.auth.AuthEventBus`."""

    LOGIN = "login"
    LOGOUT = "logout"
    TOKEN_REFRESH = "token_refresh"
    UNAUTHORIZED = "unauthorized"


class AuthEvent(BaseModel):
    """A single published lifecycle event, as handed to recorders and tests."""

    kind: AuthEventKind
    payload: Any = None
