"""Response decoding and status-to-exception mapping.

Every response that leaves the request pipeline passes through
:func:`raise_for_status` and then :func:`decode_body`. Error bodies are read
with the tolerant :func:`extract_response_data` so that a server returning an
HTML error page still produces a useful :class:`~authrelay.exceptions.HttpError`.
"""

from __future__ import annotations

import json
from typing import Any

import httpx

from authrelay.exceptions import HttpError, ParseError


def _is_json(response: httpx.Response) -> bool:
    content_type = response.headers.get("content-type", "")
    return "json" in content_type.lower()


def extract_response_data(response: httpx.Response) -> Any:
    """Extract the body from an HTTP response without ever raising.

    Attempts to parse the body as JSON first and falls back to the raw
    text. Returns ``None`` for responses with no content.
    """
    if not response.content:
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text


def decode_body(response: httpx.Response) -> Any:
    """Decode a successful response body.

    Returns:
        ``None`` for an empty body, the decoded JSON value when the
        content type declares JSON, otherwise the text.

    Raises:
        ParseError: If the content type declares JSON but the body does not
            decode.
    """
    if not response.content:
        return None
    if _is_json(response):
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ParseError(
                f"Response from {response.request.url} is not valid JSON: {exc}"
            ) from exc
    return response.text


def raise_for_status(response: httpx.Response) -> None:
    """Raise :class:`~authrelay.exceptions.HttpError` for status codes >= 400."""
    if response.status_code < 400:
        return
    raise HttpError(response.status_code, extract_response_data(response))
