from __future__ import annotations

import secrets
from typing import Any

from fastapi import Depends, Request

from quillpost.core.errors import (
    JsonApiException,
    TokenMismatchError,
)
from quillpost.core.jsonapi import MEDIA_TYPE, decode_document, is_json_api_content
from quillpost.core.settings import Settings


CSRF_COOKIE = "quillpost_csrf"
CSRF_HEADER = "X-CSRF-Token"

_SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def get_request_settings(request: Request) -> Settings:
    """Settings snapshot the app was created with (replaceable at runtime)."""

    return request.app.state.settings


def verify_csrf_token(request: Request) -> None:
    """Double-submit CSRF protection for cookie-carrying writes.

    Contract:
    - Cookie: quillpost_csrf
    - Header: X-CSRF-Token
    - Only enforced when the cookie is present; must match exactly.
    """

    if request.method in _SAFE_METHODS:
        return
    csrf_cookie = request.cookies.get(CSRF_COOKIE)
    if not csrf_cookie:
        return
    csrf_header = request.headers.get(CSRF_HEADER) or ""
    if not secrets.compare_digest(csrf_cookie, csrf_header):
        raise TokenMismatchError("CSRF token mismatch.")


async def get_document(
    request: Request, settings: Settings = Depends(get_request_settings)
) -> dict[str, Any]:
    """Read and decode the JSON API document sent with a write request."""

    if not is_json_api_content(request.headers.get("Content-Type")):
        raise JsonApiException(
            f"Expecting request content type to be {MEDIA_TYPE}.",
            status_code=415,
        )
    body = await request.body()
    return decode_document(body, max_depth=settings.json_max_depth)
