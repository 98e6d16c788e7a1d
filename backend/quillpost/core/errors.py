from __future__ import annotations

from typing import Any


class JsonApiException(Exception):
    """Application error that must be rendered as a JSON API error object.

    Route handlers raise these; the exception handlers registered in
    `quillpost.main` classify and translate them.
    """

    status_code: int = 400

    def __init__(
        self,
        detail: str | None = None,
        *,
        status_code: int | None = None,
        title: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(detail or "")
        self.detail = detail
        self.title = title
        self.headers = headers
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(JsonApiException):
    status_code = 404


class DocumentRequiredError(JsonApiException):
    """The request body did not contain a JSON API document."""

    status_code = 400


class InvalidJsonError(JsonApiException):
    """The request body could not be decoded as JSON.

    `code` mirrors the numeric decoder error (4 = syntax error).
    """

    status_code = 400

    def __init__(self, detail: str | None = "Syntax error", *, code: int | None = 4) -> None:
        super().__init__(detail)
        self.code = code


class MaintenanceModeError(JsonApiException):
    status_code = 503

    def __init__(self, message: str | None = None, *, retry_after: int | None = None) -> None:
        headers = {"Retry-After": str(retry_after)} if retry_after is not None else None
        super().__init__(message, headers=headers)
        self.retry_after = retry_after


class TokenMismatchError(JsonApiException):
    """The session (CSRF) token sent by the client does not match."""

    status_code = 419

    def __init__(self, message: str | None = "CSRF token mismatch.") -> None:
        super().__init__(message)


def make_error_payload(
    *, code: str, message: str, trace_id: str | None, details: Any | None
) -> dict[str, Any]:
    """Plain error envelope for clients that did not ask for JSON API."""

    return {
        "code": code,
        "message": message,
        "details": details,
        "trace_id": trace_id,
    }
