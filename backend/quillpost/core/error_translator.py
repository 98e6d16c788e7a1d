"""Exception -> JSON API error document translation.

Exceptions are classified once, at the HTTP boundary, into an
`ErrorCondition`. The translator then combines the per-kind default with
the facts carried by the condition and the configured override (if any).
"""

from __future__ import annotations

import dataclasses
import enum
import http
from collections.abc import Callable, Mapping
from typing import Any

from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from quillpost.core.errors import (
    DocumentRequiredError,
    InvalidJsonError,
    JsonApiException,
    MaintenanceModeError,
    NotFoundError,
    TokenMismatchError,
)
from quillpost.core.jsonapi import JsonApiResponse
from quillpost.core.settings import ErrorOverride


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "NotFound"
    DOCUMENT_REQUIRED = "DocumentRequired"
    INVALID_JSON = "InvalidJson"
    MAINTENANCE_MODE = "MaintenanceMode"
    TOKEN_MISMATCH = "TokenMismatch"
    HTTP = "Http"
    GENERIC = "Generic"


@dataclasses.dataclass(frozen=True, slots=True)
class ErrorDefault:
    kind: ErrorKind
    status: int
    title: str
    detail: str | None = None
    code: int | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class ErrorCondition:
    """A classified exception: the kind plus what this occurrence adds."""

    kind: ErrorKind
    status: int | None = None
    title: str | None = None
    detail: str | None = None
    code: int | None = None
    headers: Mapping[str, str] | None = None


class ErrorObject(BaseModel):
    title: str
    status: str
    detail: str | None = None
    code: int | None = None


class ErrorDocument(BaseModel):
    errors: list[ErrorObject]

    def to_content(self) -> dict[str, Any]:
        # Unset members are omitted, never serialized as null.
        return self.model_dump(exclude_none=True)


DEFAULTS: Mapping[ErrorKind, ErrorDefault] = {
    d.kind: d
    for d in (
        ErrorDefault(ErrorKind.NOT_FOUND, 404, "Not Found"),
        ErrorDefault(
            ErrorKind.DOCUMENT_REQUIRED,
            400,
            "Document Required",
            detail="Expecting request to contain a JSON API document.",
        ),
        ErrorDefault(ErrorKind.INVALID_JSON, 400, "Invalid JSON", detail="Syntax error", code=4),
        ErrorDefault(ErrorKind.MAINTENANCE_MODE, 503, "Service Unavailable"),
        ErrorDefault(ErrorKind.TOKEN_MISMATCH, 419, "Invalid Token"),
        ErrorDefault(ErrorKind.HTTP, 500, "Internal Server Error"),
        ErrorDefault(ErrorKind.GENERIC, 500, "Internal Server Error"),
    )
}


def status_phrase(status: int) -> str | None:
    try:
        return http.HTTPStatus(status).phrase
    except ValueError:
        return None


def _from_http_exception(exc: StarletteHTTPException) -> ErrorCondition:
    detail = exc.detail if isinstance(exc.detail, str) else None
    # Starlette fills detail with the reason phrase when none was given.
    if detail == status_phrase(exc.status_code):
        detail = None
    if exc.status_code == 404:
        return ErrorCondition(ErrorKind.NOT_FOUND, detail=detail, headers=exc.headers)
    return ErrorCondition(
        ErrorKind.HTTP,
        status=exc.status_code,
        detail=detail,
        headers=exc.headers,
    )


def _from_validation_error(exc: RequestValidationError) -> ErrorCondition:
    detail = None
    errors = exc.errors()
    if errors:
        first = errors[0]
        loc = ".".join(str(p) for p in first.get("loc", ()))
        detail = f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))
    return ErrorCondition(ErrorKind.HTTP, status=422, detail=detail)


def _from_app_exception(kind: ErrorKind) -> Callable[[Any], ErrorCondition]:
    def build(exc: JsonApiException) -> ErrorCondition:
        return ErrorCondition(
            kind,
            status=exc.status_code if kind is ErrorKind.HTTP else None,
            title=exc.title,
            detail=exc.detail,
            code=getattr(exc, "code", None),
            headers=exc.headers,
        )

    return build


# Most specific types first; the first match wins.
CLASSIFIERS: tuple[tuple[type[BaseException], Callable[[Any], ErrorCondition]], ...] = (
    (NotFoundError, _from_app_exception(ErrorKind.NOT_FOUND)),
    (DocumentRequiredError, _from_app_exception(ErrorKind.DOCUMENT_REQUIRED)),
    (InvalidJsonError, _from_app_exception(ErrorKind.INVALID_JSON)),
    (MaintenanceModeError, _from_app_exception(ErrorKind.MAINTENANCE_MODE)),
    (TokenMismatchError, _from_app_exception(ErrorKind.TOKEN_MISMATCH)),
    (JsonApiException, _from_app_exception(ErrorKind.HTTP)),
    (RequestValidationError, _from_validation_error),
    (StarletteHTTPException, _from_http_exception),
)


def classify(exc: BaseException) -> ErrorCondition:
    for exc_type, build in CLASSIFIERS:
        if isinstance(exc, exc_type):
            return build(exc)
    return ErrorCondition(ErrorKind.GENERIC)


def translate(
    condition: ErrorCondition, overrides: Mapping[str, ErrorOverride] | None = None
) -> tuple[int, ErrorDocument]:
    default = DEFAULTS[condition.kind]
    status = condition.status or default.status

    override = (overrides or {}).get(condition.kind.value)
    if override is not None:
        # Full replacement: the override's title/detail, nothing else from the default.
        error = ErrorObject(title=override.title, status=str(status), detail=override.detail)
        return status, ErrorDocument(errors=[error])

    title = condition.title
    if title is None and condition.status is not None:
        title = status_phrase(condition.status)
    detail = condition.detail if condition.detail is not None else default.detail
    code = condition.code if condition.kind is ErrorKind.INVALID_JSON else default.code

    error = ErrorObject(
        title=title or default.title,
        status=str(status),
        detail=detail,
        code=code,
    )
    return status, ErrorDocument(errors=[error])


def render(
    status: int, document: ErrorDocument, headers: Mapping[str, str] | None = None
) -> JsonApiResponse:
    return JsonApiResponse(
        status_code=status,
        content=document.to_content(),
        headers=dict(headers) if headers else None,
    )
