from __future__ import annotations

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from quillpost.api.health import router as health_router
from quillpost.api.router import api_router
from quillpost.core.error_translator import ErrorKind, classify, render, translate
from quillpost.core.errors import JsonApiException, MaintenanceModeError, make_error_payload
from quillpost.core.jsonapi import is_under_prefix, wants_json_api
from quillpost.core.logging_config import configure_logging
from quillpost.core.settings import Settings, get_settings


logger = logging.getLogger(__name__)


_PLAIN_CODES = {
    ErrorKind.HTTP: "HTTP_ERROR",
    ErrorKind.GENERIC: "INTERNAL_ERROR",
}


def _with_trace_id_header(
    headers: dict[str, str] | None, trace_id: str | None
) -> dict[str, str] | None:
    """Return headers merged with X-Trace-Id when trace_id is present."""

    if not trace_id:
        return headers
    merged: dict[str, str] = dict(headers or {})
    merged["X-Trace-Id"] = trace_id
    return merged


def _error_response(request: Request, exc: Exception) -> Response:
    # Snapshot per request; replacing app.state.settings takes effect on the next one.
    settings: Settings = request.app.state.settings
    trace_id = getattr(request.state, "trace_id", None)

    condition = classify(exc)
    status, document = translate(condition, settings.errors)
    headers = _with_trace_id_header(dict(condition.headers or {}), trace_id)

    if status >= 500:
        # Only unexpected exceptions carry a useful traceback.
        exc_info = None
        if condition.kind is ErrorKind.GENERIC:
            exc_info = (type(exc), exc, exc.__traceback__)
        logger.error(
            "Request failed with %s (trace_id=%s method=%s path=%s)",
            status,
            trace_id,
            request.method,
            request.url.path,
            exc_info=exc_info,
        )
    else:
        logger.warning(
            "%s error %s (trace_id=%s path=%s)",
            condition.kind.value,
            status,
            trace_id,
            request.url.path,
        )

    if wants_json_api(request, settings.api_prefix):
        return render(status, document, headers)

    error = document.errors[0]
    return JSONResponse(
        status_code=status,
        headers=headers,
        content=make_error_payload(
            code=_PLAIN_CODES.get(condition.kind, condition.kind.name),
            message=error.detail or error.title,
            trace_id=trace_id,
            details=None,
        ),
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Quillpost API")
    app.state.settings = settings

    # Registered first so it runs inside the trace-id middleware, before routing.
    @app.middleware("http")
    async def _maintenance_middleware(request, call_next):
        current: Settings = request.app.state.settings
        if current.maintenance_mode and is_under_prefix(request.url.path, current.api_prefix):
            exc = MaintenanceModeError(
                current.maintenance_message,
                retry_after=current.maintenance_retry_after,
            )
            return _error_response(request, exc)
        return await call_next(request)

    @app.middleware("http")
    async def _trace_id_middleware(request, call_next):
        trace_id = request.headers.get("X-Trace-Id") or str(uuid.uuid4())
        request.state.trace_id = trace_id
        response = await call_next(request)
        response.headers["X-Trace-Id"] = trace_id
        return response

    @app.exception_handler(JsonApiException)
    async def _json_api_error_handler(request, exc: JsonApiException):
        return _error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request, exc: RequestValidationError):
        return _error_response(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error_handler(request, exc: StarletteHTTPException):
        return _error_response(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request, exc: Exception):
        return _error_response(request, exc)

    app.include_router(health_router)
    app.include_router(api_router, prefix=settings.api_prefix.rstrip("/"))

    return app


app = create_app()
