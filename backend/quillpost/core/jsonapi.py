from __future__ import annotations

import json
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from quillpost.core.errors import DocumentRequiredError, InvalidJsonError


MEDIA_TYPE = "application/vnd.api+json"


class JsonApiResponse(JSONResponse):
    media_type = MEDIA_TYPE


def _accepts_json_api(accept: str | None) -> bool:
    if not accept:
        return False
    for part in accept.split(","):
        media_type = part.split(";", 1)[0].strip().lower()
        if media_type == MEDIA_TYPE:
            return True
    return False


def is_under_prefix(path: str, api_prefix: str) -> bool:
    prefix = api_prefix.rstrip("/")
    return bool(prefix) and (path == prefix or path.startswith(prefix + "/"))


def wants_json_api(request: Request, api_prefix: str) -> bool:
    """True when the error for this request must be a JSON API document.

    Requests under the API prefix always qualify; anything else qualifies
    only if the client listed the JSON API media type in `Accept`.
    """

    if is_under_prefix(request.url.path, api_prefix):
        return True
    return _accepts_json_api(request.headers.get("Accept"))


def is_json_api_content(content_type: str | None) -> bool:
    if not content_type:
        return False
    return content_type.split(";", 1)[0].strip().lower() == MEDIA_TYPE


class _NonStandardConstant(ValueError):
    pass


def _reject_constant(name: str) -> Any:
    # NaN, Infinity and -Infinity are not JSON.
    raise _NonStandardConstant(name)


def _depth(value: Any) -> int:
    # Iterative so deeply nested payloads cannot hit the recursion limit.
    deepest = 0
    stack: list[tuple[Any, int]] = [(value, 1)]
    while stack:
        item, level = stack.pop()
        if isinstance(item, dict):
            deepest = max(deepest, level)
            stack.extend((v, level + 1) for v in item.values())
        elif isinstance(item, list):
            deepest = max(deepest, level)
            stack.extend((v, level + 1) for v in item)
    return deepest


def decode_document(body: bytes, *, max_depth: int = 512) -> dict[str, Any]:
    """Decode a request body into a JSON API document.

    Raises DocumentRequiredError for an empty body and InvalidJsonError for
    anything that is not a JSON object.
    """

    if not body.strip():
        raise DocumentRequiredError()

    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        raise InvalidJsonError(
            "Malformed UTF-8 characters, possibly incorrectly encoded", code=5
        )

    try:
        decoded = json.loads(text, parse_constant=_reject_constant)
    except RecursionError:
        raise InvalidJsonError("Maximum stack depth exceeded", code=1)
    except (json.JSONDecodeError, _NonStandardConstant):
        raise InvalidJsonError("Syntax error", code=4)

    if _depth(decoded) > max_depth:
        raise InvalidJsonError("Maximum stack depth exceeded", code=1)

    if not isinstance(decoded, dict):
        raise InvalidJsonError("Expecting JSON to decode to an object.", code=None)
    return decoded
