from __future__ import annotations

import datetime as dt
import logging
from typing import Any

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quillpost.api.deps import get_document, get_request_settings, verify_csrf_token
from quillpost.core.errors import JsonApiException, NotFoundError
from quillpost.core.jsonapi import JsonApiResponse
from quillpost.core.settings import Settings
from quillpost.db.session import get_db
from quillpost.models.post import Post


RESOURCE_TYPE = "posts"

# Largest signed 64-bit key the posts table can hold.
MAX_ID = 2**63 - 1

router = APIRouter(
    prefix="/posts",
    tags=["posts"],
    dependencies=[Depends(verify_csrf_token)],
)


logger = logging.getLogger(__name__)


class PostAttributesIn(BaseModel):
    title: str | None = None
    content: str | None = None


def _isoformat_z(value: dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    s = value.astimezone(dt.timezone.utc).isoformat()
    if s.endswith("+00:00"):
        return s.removesuffix("+00:00") + "Z"
    return s


def _serialize(post: Post, settings: Settings) -> dict[str, Any]:
    return {
        "type": RESOURCE_TYPE,
        "id": str(post.id),
        "attributes": {
            "title": post.title,
            "content": post.content,
            "createdAt": _isoformat_z(post.created_at),
        },
        "links": {
            "self": f"{settings.api_prefix.rstrip('/')}/{RESOURCE_TYPE}/{post.id}",
        },
    }


def _parse_id(post_id: str) -> int:
    # Ids that cannot exist are indistinguishable from missing ones.
    if not (post_id.isascii() and post_id.isdigit()):
        raise NotFoundError()
    value = int(post_id)
    if value > MAX_ID:
        raise NotFoundError()
    return value


async def _get_post(db: AsyncSession, post_id: str) -> Post:
    post = await db.get(Post, _parse_id(post_id))
    if post is None:
        raise NotFoundError()
    return post


def _resource_attributes(
    document: dict[str, Any], *, expected_id: str | None = None
) -> PostAttributesIn:
    data = document.get("data")
    if not isinstance(data, dict):
        raise JsonApiException(
            "Expecting document to contain a resource object.",
            status_code=400,
        )

    resource_type = data.get("type")
    if resource_type != RESOURCE_TYPE:
        raise JsonApiException(
            f"Resource type {resource_type!r} is not supported by this endpoint.",
            status_code=409,
        )
    if expected_id is not None and str(data.get("id")) != expected_id:
        raise JsonApiException(
            "Resource id does not match the endpoint.",
            status_code=409,
        )

    raw = data.get("attributes") or {}
    try:
        return PostAttributesIn.model_validate(raw)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "attributes"
        raise JsonApiException(
            f"The {field} member is invalid: {first.get('msg')}",
            status_code=422,
        ) from e


@router.get("")
async def list_posts(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_request_settings),
) -> JsonApiResponse:
    posts = (await db.execute(select(Post).order_by(Post.id))).scalars().all()
    return JsonApiResponse(content={"data": [_serialize(p, settings) for p in posts]})


@router.get("/{post_id}")
async def read_post(
    post_id: str,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_request_settings),
) -> JsonApiResponse:
    post = await _get_post(db, post_id)
    return JsonApiResponse(content={"data": _serialize(post, settings)})


@router.post("")
async def create_post(
    document: dict[str, Any] = Depends(get_document),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_request_settings),
) -> JsonApiResponse:
    attributes = _resource_attributes(document)
    if not attributes.title:
        raise JsonApiException("The title member is required.", status_code=422)

    post = Post(title=attributes.title, content=attributes.content)
    db.add(post)
    await db.commit()
    await db.refresh(post)
    logger.info("Created post id=%s", post.id)

    resource = _serialize(post, settings)
    return JsonApiResponse(
        status_code=201,
        content={"data": resource},
        headers={"Location": resource["links"]["self"]},
    )


@router.patch("/{post_id}")
async def update_post(
    post_id: str,
    document: dict[str, Any] = Depends(get_document),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_request_settings),
) -> JsonApiResponse:
    post = await _get_post(db, post_id)
    attributes = _resource_attributes(document, expected_id=post_id)

    provided = attributes.model_dump(exclude_unset=True)
    if "title" in provided:
        if not attributes.title:
            raise JsonApiException("The title member cannot be empty.", status_code=422)
        post.title = attributes.title
    if "content" in provided:
        post.content = attributes.content

    await db.commit()
    await db.refresh(post)
    return JsonApiResponse(content={"data": _serialize(post, settings)})


@router.delete("/{post_id}", status_code=204)
async def delete_post(post_id: str, db: AsyncSession = Depends(get_db)) -> Response:
    post = await _get_post(db, post_id)
    await db.delete(post)
    await db.commit()
    logger.info("Deleted post id=%s", post_id)
    return Response(status_code=204)
