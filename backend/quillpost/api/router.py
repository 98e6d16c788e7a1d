from __future__ import annotations

from fastapi import APIRouter

from quillpost.api.posts import router as posts_router


# Mounted under Settings.api_prefix by create_app().
api_router = APIRouter()
api_router.include_router(posts_router)
