"""SQLAlchemy ORM models.

Importing this module should register all tables on Base.metadata.
"""

from __future__ import annotations

from quillpost.models.post import Post

__all__ = ["Post"]
