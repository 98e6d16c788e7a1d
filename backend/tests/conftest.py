from __future__ import annotations

import asyncio
from pathlib import Path
import sys

import pytest
from fastapi.testclient import TestClient


# Ensure `import quillpost.*` works when pytest chooses an import mode that
# doesn't automatically add the project root to sys.path.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))


JSON_API = "application/vnd.api+json"
JSON_API_HEADERS = {"Accept": JSON_API, "Content-Type": JSON_API}


@pytest.fixture()
def client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    # Isolated sqlite DB per test.
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("QUILLPOST_DB_URL", f"sqlite+aiosqlite:///{db_path.as_posix()}")
    monkeypatch.setenv("QUILLPOST_API_PREFIX", "/api/v1")
    monkeypatch.delenv("QUILLPOST_ERRORS", raising=False)
    monkeypatch.delenv("QUILLPOST_MAINTENANCE_MODE", raising=False)

    # Clear settings cache and reset DB engine/sessionmaker.
    from quillpost.core.settings import get_settings

    get_settings.cache_clear()

    from quillpost.db import session as db_session

    db_session._engine = None  # noqa: SLF001
    db_session._sessionmaker = None  # noqa: SLF001

    # Import models so Base.metadata is fully populated.
    import quillpost.models  # noqa: F401

    from quillpost.db.base import Base

    async def _init_schema() -> None:
        engine = db_session.get_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        # Engine connections are bound to this loop; start fresh for the app.
        await engine.dispose()

    asyncio.run(_init_schema())

    from quillpost.main import create_app

    app = create_app()
    return TestClient(app)
