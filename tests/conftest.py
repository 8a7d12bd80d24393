import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from tally.app.core.config import settings
from tally.app.db import crud
from tally.app.db.async_session import get_db
from tally.app.db.base import Base
from tally.app.db.models import UserRole
from tally.app.main import create_app


def _sqlite_url_from_absolute_path(path: str) -> str:
    # SQLAlchemy expects 4 slashes for absolute paths. The path already starts
    # with '/', so strip it when appending after '////'.
    return f"sqlite+aiosqlite:////{path.lstrip('/')}"


@pytest.fixture
def engine(tmp_path):
    # NullPool: every asyncio.run() and every TestClient request gets its own loop
    engine = create_async_engine(
        _sqlite_url_from_absolute_path(str(tmp_path / "tally_test.db")),
        poolclass=NullPool,
    )

    async def init_db() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(init_db())
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
def run_db(session_maker):
    """Run ``fn(session)`` in a committed transaction and return its result."""

    def _run(fn):
        async def _go():
            async with session_maker() as session:
                result = await fn(session)
                await session.commit()
                return result

        return asyncio.run(_go())

    return _run


@pytest.fixture
def app(session_maker, monkeypatch):
    monkeypatch.setattr(settings, "disable_rate_limit", True)

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app()
    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def make_user(run_db):
    """Create a user and return ``(user_id, auth_headers)``."""

    def _make(email: str = "alice@example.com", role: UserRole = UserRole.USER, name: str = "Alice"):
        user, api_key = run_db(lambda s: crud.create_user(s, name=name, email=email, role=role))
        return user.id, {"Authorization": f"Bearer {api_key}"}

    return _make


@pytest.fixture
def user_headers(make_user):
    return make_user()[1]


@pytest.fixture
def admin_headers(make_user):
    return make_user(email="admin@example.com", role=UserRole.ADMIN, name="Admin")[1]
