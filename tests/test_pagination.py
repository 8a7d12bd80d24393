"""Tests for the paginated query helper."""

import pytest
from sqlalchemy import select

from tally.app.db.models import User
from tally.app.db.pagination import Page, paginated
from tally.app.db.utils import contains_pattern, escape_like


class TestPage:
    @pytest.mark.parametrize(
        "total, size, expected",
        [(0, 20, 1), (1, 20, 1), (20, 20, 1), (21, 20, 2), (5, 2, 3)],
    )
    def test_total_pages(self, total, size, expected):
        assert Page(total=total, size=size).total_pages == expected

    def test_to_dict_serializes_items(self):
        page = Page(items=[1, 2], total=2, page=1, size=10)
        assert page.to_dict(str) == {
            "items": ["1", "2"],
            "total": 2,
            "page": 1,
            "size": 10,
            "total_pages": 1,
        }


class TestPaginated:
    @pytest.fixture
    def users(self, run_db):
        async def seed(session):
            session.add_all(
                User(name=f"User {i}", email=f"u{i}@example.com", api_key_hash=f"h{i}")
                for i in range(7)
            )
            await session.flush()

        run_db(seed)

    @pytest.mark.asyncio
    async def test_entity_pages(self, session_maker, users):
        stmt = select(User).order_by(User.name)
        async with session_maker() as session:
            page = await paginated(session, stmt, page=3, size=3)

        assert [u.name for u in page.items] == ["User 6"]
        assert page.total == 7
        assert page.total_pages == 3

    @pytest.mark.asyncio
    async def test_row_pages(self, session_maker, users):
        stmt = select(User.name, User.email).order_by(User.name)
        async with session_maker() as session:
            page = await paginated(session, stmt, page=1, size=2)

        assert [tuple(row) for row in page.items] == [
            ("User 0", "u0@example.com"),
            ("User 1", "u1@example.com"),
        ]

    @pytest.mark.asyncio
    async def test_filtered_total(self, session_maker, users):
        stmt = select(User).where(User.name.in_(["User 1", "User 2"])).order_by(User.name)
        async with session_maker() as session:
            page = await paginated(session, stmt, page=5, size=10)

        assert page.items == []
        assert page.total == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page, size", [(0, 10), (1, 0)])
    async def test_rejects_invalid_arguments(self, session_maker, page, size):
        async with session_maker() as session:
            with pytest.raises(ValueError):
                await paginated(session, select(User), page=page, size=size)


def test_escape_like():
    assert escape_like("50%_off\\") == "50\\%\\_off\\\\"
    assert contains_pattern("a%") == "%a\\%%"
