"""User CRUD operations."""
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tally.app.core.security import generate_api_key, hash_api_key
from tally.app.db.models import User, UserRole
from tally.app.db.pagination import Page, paginated
from tally.app.db.utils import LIKE_ESCAPE, contains_pattern


async def lookup_user_by_hash(
    session: AsyncSession,
    api_key_hash: str
) -> Optional[User]:
    """Find a user by their API key hash.

    Args:
        session: Database session from FastAPI dependency
        api_key_hash: The hashed API key to look up

    Returns:
        User object if found, None otherwise
    """
    result = await session.execute(
        select(User).where(User.api_key_hash == api_key_hash)
    )
    return result.scalar_one_or_none()


async def create_user(
    session: AsyncSession,
    name: str,
    email: str,
    role: UserRole = UserRole.USER,
) -> tuple[User, str]:
    """Create a user and a fresh API key.

    The raw key is returned once and only its hash is stored. The caller
    flushes or commits; a duplicate email surfaces as IntegrityError then.

    Returns:
        Tuple of (user, raw_api_key)
    """
    api_key = generate_api_key()
    user = User(
        name=name,
        email=email,
        role=role,
        api_key_hash=hash_api_key(api_key),
    )
    session.add(user)
    await session.flush()
    return user, api_key


async def list_users_page(
    session: AsyncSession,
    page: int,
    size: int,
    search: Optional[str] = None,
    role: Optional[UserRole] = None,
) -> Page:
    """List users ordered by creation date, optionally filtered."""
    stmt = select(User)
    if search:
        pattern = contains_pattern(search)
        stmt = stmt.where(
            or_(
                User.name.ilike(pattern, escape=LIKE_ESCAPE),
                User.email.ilike(pattern, escape=LIKE_ESCAPE),
            )
        )
    if role is not None:
        stmt = stmt.where(User.role == role)
    stmt = stmt.order_by(User.created_at.asc(), User.id.asc())
    return await paginated(session, stmt, page, size)
