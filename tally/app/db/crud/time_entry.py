"""Time entry CRUD operations."""
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tally.app.db.models import TimeEntry


async def create_time_entry(
    session: AsyncSession,
    user_id: str,
    started_at: datetime,
    description: Optional[str] = None,
) -> TimeEntry:
    entry = TimeEntry(user_id=user_id, started_at=started_at, description=description)
    session.add(entry)
    await session.flush()
    return entry


async def get_time_entry(
    session: AsyncSession,
    user_id: str,
    entry_id: str,
) -> Optional[TimeEntry]:
    result = await session.execute(
        select(TimeEntry).where(TimeEntry.id == entry_id, TimeEntry.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def list_time_entries_between(
    session: AsyncSession,
    user_id: str,
    start: datetime,
    end: datetime,
) -> List[TimeEntry]:
    """Entries of a user started in ``[start, end)``, oldest first."""
    result = await session.execute(
        select(TimeEntry)
        .where(
            TimeEntry.user_id == user_id,
            TimeEntry.started_at >= start,
            TimeEntry.started_at < end,
        )
        .order_by(TimeEntry.started_at.asc())
    )
    return list(result.scalars().all())


async def delete_time_entries(
    session: AsyncSession,
    user_id: str,
    entry_ids: Sequence[str],
) -> List[str]:
    """Delete the given entries owned by the user.

    Returns:
        Ids that were actually deleted
    """
    if not entry_ids:
        return []
    result = await session.execute(
        select(TimeEntry.id).where(
            TimeEntry.id.in_(entry_ids), TimeEntry.user_id == user_id
        )
    )
    owned = list(result.scalars().all())
    if owned:
        await session.execute(delete(TimeEntry).where(TimeEntry.id.in_(owned)))
    return owned
