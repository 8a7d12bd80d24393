"""Time tracking endpoints."""

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, ConfigDict, Field

from tally.app.core.logging import get_log_context, get_logger
from tally.app.core.utils import as_utc, day_bounds
from tally.app.db import crud
from tally.app.db.dependencies import SessionDep
from tally.app.db.models import TimeEntry
from tally.app.exceptions import BadRequestError, NotFoundError
from tally.app.middleware.auth import CurrentUser
from tally.app.middleware.rate_limit import UserRateLimitDep

logger = get_logger(__name__)

router = APIRouter(prefix="/time/entries", tags=["time"])


class TimeEntryCreate(BaseModel):
    started_at: datetime
    description: Optional[str] = Field(None, max_length=5000)


class TimeEntryUpdate(BaseModel):
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    description: Optional[str] = Field(None, max_length=5000)


class TimeEntryDelete(BaseModel):
    ids: list[str] = Field(..., min_length=1, max_length=1000)


class TimeEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    started_at: datetime
    ended_at: Optional[datetime]
    description: Optional[str]


@router.post("", response_model=TimeEntryOut, status_code=status.HTTP_201_CREATED)
async def create_time_entry(
    data: TimeEntryCreate,
    session: SessionDep,
    user: UserRateLimitDep,
) -> TimeEntry:
    return await crud.create_time_entry(
        session, user.id, as_utc(data.started_at), data.description
    )


@router.patch("/{entry_id}", response_model=TimeEntryOut)
async def update_time_entry(
    entry_id: str,
    data: TimeEntryUpdate,
    session: SessionDep,
    user: UserRateLimitDep,
) -> TimeEntry:
    """Update an entry; the end may not precede the start."""
    entry = await crud.get_time_entry(session, user.id, entry_id)
    if entry is None:
        raise NotFoundError("Time entry not found")

    changes = data.model_dump(exclude_unset=True)
    started_at = as_utc(changes.get("started_at") or entry.started_at)
    ended_at = changes.get("ended_at", entry.ended_at)
    if ended_at is not None and as_utc(ended_at) < started_at:
        raise BadRequestError("End time cannot be before start time")

    if "started_at" in changes:
        entry.started_at = started_at
    if "ended_at" in changes:
        entry.ended_at = as_utc(ended_at) if ended_at is not None else None
    if "description" in changes:
        entry.description = changes["description"]
    await session.flush()
    return entry


@router.post("/delete")
async def delete_time_entries(
    data: TimeEntryDelete,
    session: SessionDep,
    user: UserRateLimitDep,
) -> dict:
    deleted = await crud.delete_time_entries(session, user.id, data.ids)
    logger.info(
        "Time entries deleted",
        extra=get_log_context(user_id=user.id, count=len(deleted)),
    )
    return {"deleted": deleted}


@router.get("", response_model=list[TimeEntryOut])
async def list_time_entries(
    session: SessionDep,
    user: CurrentUser,
    day: date = Query(...),
) -> list[TimeEntry]:
    start, end = day_bounds(day)
    return await crud.list_time_entries_between(session, user.id, start, end)
