"""Order reference prefix endpoints.

A prefix such as ``SHOP`` lets orders be created without typing a
reference: the order gets the next number of that prefix (``SHOP-1``,
``SHOP-2``, ...).
"""

import re
from typing import Optional

from fastapi import APIRouter, status
from pydantic import BaseModel, ConfigDict, field_validator

from tally.app.core.logging import get_log_context, get_logger
from tally.app.db import crud
from tally.app.db.dependencies import SessionDep
from tally.app.db.models import OrderReferencePrefix
from tally.app.exceptions import BadRequestError, NotFoundError
from tally.app.middleware.auth import CurrentUser
from tally.app.middleware.rate_limit import UserRateLimitDep

logger = get_logger(__name__)

router = APIRouter(prefix="/inventory/order-reference-prefixes", tags=["inventory"])

PREFIX_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,20}$")


def _validate_prefix(v: str) -> str:
    v = v.strip()
    if not PREFIX_PATTERN.match(v):
        raise ValueError("Prefix: 1 to 20 characters, alphanumeric, hyphen, underscore only")
    return v


class PrefixCreate(BaseModel):
    prefix: str

    @field_validator("prefix")
    @classmethod
    def check_prefix(cls, v: str) -> str:
        return _validate_prefix(v)


class PrefixUpdate(BaseModel):
    prefix: Optional[str] = None

    @field_validator("prefix")
    @classmethod
    def check_prefix(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _validate_prefix(v)


class PrefixOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    prefix: str


class NextReferenceOut(BaseModel):
    reference: str


async def _get_owned_prefix(session, user_id: str, prefix_id: str) -> OrderReferencePrefix:
    row = await crud.get_reference_prefix(session, user_id, prefix_id)
    if row is None:
        raise NotFoundError("Prefix not found")
    return row


@router.get("", response_model=list[PrefixOut])
async def list_prefixes(session: SessionDep, user: CurrentUser) -> list[OrderReferencePrefix]:
    return await crud.list_reference_prefixes(session, user.id)


@router.post("", response_model=PrefixOut, status_code=status.HTTP_201_CREATED)
async def create_prefix(
    data: PrefixCreate,
    session: SessionDep,
    user: UserRateLimitDep,
) -> OrderReferencePrefix:
    if await crud.reference_prefix_exists(session, user.id, data.prefix):
        raise BadRequestError("Prefix already exists")
    row = await crud.create_reference_prefix(session, user.id, data.prefix)
    logger.info(
        "Order reference prefix created",
        extra=get_log_context(user_id=user.id, prefix=row.prefix),
    )
    return row


@router.patch("/{prefix_id}", response_model=PrefixOut)
async def update_prefix(
    prefix_id: str,
    data: PrefixUpdate,
    session: SessionDep,
    user: UserRateLimitDep,
) -> OrderReferencePrefix:
    row = await _get_owned_prefix(session, user.id, prefix_id)
    if data.prefix is None or data.prefix == row.prefix:
        return row
    if await crud.reference_prefix_exists(session, user.id, data.prefix, exclude_id=row.id):
        raise BadRequestError("Prefix already exists")
    row.prefix = data.prefix
    await session.flush()
    return row


@router.delete("/{prefix_id}")
async def delete_prefix(prefix_id: str, session: SessionDep, user: UserRateLimitDep) -> dict:
    """Delete a prefix; the last one of a user cannot be deleted."""
    row = await _get_owned_prefix(session, user.id, prefix_id)
    if await crud.count_reference_prefixes(session, user.id) <= 1:
        raise BadRequestError(
            "Cannot delete the last prefix. At least one is required to create orders."
        )
    await crud.delete_reference_prefix(session, row.id)
    return {"id": row.id, "deleted": True}


@router.get("/{prefix_id}/next-reference", response_model=NextReferenceOut)
async def next_reference(prefix_id: str, session: SessionDep, user: CurrentUser) -> NextReferenceOut:
    """Preview the reference the next order created with this prefix gets."""
    row = await _get_owned_prefix(session, user.id, prefix_id)
    reference = await crud.next_reference_for_prefix(session, user.id, row.prefix)
    return NextReferenceOut(reference=reference)
