from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.exc import IntegrityError

from tally.app.core.logging import get_log_context, get_logger
from tally.app.db import crud
from tally.app.db.dependencies import SessionDep
from tally.app.db.models import UserRole
from tally.app.db.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from tally.app.exceptions import ConflictError

logger = get_logger(__name__)

router = APIRouter()

class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=320)
    role: UserRole = UserRole.USER

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("invalid email")
        return v


class UserPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    role: UserRole
    created_at: datetime

class UserCreateResponse(BaseModel):
    user: UserPublic
    api_key: str

class UserPage(BaseModel):
    items: list[UserPublic]
    total: int
    page: int
    size: int
    total_pages: int

@router.get("", response_model=UserPage)
async def list_users(
    session: SessionDep,
    page: int = Query(1, ge=1),
    size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    search: Optional[str] = Query(None, max_length=320),
    role: Optional[UserRole] = None,
) -> UserPage:
    """List users, oldest first."""
    result = await crud.list_users_page(
        session,
        page=page,
        size=size,
        search=search.strip() if search else None,
        role=role,
    )
    return UserPage(**result.to_dict(UserPublic.model_validate))

@router.post("", response_model=UserCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_user(data: UserCreate, session: SessionDep) -> UserCreateResponse:
    """Create a user. The API key is only ever returned here."""
    try:
        user, api_key = await crud.create_user(
            session, name=data.name, email=data.email, role=data.role
        )
    except IntegrityError:
        raise ConflictError("Email already registered")

    logger.info("User created", extra=get_log_context(user_id=user.id, role=user.role.value))
    return UserCreateResponse(user=UserPublic.model_validate(user), api_key=api_key)
