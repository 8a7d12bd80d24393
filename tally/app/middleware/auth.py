from typing import Annotated

from fastapi import Depends, Request

from tally.app.core.security import hash_api_key
from tally.app.db.crud import lookup_user_by_hash
from tally.app.db.dependencies import SessionDep
from tally.app.db.models import User, UserRole
from tally.app.exceptions import AuthenticationError, BadRequestError, PermissionDeniedError

MAX_API_KEY_LENGTH = 512


def get_bearer_token(request: Request) -> str | None:
    """Extract Bearer token from Authorization header.

    Args:
        request: The incoming request

    Returns:
        The token string if present, None otherwise
    """
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.replace("Bearer ", "", 1).strip()


async def require_user(request: Request, session: SessionDep) -> User:
    """Validate the API key and return the associated user.

    Raises:
        AuthenticationError: If the API key is missing or unknown
        BadRequestError: If the API key is too long
    """
    token = get_bearer_token(request)
    if not token:
        raise AuthenticationError("Missing API key")

    # Checked before hashing to avoid burning CPU on oversized inputs
    if len(token) > MAX_API_KEY_LENGTH:
        raise BadRequestError(f"API key too long (max {MAX_API_KEY_LENGTH} characters)")

    user = await lookup_user_by_hash(session, hash_api_key(token))
    if user is None:
        raise AuthenticationError()

    request.state.user_id = user.id
    return user


async def require_admin(user: Annotated[User, Depends(require_user)]) -> User:
    """Allow only users with the admin role.

    Raises:
        PermissionDeniedError: If the user is not an admin
    """
    if user.role != UserRole.ADMIN:
        raise PermissionDeniedError()
    return user


CurrentUser = Annotated[User, Depends(require_user)]
AdminUser = Annotated[User, Depends(require_admin)]
