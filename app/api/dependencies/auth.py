"""
FastAPI dependencies for authenticating back-office requests

Usage:
    @router.post("/{departure_id}/seal")
    async def seal_departure(
        departure_id: int,
        actor: Actor = Depends(require_permission(Permission.VALIDATE_DEPARTURE)),
        db: AsyncSession = Depends(get_db),
    ):
        ...
"""
from typing import Callable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import verify_token
from app.core.exceptions import ForbiddenException, PermissionDeniedError, UnauthorizedException
from app.core.logging import bind_actor, get_logger
from app.core.permissions import Actor, Permission
from app.db.database import get_db
from app.db.models.user import User

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    """
    Resolve the bearer token to an active user.

    Raises 401 when the token is missing, invalid or expired, and 403 when
    the user no longer exists or was deactivated.
    """
    if credentials is None:
        raise UnauthorizedException()

    token_data = verify_token(credentials.credentials)
    if not token_data:
        raise UnauthorizedException("Invalid or expired token")

    user = await db.get(User, token_data.user_id)
    if not user or not user.is_active:
        logger.error(
            "Access denied - user inactive",
            extra_data={
                "user_id": token_data.user_id,
                "user_found": user is not None,
                "is_active": user.is_active if user else None,
            },
        )
        raise ForbiddenException("User account is not active")

    # The stored role wins over the one in the token
    actor = Actor(user_id=user.id, role=user.role)
    bind_actor(actor.user_id)
    return actor


def require_permission(permission: Permission) -> Callable:
    """Dependency factory: the current actor must hold ``permission``"""

    async def _dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not actor.can(permission):
            logger.warning(
                "Permission denied",
                extra_data={
                    "user_id": actor.user_id,
                    "role": actor.role.value,
                    "permission": permission.value,
                },
            )
            raise PermissionDeniedError(actor.role.value, permission.value)
        return actor

    return _dependency
