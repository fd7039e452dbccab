"""User lookup router.

Endpoints:
    GET /api/users          List active users (managers, for assignment)
    GET /api/users/me       Current user's profile
    GET /api/users/{id}     Single user
    PUT /api/users/{id}/role  Change a user's role (managers)
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_current_user, require_role
from app.database import get_db
from app.middleware.exceptions import ResourceNotFoundError
from app.models.user import User, UserRole
from app.schemas.user import UserListResponse, UserOut, UserResponse, UserRoleUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=UserListResponse)
async def list_users(
    role: UserRole | None = None,
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_role(UserRole.MANAGER)),
):
    """List users, active only by default."""
    query = select(User)
    if role is not None:
        query = query.where(User.role == role)
    if not include_inactive:
        query = query.where(User.is_active == True)  # noqa: E712
    query = query.order_by(User.name)
    result = await db.execute(query)
    users = [UserOut.model_validate(u) for u in result.scalars().all()]
    return UserListResponse(
        message="Users retrieved successfully",
        count=len(users),
        users=users,
    )


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)):
    return UserResponse(message="User retrieved successfully", user=UserOut.model_validate(user))


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise ResourceNotFoundError("User", user_id)
    return UserResponse(message="User retrieved successfully", user=UserOut.model_validate(user))


@router.put("/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: str,
    body: UserRoleUpdate,
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(require_role(UserRole.MANAGER)),
):
    """Promote or demote a user.

    Takes effect on the user's next request: the role is read from the
    database on every call, never from the token.
    """
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise ResourceNotFoundError("User", user_id)

    previous = user.role
    user.role = body.role
    await db.flush()
    logger.info(
        "Role of %s changed from %s to %s by %s",
        user.id, previous.value, body.role.value, manager.id,
    )
    return UserResponse(message="User role updated successfully", user=UserOut.model_validate(user))
