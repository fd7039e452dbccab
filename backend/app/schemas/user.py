"""Pydantic schemas for user lookups."""

from datetime import datetime

from app.models.user import UserRole
from app.schemas.common import CamelModel, Envelope


class UserOut(CamelModel):
    id: str
    name: str
    email: str
    role: UserRole
    is_active: bool
    created_at: datetime


class UserResponse(Envelope):
    user: UserOut


class UserListResponse(Envelope):
    count: int
    users: list[UserOut]


class UserRoleUpdate(CamelModel):
    role: UserRole
