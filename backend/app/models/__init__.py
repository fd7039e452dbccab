"""Aggregate model imports for Alembic auto-detection."""

from app.models.user import User, UserRole  # noqa: F401
from app.models.task import Task, TaskPriority, TaskStatus  # noqa: F401
from app.models.activity_log import ActivityAction, ActivityLog  # noqa: F401
