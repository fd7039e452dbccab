"""ActivityLog: immutable audit trail for every task mutation.

Rows are only ever inserted. `task_id` deliberately has no foreign key and
`task_title` is copied at write time, so history stays readable after the
task is deleted.
"""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.utils.dates import utcnow
from app.models.user import User


class ActivityAction(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    STATUS_CHANGED = "status_changed"
    ASSIGNED = "assigned"
    COMPLETED = "completed"


class ActivityLog(Base):
    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_task_created", "task_id", "created_at"),
        Index("ix_activity_logs_actor_created", "performed_by", "created_at"),
    )

    # Monotonic id doubles as a tie-breaker for newest-first ordering
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # ── What ───────────────────────────────────────────────────
    action: Mapped[ActivityAction] = mapped_column(
        SAEnum(
            ActivityAction,
            name="activity_action",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
    )

    # ── Target ─────────────────────────────────────────────────
    task_id: Mapped[str] = mapped_column(String(36), nullable=False)
    task_title: Mapped[str] = mapped_column(String(100), nullable=False)

    # ── Who ────────────────────────────────────────────────────
    performed_by: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False
    )

    # ── Context ────────────────────────────────────────────────
    # Tagged snapshots: {"kind": "task", "task": {...}} | {"kind": "fields", "values": {...}}
    previous_value: Mapped[dict | None] = mapped_column(JSON)
    new_value: Mapped[dict | None] = mapped_column(JSON)
    details: Mapped[str | None] = mapped_column(Text)
    ip_address: Mapped[str | None] = mapped_column(String(64))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    actor: Mapped[User] = relationship(lazy="selectin")
