"""Append-only activity log for task mutations.

Usage:
    await record(
        db, ActivityAction.CREATED,
        task_id=task.id, task_title=task.title, actor_id=principal.id,
        new=TaskSnapshot(task=snapshot),
        details='Task "Roadmap" was created',
        origin="203.0.113.7",
    )

Writes are best-effort: the entry is committed on its own, after (or, for
deletes, before) the task write it describes, and a failure is logged and
rolled back without touching the primary mutation.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.policy import Principal, restricts_activity_to_assignments
from app.models.activity_log import ActivityAction, ActivityLog
from app.models.task import Task
from app.schemas.activity import ActivityEntry, FieldSnapshot, TaskSnapshot

logger = logging.getLogger(__name__)

Snapshot = TaskSnapshot | FieldSnapshot


async def record(
    db: AsyncSession,
    action: ActivityAction,
    *,
    task_id: str,
    task_title: str,
    actor_id: str,
    previous: Snapshot | None = None,
    new: Snapshot | None = None,
    details: str | None = None,
    origin: str | None = None,
) -> ActivityLog | None:
    """Append and commit one entry. Returns None if the write failed."""
    try:
        entry = ActivityLog(
            action=action,
            task_id=task_id,
            task_title=task_title,
            performed_by=actor_id,
            previous_value=previous.model_dump(mode="json") if previous else None,
            new_value=new.model_dump(mode="json") if new else None,
            details=details,
            ip_address=origin,
        )
        db.add(entry)
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception(
            "Failed to write activity log entry (%s on task %s)", action.value, task_id
        )
        return None
    return entry


async def recent_for_task(
    db: AsyncSession,
    task_id: str,
    limit: int = 20,
) -> list[ActivityEntry]:
    """Latest entries for one task, newest first."""
    result = await db.execute(
        select(ActivityLog)
        .where(ActivityLog.task_id == task_id)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .limit(limit)
    )
    return [ActivityEntry.model_validate(e) for e in result.scalars().all()]


async def query(
    db: AsyncSession,
    principal: Principal,
    *,
    task_id: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[ActivityEntry], int]:
    """Page through the log, newest first.

    For plain users the filter is intersected with the tasks currently
    assigned to them, so history of deleted or reassigned tasks drops out.
    """
    conditions = []
    if task_id:
        conditions.append(ActivityLog.task_id == task_id)
    if restricts_activity_to_assignments(principal):
        assigned = select(Task.id).where(Task.assigned_to == principal.id)
        conditions.append(ActivityLog.task_id.in_(assigned))

    total_r = await db.execute(
        select(func.count()).select_from(ActivityLog).where(*conditions)
    )
    total = total_r.scalar() or 0

    result = await db.execute(
        select(ActivityLog)
        .where(*conditions)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    entries = [ActivityEntry.model_validate(e) for e in result.scalars().all()]
    return entries, total
