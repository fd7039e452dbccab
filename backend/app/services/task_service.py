"""Task mutation engine.

Every mutation runs the same pipeline, one request at a time and without
locks (last write wins):

  load → policy decision → merge allowed fields → recompute completed_at
       → commit → activity log entry → broadcast

The task commit is the source of truth. The activity entry and the
broadcast are best-effort side channels: their failures are logged and
never fail or roll back the mutation. Deletes write the activity entry
before the row disappears so the full snapshot is kept.

Functions return `TaskOut` models, never live ORM rows.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete as sa_delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import policy
from app.auth.policy import Principal
from app.middleware.exceptions import PermissionDeniedError, ResourceNotFoundError
from app.models.activity_log import ActivityAction
from app.models.task import Task, TaskStatus
from app.models.user import User
from app.schemas.activity import FieldSnapshot, TaskSnapshot
from app.schemas.task import TaskCreate, TaskOut, TaskUpdate
from app.services import activity_log
from app.services.notifier import (
    TASK_CREATED,
    TASK_DELETED,
    TASK_STATUS_UPDATED,
    TASK_UPDATED,
    Notifier,
)
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


# ── Helpers ─────────────────────────────────────────────────

async def get_task_or_404(db: AsyncSession, task_id: str) -> Task:
    """Load a task with its user references, always from the database."""
    result = await db.execute(
        select(Task)
        .where(Task.id == task_id)
        .execution_options(populate_existing=True)
    )
    task = result.scalar_one_or_none()
    if task is None:
        raise ResourceNotFoundError("Task", task_id)
    return task


async def _ensure_user(db: AsyncSession, user_id: str) -> None:
    found = await db.scalar(
        select(User.id).where(User.id == user_id, User.is_active == True)  # noqa: E712
    )
    if found is None:
        raise ResourceNotFoundError("User", user_id)


def _deny_unless(decision: policy.Decision) -> None:
    if not decision.allow:
        raise PermissionDeniedError(decision.reason)


def snapshot(task: TaskOut) -> dict[str, Any]:
    return task.model_dump(mode="json", by_alias=True)


def apply_status(task: Task, new_status: TaskStatus) -> None:
    """Write `status` and keep `completed_at` in step with it.

    Entering completed stamps the time; re-writing completed keeps the
    original stamp; any other status clears it.
    """
    if new_status == TaskStatus.COMPLETED:
        if task.status != TaskStatus.COMPLETED or task.completed_at is None:
            task.completed_at = utcnow()
    else:
        task.completed_at = None
    task.status = new_status


def classify_update(
    changes: dict[str, Any],
    previous_status: TaskStatus,
    previous_assignee: str,
) -> ActivityAction:
    """Pick the audit action for a full update.

    A changed assignee wins over everything, then a change into completed,
    then any other status change.
    """
    if "assigned_to" in changes and changes["assigned_to"] != previous_assignee:
        return ActivityAction.ASSIGNED

    new_status = changes.get("status")
    if new_status is not None and new_status != previous_status:
        if new_status == TaskStatus.COMPLETED:
            return ActivityAction.COMPLETED
        return ActivityAction.STATUS_CHANGED

    return ActivityAction.UPDATED


def _describe_update(action: ActivityAction, task: TaskOut, previous_status: TaskStatus) -> str:
    if action == ActivityAction.ASSIGNED:
        return f'Task "{task.title}" was assigned to {task.assigned_to.name}'
    if action == ActivityAction.COMPLETED:
        return f'Task "{task.title}" was completed'
    if action == ActivityAction.STATUS_CHANGED:
        return (
            f'Task "{task.title}" status changed from '
            f'"{previous_status.value}" to "{task.status.value}"'
        )
    return f'Task "{task.title}" was updated'


async def _notify(notifier: Notifier, event: str, payload: Any) -> None:
    try:
        await notifier.broadcast(event, payload)
    except Exception:
        logger.exception("Broadcast of %s failed", event)


# ── Operations ──────────────────────────────────────────────

async def create_task(
    db: AsyncSession,
    principal: Principal,
    body: TaskCreate,
    notifier: Notifier,
    origin: str | None = None,
) -> TaskOut:
    _deny_unless(policy.decide_create(principal))
    await _ensure_user(db, body.assigned_to)

    task = Task(
        title=body.title,
        description=body.description,
        priority=body.priority,
        due_date=body.due_date,
        assigned_to=body.assigned_to,
        created_by=principal.id,
        tags=body.tags,
    )
    apply_status(task, body.status)
    db.add(task)
    await db.commit()

    created = TaskOut.model_validate(await get_task_or_404(db, task.id))
    current = snapshot(created)

    await activity_log.record(
        db,
        ActivityAction.CREATED,
        task_id=created.id,
        task_title=created.title,
        actor_id=principal.id,
        new=TaskSnapshot(task=current),
        details=f'Task "{created.title}" was created',
        origin=origin,
    )
    await _notify(notifier, TASK_CREATED, current)

    logger.info("Task %s created by %s", created.id, principal.id)
    return created


async def update_task(
    db: AsyncSession,
    principal: Principal,
    task_id: str,
    body: TaskUpdate,
    notifier: Notifier,
    origin: str | None = None,
) -> TaskOut:
    task = await get_task_or_404(db, task_id)

    decision = policy.decide_update(principal, task, body.requested_fields())
    _deny_unless(decision)

    changes = {
        name: value
        for name, value in body.changes().items()
        if name in decision.permitted_fields
    }
    if "assigned_to" in changes:
        await _ensure_user(db, changes["assigned_to"])

    previous = snapshot(TaskOut.model_validate(task))
    previous_status = task.status
    previous_assignee = task.assigned_to

    for name, value in changes.items():
        if name != "status":
            setattr(task, name, value)
    if "status" in changes:
        apply_status(task, changes["status"])

    await db.commit()

    updated = TaskOut.model_validate(await get_task_or_404(db, task_id))
    current = snapshot(updated)
    action = classify_update(changes, previous_status, previous_assignee)

    await activity_log.record(
        db,
        action,
        task_id=updated.id,
        task_title=updated.title,
        actor_id=principal.id,
        previous=TaskSnapshot(task=previous),
        new=TaskSnapshot(task=current),
        details=_describe_update(action, updated, previous_status),
        origin=origin,
    )
    await _notify(notifier, TASK_UPDATED, current)
    return updated


async def update_task_status(
    db: AsyncSession,
    principal: Principal,
    task_id: str,
    status: TaskStatus,
    notifier: Notifier,
    origin: str | None = None,
) -> TaskOut:
    task = await get_task_or_404(db, task_id)
    _deny_unless(policy.decide_update_status(principal, task))

    previous_status = task.status
    apply_status(task, status)
    await db.commit()

    updated = TaskOut.model_validate(await get_task_or_404(db, task_id))
    action = (
        ActivityAction.COMPLETED
        if status == TaskStatus.COMPLETED
        else ActivityAction.STATUS_CHANGED
    )

    await activity_log.record(
        db,
        action,
        task_id=updated.id,
        task_title=updated.title,
        actor_id=principal.id,
        previous=FieldSnapshot(values={"status": previous_status.value}),
        new=FieldSnapshot(values={"status": status.value}),
        details=f'Task status changed from "{previous_status.value}" to "{status.value}"',
        origin=origin,
    )
    await _notify(notifier, TASK_STATUS_UPDATED, {"taskId": updated.id, "status": status.value})
    return updated


async def delete_task(
    db: AsyncSession,
    principal: Principal,
    task_id: str,
    notifier: Notifier,
    origin: str | None = None,
) -> None:
    task = await get_task_or_404(db, task_id)
    _deny_unless(policy.decide_delete(principal, task))

    doomed = TaskOut.model_validate(task)

    # Logged first: the snapshot must exist before the row is gone
    await activity_log.record(
        db,
        ActivityAction.DELETED,
        task_id=doomed.id,
        task_title=doomed.title,
        actor_id=principal.id,
        previous=TaskSnapshot(task=snapshot(doomed)),
        details=f'Task "{doomed.title}" was deleted',
        origin=origin,
    )

    await db.execute(sa_delete(Task).where(Task.id == task_id))
    await db.commit()

    await _notify(notifier, TASK_DELETED, {"taskId": task_id})
    logger.info("Task %s deleted by %s", task_id, principal.id)
