"""Read side of tasks: scoped listing, single lookup and statistics.

Listing composes three independent pieces into one SELECT:

  scope   → who may see what (from the access policy)
  filters → status / priority / free-text search
  sort    → whitelisted column + direction, id as tie-breaker
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import and_, func, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import policy
from app.auth.policy import Principal, Scope
from app.middleware.exceptions import PermissionDeniedError, ValidationFailedError
from app.models.task import Task, TaskPriority, TaskStatus
from app.schemas.activity import ActivityEntry
from app.schemas.task import TaskOut, TaskStats
from app.services import activity_log
from app.services.task_service import get_task_or_404

# Wire name → column
SORT_FIELDS = {
    "createdAt": Task.created_at,
    "updatedAt": Task.updated_at,
    "dueDate": Task.due_date,
    "priority": Task.priority,
    "status": Task.status,
    "title": Task.title,
    "completedAt": Task.completed_at,
}


@dataclass
class TaskFilters:
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    search: str | None = None


def scope_predicate(scope: Scope):
    clauses = []
    if scope.assigned_to is not None:
        clauses.append(Task.assigned_to == scope.assigned_to)
    if scope.created_by is not None:
        clauses.append(Task.created_by == scope.created_by)
    return and_(true(), *clauses)


def filter_predicate(filters: TaskFilters):
    clauses = []
    if filters.status is not None:
        clauses.append(Task.status == filters.status)
    if filters.priority is not None:
        clauses.append(Task.priority == filters.priority)
    search = (filters.search or "").strip()
    if search:
        clauses.append(or_(
            Task.title.icontains(search, autoescape=True),
            Task.description.icontains(search, autoescape=True),
        ))
    return and_(true(), *clauses)


def sort_clause(sort_by: str, sort_order: str) -> list:
    column = SORT_FIELDS.get(sort_by)
    if column is None:
        raise ValidationFailedError(
            f"Invalid sort field '{sort_by}'",
            details={"allowed": sorted(SORT_FIELDS)},
        )
    if sort_order == "asc":
        return [column.asc(), Task.id.asc()]
    return [column.desc(), Task.id.desc()]


async def list_tasks(
    db: AsyncSession,
    scope: Scope,
    filters: TaskFilters,
    *,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
) -> tuple[list[TaskOut], int]:
    """One page of tasks matching scope and filters, plus the total count."""
    order = sort_clause(sort_by, sort_order)
    where = and_(scope_predicate(scope), filter_predicate(filters))

    total = await db.scalar(select(func.count()).select_from(Task).where(where)) or 0

    result = await db.execute(
        select(Task)
        .where(where)
        .order_by(*order)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    tasks = [TaskOut.model_validate(t) for t in result.scalars().all()]
    return tasks, total


async def get_task(
    db: AsyncSession,
    principal: Principal,
    task_id: str,
) -> tuple[TaskOut, list[ActivityEntry]]:
    """A single task with its most recent activity."""
    task = await get_task_or_404(db, task_id)
    decision = policy.decide_read(principal, task)
    if not decision.allow:
        raise PermissionDeniedError(decision.reason)

    logs = await activity_log.recent_for_task(db, task_id, limit=20)
    return TaskOut.model_validate(task), logs


async def get_task_stats(db: AsyncSession, principal: Principal) -> TaskStats:
    """Counts per status and per priority within the caller's stats scope.

    Every status and priority appears in the result, zero when absent.
    """
    where = scope_predicate(policy.stats_scope(principal))

    by_status = {s.value: 0 for s in TaskStatus}
    rows = await db.execute(
        select(Task.status, func.count()).where(where).group_by(Task.status)
    )
    for value, count in rows.all():
        by_status[TaskStatus(value).value] = count

    by_priority = {p.value: 0 for p in TaskPriority}
    rows = await db.execute(
        select(Task.priority, func.count()).where(where).group_by(Task.priority)
    )
    for value, count in rows.all():
        by_priority[TaskPriority(value).value] = count

    return TaskStats(
        total=sum(by_status.values()),
        by_status=by_status,
        by_priority=by_priority,
    )
