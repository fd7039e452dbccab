"""Task router.

Endpoints:
    GET    /api/tasks                  List tasks (scoped by role, filtered, paged)
    GET    /api/tasks/my-tasks         Tasks assigned to the caller
    GET    /api/tasks/created-by-me    Tasks the calling manager created
    GET    /api/tasks/stats            Counts by status and priority
    GET    /api/tasks/activity-logs    Activity log (paged, newest first)
    GET    /api/tasks/{id}             Single task with its recent activity
    POST   /api/tasks                  Create task (managers)
    PUT    /api/tasks/{id}             Update task fields
    PATCH  /api/tasks/{id}/status      Update status only
    DELETE /api/tasks/{id}             Delete task
"""

from typing import Literal

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import policy
from app.auth.deps import get_client_ip, get_principal, require_role
from app.auth.policy import Principal, Scope
from app.config import settings
from app.database import get_db
from app.models.task import TaskPriority, TaskStatus
from app.models.user import User, UserRole
from app.schemas.activity import ActivityListResponse
from app.schemas.common import Envelope, page_count
from app.schemas.task import (
    TaskCreate,
    TaskDetailResponse,
    TaskListResponse,
    TaskOut,
    TaskResponse,
    TaskStatsResponse,
    TaskStatusUpdate,
    TaskUpdate,
)
from app.services import activity_log, task_queries, task_service
from app.services.notifier import Notifier, get_notifier
from app.services.task_queries import TaskFilters

router = APIRouter()

SortOrder = Literal["asc", "desc"]


def _page(
    message: str,
    tasks: list[TaskOut],
    total: int,
    page: int,
    limit: int,
) -> TaskListResponse:
    return TaskListResponse(
        message=message,
        count=len(tasks),
        total=total,
        total_pages=page_count(total, limit),
        current_page=page,
        tasks=tasks,
    )


# ── Collections ──────────────────────────────────────────────

@router.get("", response_model=TaskListResponse)
async def list_tasks(
    status: TaskStatus | None = None,
    priority: TaskPriority | None = None,
    search: str | None = None,
    assigned_to: str | None = Query(None, alias="assignedTo"),
    created_by: str | None = Query(None, alias="createdBy"),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: SortOrder = Query("desc", alias="sortOrder"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """List tasks visible to the caller.

    Plain users only ever see their own assignments; `assignedTo` and
    `createdBy` are honored for managers and ignored for everyone else.
    """
    scope = policy.list_scope(principal, assigned_to=assigned_to, created_by=created_by)
    filters = TaskFilters(status=status, priority=priority, search=search)
    tasks, total = await task_queries.list_tasks(
        db, scope, filters,
        page=page, limit=limit, sort_by=sort_by, sort_order=sort_order,
    )
    return _page("Tasks retrieved successfully", tasks, total, page, limit)


@router.get("/my-tasks", response_model=TaskListResponse)
async def my_tasks(
    status: TaskStatus | None = None,
    priority: TaskPriority | None = None,
    search: str | None = None,
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: SortOrder = Query("desc", alias="sortOrder"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Tasks assigned to the caller, whatever its role."""
    filters = TaskFilters(status=status, priority=priority, search=search)
    tasks, total = await task_queries.list_tasks(
        db, Scope(assigned_to=principal.id), filters,
        page=page, limit=limit, sort_by=sort_by, sort_order=sort_order,
    )
    return _page("Assigned tasks retrieved successfully", tasks, total, page, limit)


@router.get("/created-by-me", response_model=TaskListResponse)
async def created_by_me(
    status: TaskStatus | None = None,
    priority: TaskPriority | None = None,
    search: str | None = None,
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: SortOrder = Query("desc", alias="sortOrder"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_role(UserRole.MANAGER)),
):
    """Tasks the calling manager created."""
    filters = TaskFilters(status=status, priority=priority, search=search)
    tasks, total = await task_queries.list_tasks(
        db, Scope(created_by=user.id), filters,
        page=page, limit=limit, sort_by=sort_by, sort_order=sort_order,
    )
    return _page("Created tasks retrieved successfully", tasks, total, page, limit)


@router.get("/stats", response_model=TaskStatsResponse)
async def task_stats(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    stats = await task_queries.get_task_stats(db, principal)
    return TaskStatsResponse(message="Task statistics retrieved successfully", stats=stats)


@router.get("/activity-logs", response_model=ActivityListResponse)
async def activity_logs(
    task_id: str | None = Query(None, alias="taskId"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.activity_page_size, ge=1, le=settings.max_page_size),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Activity log, newest first.

    Plain users only see entries for tasks currently assigned to them.
    """
    logs, total = await activity_log.query(
        db, principal, task_id=task_id, page=page, limit=limit,
    )
    return ActivityListResponse(
        message="Activity logs retrieved successfully",
        count=len(logs),
        total=total,
        total_pages=page_count(total, limit),
        current_page=page,
        logs=logs,
    )


# ── Single task ──────────────────────────────────────────────

@router.get("/{task_id}", response_model=TaskDetailResponse)
async def get_task(
    task_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    task, logs = await task_queries.get_task(db, principal, task_id)
    return TaskDetailResponse(
        message="Task retrieved successfully",
        task=task,
        activity_logs=logs,
    )


@router.post("", response_model=TaskResponse, status_code=201)
async def create_task(
    body: TaskCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
    notifier: Notifier = Depends(get_notifier),
):
    task = await task_service.create_task(
        db, principal, body, notifier, origin=get_client_ip(request),
    )
    return TaskResponse(message="Task created successfully", task=task)


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str,
    body: TaskUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
    notifier: Notifier = Depends(get_notifier),
):
    """Update any subset of fields.

    Assignees who did not create the task may only send `status`.
    """
    task = await task_service.update_task(
        db, principal, task_id, body, notifier, origin=get_client_ip(request),
    )
    return TaskResponse(message="Task updated successfully", task=task)


@router.patch("/{task_id}/status", response_model=TaskResponse)
async def update_task_status(
    task_id: str,
    body: TaskStatusUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
    notifier: Notifier = Depends(get_notifier),
):
    task = await task_service.update_task_status(
        db, principal, task_id, body.status, notifier, origin=get_client_ip(request),
    )
    return TaskResponse(message="Task status updated successfully", task=task)


@router.delete("/{task_id}", response_model=Envelope)
async def delete_task(
    task_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
    notifier: Notifier = Depends(get_notifier),
):
    await task_service.delete_task(
        db, principal, task_id, notifier, origin=get_client_ip(request),
    )
    return Envelope(message="Task deleted successfully")
