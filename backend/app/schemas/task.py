"""Pydantic schemas for task CRUD, listing and statistics."""

import uuid
from datetime import date, datetime
from typing import Annotated, Any

from pydantic import AliasChoices, ConfigDict, Field, StringConstraints, ValidationInfo, field_validator

from app.models.task import TaskPriority, TaskStatus
from app.schemas.activity import ActivityEntry
from app.schemas.common import CamelModel, Envelope, PaginatedEnvelope, UserRef

Title = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
Description = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=1000)]


def _normalize_tags(value: list[str]) -> list[str]:
    """Trim, drop blanks and de-duplicate while keeping first-seen order."""
    seen: dict[str, None] = {}
    for tag in value:
        tag = tag.strip()
        if tag:
            seen.setdefault(tag, None)
    return list(seen)


def _validate_user_ref(value: str) -> str:
    try:
        return str(uuid.UUID(value))
    except (TypeError, ValueError):
        raise ValueError("Invalid assignee ID")


# ── Requests ────────────────────────────────────────────────

class TaskCreate(CamelModel):
    title: Title
    description: Description
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: date | None = None
    assigned_to: str
    tags: list[str] = Field(default_factory=list)

    @field_validator("assigned_to")
    @classmethod
    def _assignee_id(cls, v: str) -> str:
        return _validate_user_ref(v)

    @field_validator("tags")
    @classmethod
    def _tags(cls, v: list[str]) -> list[str]:
        return _normalize_tags(v)


class TaskUpdate(CamelModel):
    """Partial update: every field is independently present or absent.

    Unknown keys are kept in `model_extra` rather than dropped, because the
    access policy rejects an assignee-only update that carries any key
    other than `status`.
    """

    model_config = ConfigDict(extra="allow")

    title: Title | None = None
    description: Description | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: date | None = None
    assigned_to: str | None = None
    tags: list[str] | None = None

    @field_validator("title", "description", "status", "priority", "assigned_to", "tags")
    @classmethod
    def _not_null(cls, v: Any, info: ValidationInfo) -> Any:
        # Validators only run for keys the client sent, so None here is an explicit null
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @field_validator("assigned_to")
    @classmethod
    def _assignee_id(cls, v: str | None) -> str | None:
        return v if v is None else _validate_user_ref(v)

    @field_validator("tags")
    @classmethod
    def _tags(cls, v: list[str] | None) -> list[str] | None:
        return v if v is None else _normalize_tags(v)

    def requested_fields(self) -> set[str]:
        """Every key present in the request body, known or not."""
        return set(self.model_fields_set) | set(self.model_extra or {})

    def changes(self) -> dict[str, Any]:
        """Known mutable fields present in the request, by attribute name."""
        known = self.model_fields_set & set(type(self).model_fields)
        return {name: getattr(self, name) for name in known}


class TaskStatusUpdate(CamelModel):
    status: TaskStatus


# ── Responses ───────────────────────────────────────────────

class TaskOut(CamelModel):
    id: str
    title: str
    description: str
    status: TaskStatus
    priority: TaskPriority
    due_date: date | None = None
    assigned_to: UserRef = Field(validation_alias=AliasChoices("assignee", "assignedTo"), serialization_alias="assignedTo")
    created_by: UserRef = Field(validation_alias=AliasChoices("creator", "createdBy"), serialization_alias="createdBy")
    tags: list[str]
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class TaskResponse(Envelope):
    task: TaskOut


class TaskDetailResponse(Envelope):
    task: TaskOut
    activity_logs: list[ActivityEntry]


class TaskListResponse(PaginatedEnvelope):
    tasks: list[TaskOut]


class TaskStats(CamelModel):
    total: int
    by_status: dict[str, int]
    by_priority: dict[str, int]


class TaskStatsResponse(Envelope):
    stats: TaskStats
