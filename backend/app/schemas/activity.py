"""Pydantic schemas for the activity log.

Snapshots are a closed, tagged variant so readers never guess the shape:

    {"kind": "task", "task": {...full task...}}
    {"kind": "fields", "values": {"status": "todo"}}
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, Field

from app.models.activity_log import ActivityAction
from app.schemas.common import CamelModel, PaginatedEnvelope, UserRef


class TaskSnapshot(BaseModel):
    kind: Literal["task"] = "task"
    task: dict[str, Any]


class FieldSnapshot(BaseModel):
    kind: Literal["fields"] = "fields"
    values: dict[str, Any]


Snapshot = Annotated[Union[TaskSnapshot, FieldSnapshot], Field(discriminator="kind")]


class ActivityEntry(CamelModel):
    id: int
    action: ActivityAction
    task_id: str
    task_title: str
    performed_by: UserRef = Field(validation_alias=AliasChoices("actor", "performedBy"), serialization_alias="performedBy")
    previous_value: Snapshot | None = None
    new_value: Snapshot | None = None
    details: str | None = None
    ip_address: str | None = None
    created_at: datetime


class ActivityListResponse(PaginatedEnvelope):
    logs: list[ActivityEntry]
