"""Task access policy: pure decisions, no I/O.

Design:
  - Every check takes a `Principal` (id + role) and, where relevant, the
    loaded task and the set of keys the caller sent.
  - Checks return a `Decision`; callers raise `PermissionDeniedError`
    with `decision.reason` when `allow` is False.
  - Listing and aggregation scopes are returned as plain `Scope` values
    that the query layer turns into SQL predicates.

Roles:
  manager  create and delete tasks, read and update every field of any task
  user     works on its own assignments; an assignee who is not the
           creator may change `status` and nothing else
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

MANAGER = "manager"
USER = "user"

# Attribute names of the task fields a full update may touch.
MUTABLE_FIELDS: frozenset[str] = frozenset({
    "title",
    "description",
    "status",
    "priority",
    "due_date",
    "assigned_to",
    "tags",
})

ASSIGNEE_FIELDS: frozenset[str] = frozenset({"status"})


class TaskLike(Protocol):
    created_by: str
    assigned_to: str


@dataclass(frozen=True)
class Principal:
    """The authenticated actor behind a request."""
    id: str
    role: str

    @property
    def is_manager(self) -> bool:
        return self.role == MANAGER

    @classmethod
    def from_user(cls, user) -> Principal:
        role = getattr(user.role, "value", user.role)
        return cls(id=user.id, role=role)


@dataclass(frozen=True)
class Decision:
    allow: bool
    permitted_fields: frozenset[str] = field(default_factory=frozenset)
    reason: str = ""

    @classmethod
    def deny(cls, reason: str) -> Decision:
        return cls(allow=False, reason=reason)


@dataclass(frozen=True)
class Scope:
    """Equality restrictions on a task query; None means unrestricted."""
    assigned_to: str | None = None
    created_by: str | None = None


def _is_creator(principal: Principal, task: TaskLike) -> bool:
    return task.created_by == principal.id


def _is_assignee(principal: Principal, task: TaskLike) -> bool:
    return task.assigned_to == principal.id


# ── Single-task decisions ───────────────────────────────────

def decide_create(principal: Principal) -> Decision:
    if principal.is_manager:
        return Decision(allow=True, permitted_fields=MUTABLE_FIELDS)
    return Decision.deny("Only managers can create tasks")


def decide_read(principal: Principal, task: TaskLike) -> Decision:
    if principal.is_manager or _is_creator(principal, task) or _is_assignee(principal, task):
        return Decision(allow=True)
    return Decision.deny("Not authorized to view this task")


def decide_update(
    principal: Principal,
    task: TaskLike,
    requested_fields: set[str] | frozenset[str],
) -> Decision:
    """Full update.

    Creator or manager may change every mutable field. An assignee who is
    neither may send `status` only; any other key denies the whole request
    rather than being silently dropped.
    """
    if principal.is_manager or _is_creator(principal, task):
        return Decision(allow=True, permitted_fields=MUTABLE_FIELDS)

    if _is_assignee(principal, task):
        extra = set(requested_fields) - ASSIGNEE_FIELDS
        if extra:
            return Decision.deny("You can only update the task status")
        return Decision(allow=True, permitted_fields=ASSIGNEE_FIELDS)

    return Decision.deny("Not authorized to update this task")


def decide_update_status(principal: Principal, task: TaskLike) -> Decision:
    if principal.is_manager or _is_assignee(principal, task):
        return Decision(allow=True, permitted_fields=ASSIGNEE_FIELDS)
    return Decision.deny("Not authorized to update this task status")


def decide_delete(principal: Principal, task: TaskLike) -> Decision:
    if principal.is_manager or _is_creator(principal, task):
        return Decision(allow=True)
    return Decision.deny("Not authorized to delete this task")


# ── Collection scopes ───────────────────────────────────────

def list_scope(
    principal: Principal,
    assigned_to: str | None = None,
    created_by: str | None = None,
) -> Scope:
    """Base restriction for task listings.

    A plain user is pinned to its own assignments whatever it asked for;
    a manager's `assigned_to` / `created_by` filters are honored as given.
    """
    if principal.role == USER:
        return Scope(assigned_to=principal.id)
    if principal.is_manager:
        return Scope(assigned_to=assigned_to, created_by=created_by)
    return Scope()


def stats_scope(principal: Principal) -> Scope:
    """Scope for status / priority counts.

    Users count their assignments, managers the tasks they created, and
    any other role is unscoped.
    """
    if principal.role == USER:
        return Scope(assigned_to=principal.id)
    if principal.is_manager:
        return Scope(created_by=principal.id)
    return Scope()


def restricts_activity_to_assignments(principal: Principal) -> bool:
    """Plain users only see history for tasks currently assigned to them."""
    return principal.role == USER
