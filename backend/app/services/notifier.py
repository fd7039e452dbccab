"""Real-time fan-out of committed task mutations.

The task service only sees the `Notifier` protocol; the application wires
in a `ConnectionManager` that pushes to connected WebSocket sessions, and
tests wire in a recorder.

Delivery is fire-and-forget and at-most-once: there is no persistence,
replay or acknowledgement, so a session that is not connected when an
event is broadcast never sees it. Sends go out concurrently; a send that
fails or stalls past `send_timeout` drops that session.

Wire format (both directions):
    {"event": "taskUpdated", "data": {...}}

Rooms:
    user_<id>   every session of one user
    role_<role> every session of one role
    task_<id>   sessions that joined a task (typing indicators)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from fastapi import Request, WebSocket

logger = logging.getLogger(__name__)

# Outbound task events
TASK_CREATED = "taskCreated"
TASK_UPDATED = "taskUpdated"
TASK_STATUS_UPDATED = "taskStatusUpdated"
TASK_DELETED = "taskDeleted"

# Ephemeral collaboration signals
USER_TYPING = "userTyping"
USER_STOPPED_TYPING = "userStoppedTyping"


class Notifier(Protocol):
    async def broadcast(self, event: str, payload: Any) -> None:
        ...


class NullNotifier:
    """Notifier that drops everything (CLI, scripts)."""

    async def broadcast(self, event: str, payload: Any) -> None:
        return None


@dataclass(eq=False)
class Session:
    websocket: WebSocket
    user_id: str
    user_name: str
    role: str
    rooms: set[str] = field(default_factory=set)


def task_room(task_id: str) -> str:
    return f"task_{task_id}"


class ConnectionManager:
    """In-process registry of WebSocket sessions and their rooms."""

    def __init__(self, send_timeout: float = 5.0) -> None:
        self.send_timeout = send_timeout
        self._sessions: set[Session] = set()
        self._rooms: dict[str, set[Session]] = {}

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def members(self, room: str) -> set[Session]:
        return set(self._rooms.get(room, ()))

    async def connect(self, websocket: WebSocket, *, user_id: str, user_name: str, role: str) -> Session:
        await websocket.accept()
        session = Session(websocket=websocket, user_id=user_id, user_name=user_name, role=role)
        self.register(session)
        logger.info("User connected: %s (%s)", user_name, user_id)
        return session

    def register(self, session: Session) -> None:
        self._sessions.add(session)
        self.join(session, f"user_{session.user_id}")
        self.join(session, f"role_{session.role}")

    def disconnect(self, session: Session) -> None:
        for room in list(session.rooms):
            self.leave(session, room)
        if session in self._sessions:
            self._sessions.discard(session)
            logger.info("User disconnected: %s", session.user_name)

    def join(self, session: Session, room: str) -> None:
        self._rooms.setdefault(room, set()).add(session)
        session.rooms.add(room)

    def leave(self, session: Session, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(session)
            if not members:
                del self._rooms[room]
        session.rooms.discard(room)

    async def broadcast(self, event: str, payload: Any) -> None:
        """Send to every connected session."""
        await self._send_all(list(self._sessions), event, payload)

    async def emit_to_room(
        self,
        room: str,
        event: str,
        payload: Any,
        exclude: Session | None = None,
    ) -> None:
        targets = [s for s in self._rooms.get(room, ()) if s is not exclude]
        await self._send_all(targets, event, payload)

    async def _send_all(self, sessions: list[Session], event: str, payload: Any) -> None:
        message = {"event": event, "data": payload}
        await asyncio.gather(*(self._send(session, event, message) for session in sessions))

    async def _send(self, session: Session, event: str, message: dict) -> None:
        try:
            await asyncio.wait_for(session.websocket.send_json(message), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Dropping session of {session.user_id}: {event} not sent within {self.send_timeout}s"
            )
            self.disconnect(session)
        except Exception as e:
            logger.warning(
                f"Dropping session of {session.user_id} after failed send of {event}: {e}"
            )
            self.disconnect(session)


def get_notifier(request: Request) -> Notifier:
    """FastAPI dependency: the notifier installed on the application."""
    return request.app.state.notifier
