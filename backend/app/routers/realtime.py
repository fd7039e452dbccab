"""WebSocket endpoint for live task updates.

Endpoint:
    WS /ws?token=<jwt>     (or "Authorization: Bearer <jwt>" on the handshake)

Server → client: taskCreated, taskUpdated, taskStatusUpdated, taskDeleted,
userTyping, userStoppedTyping.

Client → server:
    {"event": "joinTask",   "data": "<taskId>"}
    {"event": "leaveTask",  "data": "<taskId>"}
    {"event": "typing",     "data": {"taskId": "<taskId>"}}
    {"event": "stopTyping", "data": {"taskId": "<taskId>"}}

Anything else is ignored. Task events cannot be injected from a socket;
they only originate from committed mutations.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import resolve_user
from app.database import get_db
from app.services.notifier import (
    USER_STOPPED_TYPING,
    USER_TYPING,
    ConnectionManager,
    Session,
    task_room,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _handshake_token(websocket: WebSocket, token: str | None) -> str | None:
    if token:
        return token
    auth_header = websocket.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


def _task_id(data: Any) -> str | None:
    if isinstance(data, dict):
        data = data.get("taskId")
    if isinstance(data, str) and data:
        return data
    return None


async def handle_client_message(
    manager: ConnectionManager,
    session: Session,
    message: Any,
) -> None:
    """Apply one inbound message to the session's rooms."""
    if not isinstance(message, dict):
        return
    event = message.get("event")
    task_id = _task_id(message.get("data"))
    if task_id is None:
        return

    if event == "joinTask":
        manager.join(session, task_room(task_id))
        logger.info("User %s joined task room: %s", session.user_name, task_id)
    elif event == "leaveTask":
        manager.leave(session, task_room(task_id))
        logger.info("User %s left task room: %s", session.user_name, task_id)
    elif event in ("typing", "stopTyping"):
        signal = USER_TYPING if event == "typing" else USER_STOPPED_TYPING
        await manager.emit_to_room(
            task_room(task_id),
            signal,
            {"user": session.user_name, "taskId": task_id},
            exclude=session,
        )


@router.websocket("/ws")
async def realtime(
    websocket: WebSocket,
    token: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    raw = _handshake_token(websocket, token)
    user = await resolve_user(raw, db) if raw else None
    # Release the connection: the socket may stay open for hours
    await db.close()

    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    manager: ConnectionManager = websocket.app.state.notifier
    session = await manager.connect(
        websocket,
        user_id=user.id,
        user_name=user.name,
        role=user.role.value,
    )
    try:
        while True:
            try:
                message = await websocket.receive_json()
            except (KeyError, ValueError):
                # KeyError: binary frame, ValueError: text that is not JSON
                logger.warning("Ignoring malformed message from %s", session.user_id)
                continue
            await handle_client_message(manager, session, message)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(session)
