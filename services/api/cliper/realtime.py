"""
Real-time channel over WebSocket (`/ws`).

Frames are JSON objects: {"event": <name>, "data": <payload>}.

Client → server
  authenticate        {"token": <bearer>}   binds the connection to a user
  joinNotifications   <userId>              must be the authenticated user
  leaveNotifications  <userId>              leaves the authenticated user's room
  typing              {"recipientId", "isTyping"}

Server → client
  authenticated       {"userId"}
  joinedNotifications {"userId"}
  leftNotifications   {"userId"}
  newNotification     <notification payload>
  userTyping          {"userId", "isTyping"}
  error               {"message"}

The ConnectionManager is owned by the application (app.state) and is the
only in-process mutable state: user id → live connection, plus per-user
notification rooms.
"""
import asyncio
import logging
from collections import defaultdict
from typing import Any, Optional

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from cliper.errors import AuthError
from cliper.schemas import RealtimeFrame, TypingEvent
from cliper.security import decode_access_token
from cliper.telemetry import NOTIFICATIONS_PUSHED_TOTAL, REALTIME_CONNECTIONS

logger = logging.getLogger(__name__)
router = APIRouter()


def notification_room(user_id: str) -> str:
    return f"notifications_{user_id}"


class ConnectionManager:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._connections: dict[str, WebSocket] = {}
        self._rooms: dict[str, set[WebSocket]] = defaultdict(set)

    async def register(self, user_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._connections[user_id] = websocket
        logger.info("User %s authenticated on real-time channel", user_id)

    async def unregister(self, user_id: Optional[str], websocket: WebSocket) -> None:
        """Drop the connection from every room and, if still current, the registry."""
        async with self._lock:
            if user_id and self._connections.get(user_id) is websocket:
                del self._connections[user_id]
            for room in list(self._rooms):
                self._rooms[room].discard(websocket)
                if not self._rooms[room]:
                    del self._rooms[room]
        if user_id:
            logger.info("User %s disconnected", user_id)

    async def join(self, room: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._rooms[room].add(websocket)

    async def leave(self, room: str, websocket: WebSocket) -> None:
        async with self._lock:
            members = self._rooms.get(room)
            if members is not None:
                members.discard(websocket)
                if not members:
                    del self._rooms[room]

    def connection_for(self, user_id: str) -> Optional[WebSocket]:
        return self._connections.get(user_id)

    def room_members(self, room: str) -> set[WebSocket]:
        return set(self._rooms.get(room, ()))

    def is_connected(self, user_id: str) -> bool:
        return user_id in self._connections

    async def send(self, websocket: WebSocket, event: str, data: Any) -> bool:
        """Best-effort send; a failing socket is dropped, never raised."""
        try:
            await websocket.send_json({"event": event, "data": data})
            return True
        except Exception as exc:
            logger.warning("Dropping dead real-time connection (%s): %s", event, exc)
            await self.unregister(None, websocket)
            return False

    async def push_notification(self, recipient_id: str, payload: dict) -> int:
        """Deliver to every socket in the recipient's room; returns deliveries."""
        delivered = 0
        for websocket in self.room_members(notification_room(recipient_id)):
            if await self.send(websocket, "newNotification", payload):
                delivered += 1
        if delivered:
            NOTIFICATIONS_PUSHED_TOTAL.inc(delivered)
            logger.info("Pushed notification %s to %s", payload.get("id"), recipient_id)
        return delivered

    async def relay_typing(self, sender_id: str, event: TypingEvent) -> bool:
        target = self.connection_for(event.recipient_id)
        if target is None:
            return False
        return await self.send(
            target, "userTyping", {"userId": sender_id, "isTyping": event.is_typing}
        )


def get_connection_manager(request: Request) -> ConnectionManager:
    return request.app.state.connections


class NotificationOutbox:
    """
    Request-scoped queue of notifications to push once the request's
    transaction has committed. Pushes are at-most-once: nothing is retried.
    """

    def __init__(self, manager: ConnectionManager) -> None:
        self.manager = manager
        self.pending: list[tuple[str, dict]] = []

    def add(self, recipient_id: str, payload: dict) -> None:
        self.pending.append((recipient_id, payload))

    async def flush(self) -> None:
        pending, self.pending = self.pending, []
        for recipient_id, payload in pending:
            await self.manager.push_notification(recipient_id, payload)


# ─────────────────────────── WebSocket endpoint ──────────────────────────

class _Session:
    """Per-connection state: Connected → Authenticated → Disconnected."""

    def __init__(self, websocket: WebSocket, manager: ConnectionManager) -> None:
        self.websocket = websocket
        self.manager = manager
        self.user_id: Optional[str] = None

    async def error(self, message: str) -> None:
        await self.manager.send(self.websocket, "error", {"message": message})

    async def handle(self, frame: RealtimeFrame) -> None:
        if frame.event == "authenticate":
            await self.authenticate(frame.data)
            return
        if self.user_id is None:
            await self.error("Not authenticated")
            return

        if frame.event == "joinNotifications":
            if frame.data != self.user_id:
                await self.error("Cannot join another user's notifications")
                return
            await self.manager.join(notification_room(self.user_id), self.websocket)
            await self.manager.send(self.websocket, "joinedNotifications", {"userId": self.user_id})
        elif frame.event == "leaveNotifications":
            await self.manager.leave(notification_room(self.user_id), self.websocket)
            await self.manager.send(self.websocket, "leftNotifications", {"userId": self.user_id})
        elif frame.event == "typing":
            try:
                event = TypingEvent.model_validate(frame.data)
            except PydanticValidationError:
                await self.error("Malformed typing event")
                return
            await self.manager.relay_typing(self.user_id, event)
        else:
            await self.error(f"Unknown event '{frame.event}'")

    async def authenticate(self, data: Any) -> None:
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            await self.error("No token provided")
            return
        try:
            claims = decode_access_token(token)
        except AuthError as exc:
            await self.error(exc.message)
            return
        if self.user_id and self.user_id != claims["sub"]:
            await self.manager.unregister(self.user_id, self.websocket)
        self.user_id = claims["sub"]
        await self.manager.register(self.user_id, self.websocket)
        await self.manager.send(self.websocket, "authenticated", {"userId": self.user_id})


@router.websocket("/ws")
async def realtime_channel(websocket: WebSocket):
    manager: ConnectionManager = websocket.app.state.connections
    await websocket.accept()
    REALTIME_CONNECTIONS.inc()
    session = _Session(websocket, manager)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = RealtimeFrame.model_validate_json(raw)
            except PydanticValidationError:
                await session.error("Malformed frame")
                continue
            await session.handle(frame)
    except WebSocketDisconnect:
        pass
    finally:
        REALTIME_CONNECTIONS.dec()
        await manager.unregister(session.user_id, websocket)
