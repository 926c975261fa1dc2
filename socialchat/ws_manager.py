from typing import Any, Dict, Optional, Set
import logging
import uuid
from fastapi import WebSocket
from . import cache, core
from .messaging import NotificationPlan
from .presence import PresenceRegistry
from .schemas.ws import WsOutbound

logger = logging.getLogger(__name__)


class Connection:
    """One authenticated websocket and the rooms it has joined."""

    def __init__(self, websocket: WebSocket, user_id: int):
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.user_id = user_id
        self.rooms: Set[str] = set()

    async def send(self, event: str, data: Any = None, ack=None) -> bool:
        frame = WsOutbound(event=event, data=data, ack=ack).to_wire()
        try:
            await self.websocket.send_json(frame)
            return True
        except Exception as e:
            # the receive loop notices the close and disconnects us
            logger.debug({'msg': 'ws_send_failed', 'connection': self.id, 'event': event, 'error': str(e)})
            return False

    def __repr__(self):
        return f'<Connection {self.id} user={self.user_id}>'


class ConnectionManager:
    """Live connections, conversation rooms and the presence registry they feed."""

    def __init__(self, presence: PresenceRegistry):
        self.presence = presence
        self.connections: Set[Connection] = set()
        self.rooms: Dict[str, Set[Connection]] = {}

    async def connect(self, connection: Connection):
        self.connections.add(connection)
        superseded = self.presence.register(connection.user_id, connection)
        if superseded is not None:
            logger.info({'msg': 'session_superseded', 'user_id': connection.user_id, 'previous': superseded.id})
        core.ONLINE_USERS.set(len(self.presence))
        await cache.mark_online(connection.user_id)
        await self.broadcast('user:online', {'userId': connection.user_id}, exclude=connection)

    async def disconnect(self, connection: Connection) -> bool:
        """Forget a closed connection. Returns True if the user went offline."""
        for room in list(connection.rooms):
            self.leave(connection, room)
        self.connections.discard(connection)
        if not self.presence.unregister(connection.user_id, connection):
            # a newer session for the same user is still registered
            return False
        core.ONLINE_USERS.set(len(self.presence))
        await cache.mark_offline(connection.user_id)
        await self.broadcast('user:offline', {'userId': connection.user_id}, exclude=connection)
        return True

    def join(self, connection: Connection, room: str):
        self.rooms.setdefault(room, set()).add(connection)
        connection.rooms.add(room)

    def leave(self, connection: Connection, room: str):
        members = self.rooms.get(room)
        if members is not None:
            members.discard(connection)
            if not members:
                del self.rooms[room]
        connection.rooms.discard(room)

    def close_room(self, room: str):
        for connection in list(self.rooms.get(room, ())):
            self.leave(connection, room)

    def room_members(self, room: str) -> Set[Connection]:
        return set(self.rooms.get(room, ()))

    async def send_personal(self, user_id: int, event: str, data: Any) -> bool:
        connection = self.presence.resolve(user_id)
        if connection is None:
            return False
        return await connection.send(event, data)

    async def emit_to_room(self, room: str, event: str, data: Any, exclude: Optional[Connection] = None):
        for connection in list(self.rooms.get(room, ())):
            if connection is not exclude:
                await connection.send(event, data)

    async def broadcast(self, event: str, data: Any, exclude: Optional[Connection] = None):
        for connection in list(self.connections):
            if connection is not exclude:
                await connection.send(event, data)

    async def deliver(self, plan: NotificationPlan):
        """Send a messaging plan: room broadcast first, then direct notifications."""
        if plan.room is not None:
            await self.emit_to_room(plan.room.room, plan.room.event, plan.room.payload)
        for note in plan.direct:
            await self.send_personal(note.user_id, note.event, note.payload)

    def clear(self):
        self.rooms.clear()
        self.connections.clear()
        self.presence.clear()
        core.ONLINE_USERS.set(0)
