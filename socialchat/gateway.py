"""
Realtime gateway.

Maps inbound websocket events to messaging operations and delivers the
resulting notification plans through the connection manager. Events from one
connection are handled one at a time, in arrival order.

Every event that carries an `ack` id gets exactly one `ack` frame back:
`{"success": true, "data": ...}` or `{"success": false, "error": ...}`.
"""
import logging
from typing import Any, Awaitable, Callable, Dict

from pydantic import ValidationError as PayloadError

from . import core, crud
from .cache import check_rate_limit
from .errors import AppError, RateLimitError
from .messaging import MessagingService
from .schemas.ws import (
    ConversationRef, EditMessageIn, MessageRef, PostCreatedIn, PostRef, ReactIn, SendMessageIn, WsInbound,
)
from .utils import room_name
from .ws_manager import Connection, ConnectionManager

logger = logging.getLogger(__name__)

Handler = Callable[[Connection, Any], Awaitable[Any]]

# fire-and-forget events never acknowledge
NO_ACK_EVENTS = {'typing:start', 'typing:stop'}


def conversation_ref(data) -> int:
    if isinstance(data, dict):
        return ConversationRef.model_validate(data).conversation_id
    return ConversationRef(conversation_id=data).conversation_id


class RealtimeGateway:

    def __init__(self, manager: ConnectionManager, service: MessagingService):
        self.manager = manager
        self.service = service
        self.handlers: Dict[str, Handler] = {
            'conversation:join': self.on_conversation_join,
            'conversation:leave': self.on_conversation_leave,
            'conversation:delete': self.on_conversation_delete,
            'message:send': self.on_message_send,
            'message:edit': self.on_message_edit,
            'message:delete': self.on_message_delete,
            'message:react': self.on_message_react,
            'typing:start': self.on_typing_start,
            'typing:stop': self.on_typing_stop,
            'post:like': self.on_post_like,
            'post:created': self.on_post_created,
            'post:deleted': self.on_post_deleted,
        }

    @property
    def presence(self):
        return self.manager.presence

    async def connect(self, connection: Connection):
        await self.manager.connect(connection)
        logger.info({'msg': 'ws_connected', 'user_id': connection.user_id, 'connection': connection.id})

    async def disconnect(self, connection: Connection):
        went_offline = await self.manager.disconnect(connection)
        logger.info({'msg': 'ws_disconnected', 'user_id': connection.user_id, 'connection': connection.id})
        if went_offline:
            try:
                await crud.touch_last_seen(connection.user_id)
            except Exception as e:
                logger.warning({'msg': 'last_seen_update_failed', 'user_id': connection.user_id, 'error': str(e)})

    async def dispatch(self, connection: Connection, frame: WsInbound):
        """Run one inbound event to completion and acknowledge it."""
        wants_ack = frame.ack is not None and frame.event not in NO_ACK_EVENTS
        handler = self.handlers.get(frame.event)
        if handler is None:
            logger.info({'msg': 'ws_unknown_event', 'event': frame.event, 'user_id': connection.user_id})
            core.WS_EVENTS.labels(event='unknown', outcome='error').inc()
            if wants_ack:
                await connection.send('ack', {'success': False, 'error': 'Unknown event'}, ack=frame.ack)
            return

        try:
            result = await handler(connection, frame.data)
        except AppError as e:
            logger.info({'msg': 'ws_event_rejected', 'event': frame.event, 'user_id': connection.user_id, 'error': e.message})
            reply = {'success': False, 'error': e.message}
            outcome = 'rejected'
        except PayloadError as e:
            logger.info({'msg': 'ws_invalid_payload', 'event': frame.event, 'user_id': connection.user_id, 'error': str(e)})
            reply = {'success': False, 'error': 'Invalid payload'}
            outcome = 'rejected'
        except Exception:
            logger.exception({'msg': 'ws_event_failed', 'event': frame.event, 'user_id': connection.user_id})
            reply = {'success': False, 'error': 'Internal server error'}
            outcome = 'error'
        else:
            reply = {'success': True}
            if result is not None:
                reply['data'] = result
            outcome = 'ok'

        core.WS_EVENTS.labels(event=frame.event, outcome=outcome).inc()
        if wants_ack:
            await connection.send('ack', reply, ack=frame.ack)

    # conversations
    async def on_conversation_join(self, connection: Connection, data):
        conversation_id = conversation_ref(data)
        await crud.ensure_participant(conversation_id, connection.user_id)
        self.manager.join(connection, room_name(conversation_id))
        return {'conversationId': conversation_id}

    async def on_conversation_leave(self, connection: Connection, data):
        conversation_id = conversation_ref(data)
        self.manager.leave(connection, room_name(conversation_id))
        return {'conversationId': conversation_id}

    async def on_conversation_delete(self, connection: Connection, data):
        conversation_id = conversation_ref(data)
        return await self.delete_conversation(connection.user_id, conversation_id)

    async def delete_conversation(self, user_id: int, conversation_id: int):
        """Shared by the websocket event and the REST endpoint."""
        result, plan = await self.service.delete_conversation(user_id, conversation_id)
        self.manager.close_room(room_name(conversation_id))
        await self.manager.deliver(plan)
        return result

    # messages
    async def on_message_send(self, connection: Connection, data):
        payload = SendMessageIn.model_validate(data)
        if not await check_rate_limit(connection.user_id, 'send_message'):
            raise RateLimitError('Rate limit exceeded. Too many messages.')
        message, plan = await self.service.send_message(connection.user_id, payload.recipient_id, payload.content)
        await self.manager.deliver(plan)
        return message

    async def on_message_edit(self, connection: Connection, data):
        payload = EditMessageIn.model_validate(data)
        message, plan = await self.service.edit_message(connection.user_id, payload.message_id, payload.content)
        await self.manager.deliver(plan)
        return message

    async def on_message_delete(self, connection: Connection, data):
        payload = MessageRef.model_validate(data)
        result, plan = await self.service.delete_message(connection.user_id, payload.message_id)
        await self.manager.deliver(plan)
        return result

    async def on_message_react(self, connection: Connection, data):
        payload = ReactIn.model_validate(data)
        result, plan = await self.service.toggle_reaction(connection.user_id, payload.message_id, payload.emoji)
        await self.manager.deliver(plan)
        return result

    # typing
    async def on_typing_start(self, connection: Connection, data):
        await self.relay_typing(connection, data, 'typing:start')

    async def on_typing_stop(self, connection: Connection, data):
        await self.relay_typing(connection, data, 'typing:stop')

    async def relay_typing(self, connection: Connection, data, event: str):
        conversation_id = conversation_ref(data)
        room = room_name(conversation_id)
        if room not in connection.rooms:
            logger.debug({'msg': 'typing_outside_room', 'user_id': connection.user_id, 'room': room})
            return
        await self.manager.emit_to_room(room, event, {
            'userId': connection.user_id, 'conversationId': conversation_id,
        }, exclude=connection)

    # feed
    async def on_post_like(self, connection: Connection, data):
        payload = PostRef.model_validate(data)
        liked = await crud.toggle_like(payload.post_id, connection.user_id)
        await self.manager.broadcast('post:liked', {
            'postId': payload.post_id, 'userId': connection.user_id, 'liked': liked,
        }, exclude=connection)
        return {'liked': liked}

    async def on_post_created(self, connection: Connection, data):
        payload = PostCreatedIn.model_validate(data or {})
        await self.manager.broadcast('post:new', payload.post, exclude=connection)

    async def on_post_deleted(self, connection: Connection, data):
        payload = PostRef.model_validate(data)
        await self.manager.broadcast('post:removed', {'postId': payload.post_id}, exclude=connection)

    async def announce(self, user_id: int, event: str, payload):
        """Fan a feed change made over REST out to every connection but the actor's own."""
        await self.manager.broadcast(event, payload, exclude=self.presence.resolve(user_id))
