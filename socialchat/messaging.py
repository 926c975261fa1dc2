"""
Messaging service.

Each operation validates its input, runs one store operation from `crud` and
returns `(result, NotificationPlan)`. The plan says who should hear about the
change; delivering it is the gateway's job, so nothing here touches sockets
or presence.
"""
import os
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from . import crud
from .errors import ValidationError
from .schemas.messages import MessageOut, ReactionOut
from .utils import room_name, sanitize_string

logger = logging.getLogger(__name__)

MESSAGE_MAX_LENGTH = int(os.getenv('MESSAGE_MAX_LENGTH', '10000'))
EMOJI_MAX_LENGTH = 10


@dataclass
class DirectNotification:
    user_id: int
    event: str
    payload: Any


@dataclass
class RoomBroadcast:
    room: str
    event: str
    payload: Any


@dataclass
class NotificationPlan:
    direct: List[DirectNotification] = field(default_factory=list)
    room: Optional[RoomBroadcast] = None


def validate_content(content) -> str:
    if not isinstance(content, str) or not content.strip():
        raise ValidationError('Message content cannot be empty')
    if len(content) > MESSAGE_MAX_LENGTH:
        raise ValidationError(f'Message content cannot exceed {MESSAGE_MAX_LENGTH} characters')
    return sanitize_string(content)


def validate_emoji(emoji) -> str:
    if not isinstance(emoji, str) or not emoji.strip():
        raise ValidationError('Missing required fields: emoji')
    if len(emoji) > EMOJI_MAX_LENGTH:
        raise ValidationError('Invalid emoji')
    return emoji.strip()


def serialize_message(message) -> dict:
    return MessageOut.model_validate(message, from_attributes=True).to_wire()


class MessagingService:

    async def send_message(self, sender_id: int, recipient_id: int, content: str) -> Tuple[dict, NotificationPlan]:
        content = validate_content(content)
        conversation = await crud.find_or_create_conversation(sender_id, recipient_id)
        message = await crud.append_message(conversation.id, sender_id, content)
        data = serialize_message(message)
        plan = NotificationPlan(
            room=RoomBroadcast(room_name(conversation.id), 'message:new', data),
            direct=[DirectNotification(recipient_id, 'conversation:update', {
                'conversationId': conversation.id,
                'lastMessage': data,
            })],
        )
        logger.info({'msg': 'message_sent', 'message_id': message.id, 'conversation_id': conversation.id})
        return data, plan

    async def edit_message(self, actor_id: int, message_id: int, content: str) -> Tuple[dict, NotificationPlan]:
        content = validate_content(content)
        message = await crud.edit_message(message_id, actor_id, content)
        data = serialize_message(message)
        plan = NotificationPlan(room=RoomBroadcast(room_name(message.conversation_id), 'message:edited', data))
        return data, plan

    async def delete_message(self, actor_id: int, message_id: int) -> Tuple[dict, NotificationPlan]:
        conversation_id = await crud.delete_message(message_id, actor_id)
        data = {'messageId': message_id, 'conversationId': conversation_id}
        plan = NotificationPlan(room=RoomBroadcast(room_name(conversation_id), 'message:deleted', data))
        return data, plan

    async def toggle_reaction(self, actor_id: int, message_id: int, emoji: str) -> Tuple[dict, NotificationPlan]:
        emoji = validate_emoji(emoji)
        action, reaction, conversation_id = await crud.toggle_reaction(message_id, actor_id, emoji)
        data = {
            'messageId': message_id,
            'conversationId': conversation_id,
            'action': action,
            'reaction': ReactionOut.model_validate(reaction, from_attributes=True).to_wire(),
        }
        plan = NotificationPlan(room=RoomBroadcast(room_name(conversation_id), 'message:reaction', data))
        return data, plan

    async def delete_conversation(self, actor_id: int, conversation_id: int) -> Tuple[dict, NotificationPlan]:
        participant_ids = await crud.delete_conversation(conversation_id, actor_id)
        # the room goes away with the conversation, so each participant is told directly
        plan = NotificationPlan(direct=[
            DirectNotification(uid, 'conversation:deleted', {'conversationId': conversation_id})
            for uid in participant_ids
        ])
        logger.info({'msg': 'conversation_deleted', 'conversation_id': conversation_id, 'by': actor_id})
        return {'participantIds': participant_ids}, plan
