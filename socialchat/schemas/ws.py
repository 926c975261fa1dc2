"""Realtime envelope and inbound payload models."""
from typing import Any, Optional, Union
from pydantic import BaseModel, Field
from . import CamelModel

class WsInbound(BaseModel):
    """Client -> server frame. `ack` correlates the acknowledgment frame."""
    event: str
    data: Any = None
    ack: Optional[Union[int, str]] = None

class WsOutbound(BaseModel):
    """Server -> client frame."""
    event: str
    data: Any = None
    ack: Optional[Union[int, str]] = None

    def to_wire(self) -> dict:
        frame = {'event': self.event, 'data': self.data}
        if self.ack is not None:
            frame['ack'] = self.ack
        return frame

class ConversationRef(CamelModel):
    conversation_id: int

class SendMessageIn(CamelModel):
    recipient_id: int
    content: str

class EditMessageIn(CamelModel):
    message_id: int
    content: str

class MessageRef(CamelModel):
    message_id: int

class ReactIn(CamelModel):
    message_id: int
    emoji: str

class PostRef(CamelModel):
    post_id: int

class PostCreatedIn(CamelModel):
    post: dict = Field(default_factory=dict)
