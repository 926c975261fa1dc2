from datetime import datetime
from typing import List, Optional
from . import CamelModel
from .users import UserBrief

class ReactionUser(CamelModel):
    id: int
    name: str

class ReactionOut(CamelModel):
    id: int
    message_id: int
    user_id: int
    emoji: str
    created_at: Optional[datetime] = None
    user: Optional[ReactionUser] = None

class MessageOut(CamelModel):
    id: int
    conversation_id: int
    sender_id: int
    content: str
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    sender: Optional[UserBrief] = None
    reactions: List[ReactionOut] = []

class ConversationSummary(CamelModel):
    id: int
    other_user: Optional[UserBrief] = None
    last_message: Optional[MessageOut] = None
    last_read_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class Pagination(CamelModel):
    page: int
    limit: int
    has_more: bool
