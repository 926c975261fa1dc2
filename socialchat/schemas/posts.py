from datetime import datetime
from typing import Optional
from pydantic import BaseModel
from . import CamelModel
from .users import UserBrief

class PostIn(BaseModel):
    content: str

class PostOut(CamelModel):
    id: int
    author_id: int
    content: str
    created_at: Optional[datetime] = None
    author: Optional[UserBrief] = None
    like_count: int = 0
    is_liked: bool = False
