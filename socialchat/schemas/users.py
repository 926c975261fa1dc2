from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field
from . import CamelModel

class RegisterIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    name: str = Field(min_length=1, max_length=150)

class LoginIn(BaseModel):
    email: EmailStr
    password: str

class RefreshIn(CamelModel):
    refresh_token: str

class UserBrief(CamelModel):
    id: int
    name: str
    email: str

class UserOut(CamelModel):
    id: int
    name: str
    email: str
    last_seen_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

class TokenOut(CamelModel):
    access_token: str
    token_type: str = 'bearer'
    refresh_token: Optional[str] = None

class AuthOut(CamelModel):
    user: UserOut
    access_token: str
    refresh_token: str
    token_type: str = 'bearer'

class OnlineOut(CamelModel):
    user_ids: list[int]
