from sqlalchemy import Column, Integer, String, DateTime, func
from . import Base

class User(Base):
    __tablename__ = 'users'
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(150), nullable=False)
    hashed_password = Column(String, nullable=False)
    # sha256 of the current refresh token, cleared on logout
    refresh_token_hash = Column(String(128), nullable=True, index=True)
    refresh_token_expires_at = Column(DateTime(timezone=True), nullable=True)
    last_seen_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
