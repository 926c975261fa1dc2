from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from . import Base
from ..utils import utcnow

class Conversation(Base):
    __tablename__ = 'conversations'
    id = Column(Integer, primary_key=True)
    # sorted participant pair, one conversation per pair
    user_low_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    user_high_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    participants = relationship('ConversationParticipant', back_populates='conversation')

    __table_args__ = (
        UniqueConstraint('user_low_id', 'user_high_id', name='uix_conversation_pair'),
        CheckConstraint('user_low_id < user_high_id', name='ck_conversation_distinct_pair'),
    )

class ConversationParticipant(Base):
    __tablename__ = 'conversation_participants'
    id = Column(Integer, primary_key=True)
    conversation_id = Column(Integer, ForeignKey('conversations.id', ondelete='CASCADE'), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    last_read_at = Column(DateTime(timezone=True), nullable=True)
    joined_at = Column(DateTime(timezone=True), default=utcnow)

    conversation = relationship('Conversation', back_populates='participants')
    user = relationship('User')

    __table_args__ = (
        UniqueConstraint('conversation_id', 'user_id', name='uix_participant'),
    )
