from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from .models import AsyncSessionLocal
from .models.users import User
from .models.conversations import Conversation, ConversationParticipant
from .models.messages import Message, Reaction
from .models.posts import Post
from .models.likes import likes_table
from passlib.context import CryptContext
from .auth import create_access_token, generate_refresh_token, hash_token, refresh_token_expiry
from .errors import ConflictError, ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from .utils import sanitize_string, utcnow
from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

pwd_ctx = CryptContext(schemes=['bcrypt'], deprecated='auto')


POST_MAX_LENGTH = 5000


@dataclass
class ConversationView:
    id: int
    other_user: Optional[User]
    last_message: Optional[Message]
    last_read_at: Optional[datetime]
    updated_at: Optional[datetime]


@dataclass
class PostView:
    id: int
    author_id: int
    content: str
    created_at: Optional[datetime]
    author: Optional[User]
    like_count: int = 0
    is_liked: bool = False


def _issue_tokens(user: User) -> tuple[str, str]:
    access = create_access_token({'id': user.id, 'email': user.email, 'type': 'access'})
    refresh = generate_refresh_token()
    user.refresh_token_hash = hash_token(refresh)
    user.refresh_token_expires_at = refresh_token_expiry()
    return access, refresh


def _message_query():
    return select(Message).options(
        selectinload(Message.sender),
        selectinload(Message.reactions).selectinload(Reaction.user),
    ).execution_options(populate_existing=True)


async def _load_message(session, message_id: int) -> Message:
    res = await session.execute(_message_query().where(Message.id == message_id))
    return res.scalars().first()


async def _participant(session, conversation_id: int, user_id: int):
    res = await session.execute(select(ConversationParticipant).where(
        ConversationParticipant.conversation_id == conversation_id,
        ConversationParticipant.user_id == user_id,
    ))
    return res.scalars().first()


async def _participant_ids(session, conversation_id: int) -> List[int]:
    res = await session.execute(
        select(ConversationParticipant.user_id)
        .where(ConversationParticipant.conversation_id == conversation_id)
        .order_by(ConversationParticipant.id)
    )
    return list(res.scalars().all())


async def _message_in_conversation_of(session, message_id: int, user_id: int) -> Message:
    """Fetch a message and check the actor participates in its conversation."""
    res = await session.execute(select(Message).where(Message.id == message_id))
    message = res.scalars().first()
    if not message:
        raise NotFoundError('Message not found')
    if not await _participant(session, message.conversation_id, user_id):
        raise ForbiddenError('You are not a participant in this conversation')
    return message


async def _advance_read_watermark(session, participant_id: int):
    now = utcnow()
    await session.execute(
        update(ConversationParticipant)
        .where(
            ConversationParticipant.id == participant_id,
            or_(ConversationParticipant.last_read_at.is_(None), ConversationParticipant.last_read_at < now),
        )
        .values(last_read_at=now)
    )


# users
async def create_user(payload):
    email = payload.email.lower()
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(User).where(User.email == email))
        if q.scalars().first():
            raise ConflictError('Email already registered')
        user = User(
            email=email,
            name=payload.name.strip(),
            hashed_password=pwd_ctx.hash(payload.password),
        )
        session.add(user)
        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            raise ConflictError('Email already registered')
        access, refresh = _issue_tokens(user)
        await session.commit()
        await session.refresh(user)
        return {'user': user, 'access_token': access, 'refresh_token': refresh}

async def authenticate_user(email: str, password: str):
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(User).where(User.email == email.lower()))
        user = q.scalars().first()
        if not user or not pwd_ctx.verify(password, user.hashed_password):
            raise UnauthorizedError('Invalid credentials')
        access, refresh = _issue_tokens(user)
        user.last_seen_at = utcnow()
        await session.commit()
        await session.refresh(user)
        return {'user': user, 'access_token': access, 'refresh_token': refresh}

async def refresh_access_token(refresh_token: str):
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(User).where(
            User.refresh_token_hash == hash_token(refresh_token),
            User.refresh_token_expires_at > utcnow(),
        ))
        user = q.scalars().first()
        if not user:
            raise UnauthorizedError('Invalid or expired refresh token')
        access, refresh = _issue_tokens(user)
        await session.commit()
        return {'access_token': access, 'token_type': 'bearer', 'refresh_token': refresh}

async def revoke_refresh_token(user_id: int):
    async with AsyncSessionLocal() as session:
        await session.execute(update(User).where(User.id == user_id).values(refresh_token_hash=None, refresh_token_expires_at=None))
        await session.commit()

async def get_user_by_id(user_id: int):
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(User).where(User.id == user_id))
        return q.scalars().first()

async def touch_last_seen(user_id: int):
    async with AsyncSessionLocal() as session:
        await session.execute(update(User).where(User.id == user_id).values(last_seen_at=utcnow()))
        await session.commit()


# conversations
async def find_or_create_conversation(user_a: int, user_b: int) -> Conversation:
    if user_a == user_b:
        raise ValidationError('Cannot create conversation with yourself')
    # store ordered pair to keep uniqueness
    low, high = sorted([user_a, user_b])
    query = select(Conversation).where(Conversation.user_low_id == low, Conversation.user_high_id == high)
    async with AsyncSessionLocal() as session:
        res = await session.execute(query)
        existing = res.scalars().first()
        if existing:
            return existing
        users = await session.execute(select(func.count(User.id)).where(User.id.in_([low, high])))
        if users.scalar_one() != 2:
            raise NotFoundError('User not found')
        now = utcnow()
        conversation = Conversation(user_low_id=low, user_high_id=high, created_at=now, updated_at=now)
        session.add(conversation)
        try:
            await session.flush()
            session.add_all([
                ConversationParticipant(conversation_id=conversation.id, user_id=low),
                ConversationParticipant(conversation_id=conversation.id, user_id=high),
            ])
            await session.commit()
        except IntegrityError:
            await session.rollback()
            # a concurrent first message created it
            res = await session.execute(query)
            return res.scalars().first()
        return conversation

async def ensure_participant(conversation_id: int, user_id: int) -> Conversation:
    async with AsyncSessionLocal() as session:
        res = await session.execute(select(Conversation).where(Conversation.id == conversation_id))
        conversation = res.scalars().first()
        if not conversation:
            raise NotFoundError('Conversation not found')
        if not await _participant(session, conversation_id, user_id):
            raise ForbiddenError('You are not a participant in this conversation')
        return conversation

async def list_conversations(user_id: int) -> List[ConversationView]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(
            select(Conversation, ConversationParticipant.last_read_at)
            .join(ConversationParticipant, ConversationParticipant.conversation_id == Conversation.id)
            .where(ConversationParticipant.user_id == user_id)
            .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
        )
        rows = res.all()
        if not rows:
            return []
        ids = [conv.id for conv, _ in rows]

        others = await session.execute(
            select(ConversationParticipant.conversation_id, User)
            .join(User, User.id == ConversationParticipant.user_id)
            .where(ConversationParticipant.conversation_id.in_(ids), ConversationParticipant.user_id != user_id)
        )
        other_by_conv = {conv_id: user for conv_id, user in others.all()}

        latest_ids = (
            select(func.max(Message.id))
            .where(Message.conversation_id.in_(ids))
            .group_by(Message.conversation_id)
        )
        latest = await session.execute(_message_query().where(Message.id.in_(latest_ids)))
        last_by_conv = {m.conversation_id: m for m in latest.scalars().all()}

        return [
            ConversationView(
                id=conv.id,
                other_user=other_by_conv.get(conv.id),
                last_message=last_by_conv.get(conv.id),
                last_read_at=last_read_at,
                updated_at=conv.updated_at,
            )
            for conv, last_read_at in rows
        ]

async def list_messages(conversation_id: int, user_id: int, page: int = 1, limit: int = 50) -> List[Message]:
    """Return one page of messages oldest-first; page 1 holds the newest `limit` messages.

    Advances the caller's read watermark.
    """
    if page < 1 or limit < 1:
        raise ValidationError('page and limit must be positive')
    async with AsyncSessionLocal() as session:
        res = await session.execute(select(Conversation.id).where(Conversation.id == conversation_id))
        if res.scalar_one_or_none() is None:
            raise NotFoundError('Conversation not found')
        participant = await _participant(session, conversation_id, user_id)
        if not participant:
            raise ForbiddenError('You are not a participant in this conversation')
        q = await session.execute(
            _message_query()
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        messages = list(q.scalars().all())
        await _advance_read_watermark(session, participant.id)
        await session.commit()
        messages.reverse()
        return messages

async def mark_as_read(conversation_id: int, user_id: int):
    async with AsyncSessionLocal() as session:
        participant = await _participant(session, conversation_id, user_id)
        if not participant:
            raise ForbiddenError('You are not a participant in this conversation')
        await _advance_read_watermark(session, participant.id)
        await session.commit()

async def delete_conversation(conversation_id: int, user_id: int) -> List[int]:
    """Delete a conversation for everyone. Returns the former participant ids."""
    async with AsyncSessionLocal() as session:
        res = await session.execute(
            select(Conversation).where(Conversation.id == conversation_id).with_for_update()
        )
        if not res.scalars().first():
            raise NotFoundError('Conversation not found')
        participant_ids = await _participant_ids(session, conversation_id)
        if user_id not in participant_ids:
            raise ForbiddenError('You are not a participant in this conversation')
        message_ids = select(Message.id).where(Message.conversation_id == conversation_id)
        await session.execute(delete(Reaction).where(Reaction.message_id.in_(message_ids)))
        await session.execute(delete(Message).where(Message.conversation_id == conversation_id))
        await session.execute(delete(ConversationParticipant).where(ConversationParticipant.conversation_id == conversation_id))
        await session.execute(delete(Conversation).where(Conversation.id == conversation_id))
        await session.commit()
        return participant_ids


# messaging
async def append_message(conversation_id: int, sender_id: int, content: str) -> Message:
    async with AsyncSessionLocal() as session:
        res = await session.execute(
            select(Conversation).where(Conversation.id == conversation_id).with_for_update()
        )
        conversation = res.scalars().first()
        if not conversation:
            raise NotFoundError('Conversation not found')
        if not await _participant(session, conversation_id, sender_id):
            raise ForbiddenError('You are not a participant in this conversation')
        now = utcnow()
        m = Message(conversation_id=conversation_id, sender_id=sender_id, content=content, created_at=now)
        session.add(m)
        conversation.updated_at = now
        await session.commit()
        return await _load_message(session, m.id)

async def edit_message(message_id: int, user_id: int, content: str) -> Message:
    async with AsyncSessionLocal() as session:
        res = await session.execute(select(Message).where(Message.id == message_id))
        m = res.scalars().first()
        if not m:
            raise NotFoundError('Message not found')
        if m.sender_id != user_id:
            raise ForbiddenError('You can only edit your own messages')
        if not await _participant(session, m.conversation_id, user_id):
            raise ForbiddenError('You are not a participant in this conversation')
        m.content = content
        m.is_edited = True
        m.edited_at = utcnow()
        await session.commit()
        return await _load_message(session, message_id)

async def delete_message(message_id: int, user_id: int) -> int:
    """Hard-delete a message and its reactions. Returns its conversation id."""
    async with AsyncSessionLocal() as session:
        m = await _message_in_conversation_of(session, message_id, user_id)
        conversation_id = m.conversation_id
        await session.execute(delete(Reaction).where(Reaction.message_id == message_id))
        await session.execute(delete(Message).where(Message.id == message_id))
        await session.commit()
        return conversation_id

async def toggle_reaction(message_id: int, user_id: int, emoji: str):
    """Add the (message, user, emoji) reaction, or remove it if it already exists.

    Returns (action, reaction, conversation_id) with action 'added' or 'removed'.
    """
    async with AsyncSessionLocal() as session:
        m = await _message_in_conversation_of(session, message_id, user_id)
        conversation_id = m.conversation_id
        query = (
            select(Reaction)
            .options(selectinload(Reaction.user))
            .where(Reaction.message_id == message_id, Reaction.user_id == user_id, Reaction.emoji == emoji)
        )
        res = await session.execute(query)
        existing = res.scalars().first()
        if existing:
            await session.execute(delete(Reaction).where(Reaction.id == existing.id))
            await session.commit()
            return 'removed', existing, conversation_id
        reaction = Reaction(message_id=message_id, user_id=user_id, emoji=emoji, created_at=utcnow())
        session.add(reaction)
        try:
            await session.commit()
        except IntegrityError:
            # same triple added concurrently; the reaction is present either way
            await session.rollback()
        res = await session.execute(query.execution_options(populate_existing=True))
        return 'added', res.scalars().first(), conversation_id


# feed
async def toggle_like(post_id: int, user_id: int) -> bool:
    async with AsyncSessionLocal() as session:
        res = await session.execute(select(Post.id).where(Post.id == post_id))
        if res.scalar_one_or_none() is None:
            raise NotFoundError('Post not found')
        res = await session.execute(select(likes_table.c.id).where(
            likes_table.c.post_id == post_id, likes_table.c.user_id == user_id,
        ))
        like_id = res.scalar_one_or_none()
        if like_id is not None:
            await session.execute(delete(likes_table).where(likes_table.c.id == like_id))
            await session.commit()
            return False
        await session.execute(likes_table.insert().values(post_id=post_id, user_id=user_id))
        await session.commit()
        return True

def _post_view(post: Post, like_count: int = 0, is_liked: bool = False) -> PostView:
    return PostView(
        id=post.id,
        author_id=post.author_id,
        content=post.content,
        created_at=post.created_at,
        author=post.author,
        like_count=like_count,
        is_liked=is_liked,
    )

async def create_post(author_id: int, content: str) -> PostView:
    if not isinstance(content, str) or not content.strip():
        raise ValidationError('Post content cannot be empty')
    if len(content) > POST_MAX_LENGTH:
        raise ValidationError(f'Post content cannot exceed {POST_MAX_LENGTH} characters')
    async with AsyncSessionLocal() as session:
        post = Post(author_id=author_id, content=sanitize_string(content), created_at=utcnow())
        session.add(post)
        await session.commit()
        res = await session.execute(
            select(Post).options(selectinload(Post.author)).where(Post.id == post.id)
            .execution_options(populate_existing=True)
        )
        return _post_view(res.scalars().first())

async def list_posts(user_id: int, page: int = 1, limit: int = 20) -> List[PostView]:
    """Newest posts first, each with its like count and whether `user_id` liked it."""
    if page < 1 or limit < 1:
        raise ValidationError('page and limit must be positive')
    async with AsyncSessionLocal() as session:
        res = await session.execute(
            select(Post).options(selectinload(Post.author))
            .order_by(Post.created_at.desc(), Post.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        posts = list(res.scalars().all())
        if not posts:
            return []
        ids = [p.id for p in posts]
        counts = await session.execute(
            select(likes_table.c.post_id, func.count())
            .where(likes_table.c.post_id.in_(ids))
            .group_by(likes_table.c.post_id)
        )
        like_counts = {post_id: n for post_id, n in counts.all()}
        liked = await session.execute(select(likes_table.c.post_id).where(
            likes_table.c.post_id.in_(ids), likes_table.c.user_id == user_id,
        ))
        liked_ids = set(liked.scalars().all())
        return [_post_view(p, like_counts.get(p.id, 0), p.id in liked_ids) for p in posts]

async def delete_post(post_id: int, user_id: int):
    async with AsyncSessionLocal() as session:
        res = await session.execute(select(Post.author_id).where(Post.id == post_id))
        author_id = res.scalar_one_or_none()
        if author_id is None:
            raise NotFoundError('Post not found')
        if author_id != user_id:
            raise ForbiddenError('You can only delete your own posts')
        await session.execute(delete(likes_table).where(likes_table.c.post_id == post_id))
        await session.execute(delete(Post).where(Post.id == post_id))
        await session.commit()
