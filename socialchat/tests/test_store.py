import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select, update

from socialchat import crud
from socialchat.errors import ForbiddenError, NotFoundError, ValidationError
from socialchat.models import AsyncSessionLocal
from socialchat.models.conversations import ConversationParticipant
from socialchat.models.messages import Message, Reaction


def naive(dt):
    return dt.replace(tzinfo=None) if dt is not None else None


async def count(model, *where):
    async with AsyncSessionLocal() as session:
        res = await session.execute(select(func.count()).select_from(model).where(*where))
        return res.scalar_one()


async def read_watermark(conversation_id, user_id):
    async with AsyncSessionLocal() as session:
        res = await session.execute(select(ConversationParticipant.last_read_at).where(
            ConversationParticipant.conversation_id == conversation_id,
            ConversationParticipant.user_id == user_id,
        ))
        return naive(res.scalar_one())


@pytest.mark.asyncio
async def test_find_or_create_is_idempotent_in_either_order(make_user):
    alice, bob = make_user('Alice'), make_user('Bob')
    first = await crud.find_or_create_conversation(alice.id, bob.id)
    second = await crud.find_or_create_conversation(bob.id, alice.id)
    assert first.id == second.id
    assert await count(ConversationParticipant, ConversationParticipant.conversation_id == first.id) == 2


@pytest.mark.asyncio
async def test_concurrent_first_contact_creates_one_conversation(make_user):
    alice, bob = make_user('Alice'), make_user('Bob')
    results = await asyncio.gather(
        crud.find_or_create_conversation(alice.id, bob.id),
        crud.find_or_create_conversation(bob.id, alice.id),
    )
    assert results[0].id == results[1].id


@pytest.mark.asyncio
async def test_self_conversation_is_rejected(make_user):
    alice = make_user('Alice')
    with pytest.raises(ValidationError):
        await crud.find_or_create_conversation(alice.id, alice.id)


@pytest.mark.asyncio
async def test_conversation_with_unknown_user(make_user):
    alice = make_user('Alice')
    with pytest.raises(NotFoundError):
        await crud.find_or_create_conversation(alice.id, 9999)


@pytest.mark.asyncio
async def test_list_messages_pages_newest_first_but_returns_chronological(make_user):
    alice, bob = make_user('Alice'), make_user('Bob')
    conv = await crud.find_or_create_conversation(alice.id, bob.id)
    for i in range(1, 6):
        await crud.append_message(conv.id, alice.id, f'msg {i}')

    page1 = await crud.list_messages(conv.id, bob.id, page=1, limit=2)
    assert [m.content for m in page1] == ['msg 4', 'msg 5']
    page2 = await crud.list_messages(conv.id, bob.id, page=2, limit=2)
    assert [m.content for m in page2] == ['msg 2', 'msg 3']
    page3 = await crud.list_messages(conv.id, bob.id, page=3, limit=2)
    assert [m.content for m in page3] == ['msg 1']
    assert page1[0].sender.name == 'Alice'


@pytest.mark.asyncio
async def test_list_messages_requires_participant(make_user):
    alice, bob, carol = make_user('Alice'), make_user('Bob'), make_user('Carol')
    conv = await crud.find_or_create_conversation(alice.id, bob.id)
    with pytest.raises(ForbiddenError):
        await crud.list_messages(conv.id, carol.id)
    with pytest.raises(NotFoundError):
        await crud.list_messages(conv.id + 100, alice.id)
    with pytest.raises(ValidationError):
        await crud.list_messages(conv.id, alice.id, page=0)


@pytest.mark.asyncio
async def test_reading_advances_watermark_monotonically(make_user):
    alice, bob = make_user('Alice'), make_user('Bob')
    conv = await crud.find_or_create_conversation(alice.id, bob.id)
    assert await read_watermark(conv.id, bob.id) is None

    await crud.list_messages(conv.id, bob.id)
    first = await read_watermark(conv.id, bob.id)
    assert first is not None

    await crud.mark_as_read(conv.id, bob.id)
    assert await read_watermark(conv.id, bob.id) >= first

    future = datetime(2999, 1, 1, tzinfo=timezone.utc)
    async with AsyncSessionLocal() as session:
        await session.execute(
            update(ConversationParticipant)
            .where(ConversationParticipant.conversation_id == conv.id, ConversationParticipant.user_id == bob.id)
            .values(last_read_at=future)
        )
        await session.commit()
    await crud.mark_as_read(conv.id, bob.id)
    assert await read_watermark(conv.id, bob.id) == naive(future)


@pytest.mark.asyncio
async def test_mark_as_read_requires_participant(make_user):
    alice, bob, carol = make_user('Alice'), make_user('Bob'), make_user('Carol')
    conv = await crud.find_or_create_conversation(alice.id, bob.id)
    with pytest.raises(ForbiddenError):
        await crud.mark_as_read(conv.id, carol.id)


@pytest.mark.asyncio
async def test_append_message_bumps_conversation_order(make_user):
    alice, bob, carol = make_user('Alice'), make_user('Bob'), make_user('Carol')
    with_bob = await crud.find_or_create_conversation(alice.id, bob.id)
    with_carol = await crud.find_or_create_conversation(alice.id, carol.id)
    await crud.append_message(with_bob.id, alice.id, 'hi bob')
    await crud.append_message(with_carol.id, carol.id, 'hi alice')

    views = await crud.list_conversations(alice.id)
    assert [v.id for v in views] == [with_carol.id, with_bob.id]
    assert views[0].other_user.name == 'Carol'
    assert views[0].last_message.content == 'hi alice'

    await crud.append_message(with_bob.id, bob.id, 'again')
    views = await crud.list_conversations(alice.id)
    assert [v.id for v in views] == [with_bob.id, with_carol.id]
    assert views[0].last_message.content == 'again'
    assert await crud.list_conversations(make_user('Dave').id) == []


@pytest.mark.asyncio
async def test_append_message_rejects_outsider(make_user):
    alice, bob, carol = make_user('Alice'), make_user('Bob'), make_user('Carol')
    conv = await crud.find_or_create_conversation(alice.id, bob.id)
    with pytest.raises(ForbiddenError):
        await crud.append_message(conv.id, carol.id, 'let me in')
    assert await count(Message) == 0


@pytest.mark.asyncio
async def test_edit_by_non_sender_leaves_content_unchanged(make_user):
    alice, bob = make_user('Alice'), make_user('Bob')
    conv = await crud.find_or_create_conversation(alice.id, bob.id)
    message = await crud.append_message(conv.id, alice.id, 'original')

    with pytest.raises(ForbiddenError):
        await crud.edit_message(message.id, bob.id, 'tampered')

    page = await crud.list_messages(conv.id, alice.id)
    assert page[0].content == 'original'
    assert page[0].is_edited is False


@pytest.mark.asyncio
async def test_edit_marks_message_edited(make_user):
    alice, bob = make_user('Alice'), make_user('Bob')
    conv = await crud.find_or_create_conversation(alice.id, bob.id)
    message = await crud.append_message(conv.id, alice.id, 'hello')
    edited = await crud.edit_message(message.id, alice.id, 'hello there')
    assert edited.content == 'hello there'
    assert edited.is_edited is True
    assert edited.edited_at is not None
    assert edited.sender_id == alice.id
    with pytest.raises(NotFoundError):
        await crud.edit_message(message.id + 100, alice.id, 'x')


@pytest.mark.asyncio
async def test_reaction_toggle_round_trip(make_user):
    alice, bob = make_user('Alice'), make_user('Bob')
    conv = await crud.find_or_create_conversation(alice.id, bob.id)
    message = await crud.append_message(conv.id, alice.id, 'react to me')

    action, reaction, conversation_id = await crud.toggle_reaction(message.id, bob.id, '👍')
    assert action == 'added'
    assert reaction.emoji == '👍'
    assert reaction.user.name == 'Bob'
    assert conversation_id == conv.id
    assert await count(Reaction) == 1

    action, _, _ = await crud.toggle_reaction(message.id, bob.id, '👍')
    assert action == 'removed'
    assert await count(Reaction) == 0


@pytest.mark.asyncio
async def test_reaction_requires_participant(make_user):
    alice, bob, carol = make_user('Alice'), make_user('Bob'), make_user('Carol')
    conv = await crud.find_or_create_conversation(alice.id, bob.id)
    message = await crud.append_message(conv.id, alice.id, 'private')
    with pytest.raises(ForbiddenError):
        await crud.toggle_reaction(message.id, carol.id, '👍')
    with pytest.raises(NotFoundError):
        await crud.toggle_reaction(message.id + 100, alice.id, '👍')


@pytest.mark.asyncio
async def test_delete_message_cascades_reactions(make_user):
    alice, bob = make_user('Alice'), make_user('Bob')
    conv = await crud.find_or_create_conversation(alice.id, bob.id)
    message = await crud.append_message(conv.id, alice.id, 'short lived')
    await crud.toggle_reaction(message.id, bob.id, '🔥')

    # any participant may delete
    assert await crud.delete_message(message.id, bob.id) == conv.id
    assert await count(Message) == 0
    assert await count(Reaction) == 0
    with pytest.raises(NotFoundError):
        await crud.delete_message(message.id, bob.id)


@pytest.mark.asyncio
async def test_delete_conversation_removes_everything(make_user):
    alice, bob = make_user('Alice'), make_user('Bob')
    conv = await crud.find_or_create_conversation(alice.id, bob.id)
    first = await crud.append_message(conv.id, alice.id, 'one')
    await crud.append_message(conv.id, bob.id, 'two')
    await crud.toggle_reaction(first.id, bob.id, '❤️')

    participant_ids = await crud.delete_conversation(conv.id, bob.id)
    assert sorted(participant_ids) == sorted([alice.id, bob.id])

    assert await count(Message) == 0
    assert await count(Reaction) == 0
    assert await count(ConversationParticipant) == 0
    with pytest.raises(NotFoundError):
        await crud.list_messages(conv.id, alice.id)

    fresh = await crud.find_or_create_conversation(alice.id, bob.id)
    assert await crud.list_messages(fresh.id, alice.id) == []


@pytest.mark.asyncio
async def test_delete_conversation_by_outsider_changes_nothing(make_user):
    alice, bob, carol = make_user('Alice'), make_user('Bob'), make_user('Carol')
    conv = await crud.find_or_create_conversation(alice.id, bob.id)
    await crud.append_message(conv.id, alice.id, 'still here')

    with pytest.raises(ForbiddenError):
        await crud.delete_conversation(conv.id, carol.id)
    with pytest.raises(NotFoundError):
        await crud.delete_conversation(conv.id + 100, alice.id)
    assert await count(Message) == 1
    assert await count(ConversationParticipant) == 2


@pytest.mark.asyncio
async def test_toggle_like(make_user, make_post):
    alice = make_user('Alice')
    post = make_post(alice)
    assert await crud.toggle_like(post.id, alice.id) is True
    assert await crud.toggle_like(post.id, alice.id) is False
    with pytest.raises(NotFoundError):
        await crud.toggle_like(post.id + 100, alice.id)
