from fastapi import APIRouter, Depends, Request
from ..auth import get_current_user
from ..crud import list_conversations, list_messages, mark_as_read
from ..schemas.messages import ConversationSummary, MessageOut, Pagination

router = APIRouter()

MAX_PAGE_SIZE = 100


@router.get('')
async def conversations(current_user: dict = Depends(get_current_user)):
    views = await list_conversations(current_user['id'])
    return {
        'success': True,
        'data': [ConversationSummary.model_validate(v, from_attributes=True).to_wire() for v in views],
    }


@router.get('/{conversation_id}/messages')
async def messages(conversation_id: int, page: int = 1, limit: int = 50, current_user: dict = Depends(get_current_user)):
    limit = min(limit, MAX_PAGE_SIZE)
    items = await list_messages(conversation_id, current_user['id'], page, limit)
    return {
        'success': True,
        'data': [MessageOut.model_validate(m, from_attributes=True).to_wire() for m in items],
        'pagination': Pagination(page=page, limit=limit, has_more=len(items) == limit).to_wire(),
    }


@router.post('/{conversation_id}/read')
async def read(conversation_id: int, current_user: dict = Depends(get_current_user)):
    await mark_as_read(conversation_id, current_user['id'])
    return {'success': True, 'message': 'Marked as read'}


@router.delete('/{conversation_id}')
async def delete(conversation_id: int, request: Request, current_user: dict = Depends(get_current_user)):
    # go through the gateway so connected participants hear about it
    result = await request.app.state.gateway.delete_conversation(current_user['id'], conversation_id)
    return {'success': True, 'message': 'Conversation deleted for everyone', 'data': result}
