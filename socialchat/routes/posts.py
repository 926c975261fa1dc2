from fastapi import APIRouter, Depends, Request
from ..auth import get_current_user
from ..crud import create_post, delete_post, list_posts, toggle_like
from ..schemas.messages import Pagination
from ..schemas.posts import PostIn, PostOut

router = APIRouter()

MAX_PAGE_SIZE = 100


@router.get('')
async def feed(page: int = 1, limit: int = 20, current_user: dict = Depends(get_current_user)):
    limit = min(limit, MAX_PAGE_SIZE)
    views = await list_posts(current_user['id'], page, limit)
    return {
        'success': True,
        'data': [PostOut.model_validate(v, from_attributes=True).to_wire() for v in views],
        'pagination': Pagination(page=page, limit=limit, has_more=len(views) == limit).to_wire(),
    }


@router.post('', status_code=201)
async def create(payload: PostIn, request: Request, current_user: dict = Depends(get_current_user)):
    view = await create_post(current_user['id'], payload.content)
    post = PostOut.model_validate(view, from_attributes=True).to_wire()
    await request.app.state.gateway.announce(current_user['id'], 'post:new', post)
    return {'success': True, 'data': post}


@router.delete('/{post_id}')
async def delete(post_id: int, request: Request, current_user: dict = Depends(get_current_user)):
    await delete_post(post_id, current_user['id'])
    await request.app.state.gateway.announce(current_user['id'], 'post:removed', {'postId': post_id})
    return {'success': True, 'message': 'Post deleted successfully'}


@router.post('/{post_id}/like')
async def like(post_id: int, request: Request, current_user: dict = Depends(get_current_user)):
    liked = await toggle_like(post_id, current_user['id'])
    await request.app.state.gateway.announce(current_user['id'], 'post:liked', {
        'postId': post_id, 'userId': current_user['id'], 'liked': liked,
    })
    return {'success': True, 'data': {'liked': liked}}
