from fastapi import APIRouter, Depends, Request
from ..schemas.users import AuthOut, LoginIn, OnlineOut, RefreshIn, RegisterIn, TokenOut, UserOut
from ..crud import (
    create_user,
    authenticate_user,
    get_user_by_id,
    refresh_access_token,
    revoke_refresh_token,
)
from ..auth import get_current_user
from ..errors import NotFoundError

router = APIRouter()


@router.post('/register', status_code=201)
async def register(payload: RegisterIn):
    result = await create_user(payload)
    return {'success': True, 'data': AuthOut.model_validate(result, from_attributes=True).to_wire()}


@router.post('/login')
async def login(payload: LoginIn):
    result = await authenticate_user(payload.email, payload.password)
    return {'success': True, 'data': AuthOut.model_validate(result, from_attributes=True).to_wire()}


@router.post('/refresh')
async def refresh(payload: RefreshIn):
    token = await refresh_access_token(payload.refresh_token)
    return {'success': True, 'data': TokenOut.model_validate(token).to_wire()}


@router.post('/logout')
async def logout(current_user: dict = Depends(get_current_user)):
    await revoke_refresh_token(current_user['id'])
    return {'success': True, 'message': 'Logged out'}


@router.get('/me')
async def me(current_user: dict = Depends(get_current_user)):
    user = await get_user_by_id(current_user['id'])
    if not user:
        raise NotFoundError('User not found')
    return {'success': True, 'data': UserOut.model_validate(user, from_attributes=True).to_wire()}


@router.get('/online')
async def online(request: Request, current_user: dict = Depends(get_current_user)):
    user_ids = sorted(request.app.state.gateway.presence.list_online())
    return {'success': True, 'data': OnlineOut(user_ids=user_ids).to_wire()}
