from fastapi import APIRouter, WebSocket, Query
from pydantic import ValidationError
import logging
from ..auth import extract_bearer, verify_access_token
from ..errors import UnauthorizedError
from ..schemas.ws import WsInbound
from ..ws_manager import Connection

logger = logging.getLogger(__name__)

router = APIRouter()


def frame_text(message: dict):
    """Text payload of a websocket.receive message; binary frames must be utf-8."""
    if message.get('text') is not None:
        return message['text']
    if message.get('bytes') is not None:
        try:
            return message['bytes'].decode('utf-8')
        except UnicodeDecodeError:
            return None
    return None


@router.websocket('/chat')
async def chat_ws(websocket: WebSocket, token: str = Query(None)):
    gateway = websocket.app.state.gateway
    token = token or extract_bearer(websocket.headers.get('authorization'))
    try:
        user = verify_access_token(token)
    except UnauthorizedError as e:
        logger.info({'msg': 'ws_auth_rejected', 'error': e.message})
        await websocket.close(code=1008)
        return

    await websocket.accept()
    connection = Connection(websocket, user['id'])
    await gateway.connect(connection)
    try:
        while True:
            message = await websocket.receive()
            if message['type'] == 'websocket.disconnect':
                break
            raw = frame_text(message)
            try:
                if raw is None:
                    raise ValueError('unreadable frame')
                frame = WsInbound.model_validate_json(raw)
            except (ValueError, ValidationError):
                await connection.send('error', {'error': 'Malformed frame'})
                continue
            await gateway.dispatch(connection, frame)
    finally:
        await gateway.disconnect(connection)
