import os
from jose import jwt, JWTError
from datetime import datetime, timedelta, timezone
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import secrets
import hashlib
from .errors import UnauthorizedError

# Prefer JWT_SECRET but support legacy JWT_SECRET_KEY for compatibility
SECRET = os.getenv('JWT_SECRET') or os.getenv('JWT_SECRET_KEY', 'devsecret')
ALGORITHM = os.getenv('JWT_ALGORITHM', 'HS256')
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv('ACCESS_TOKEN_EXPIRE_MINUTES', '15'))

REFRESH_TOKEN_TTL_DAYS = int(os.getenv('REFRESH_TOKEN_TTL_DAYS', '7'))

bearer_scheme = HTTPBearer(auto_error=False)

def refresh_token_expiry() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=REFRESH_TOKEN_TTL_DAYS)

def generate_refresh_token() -> str:
    # 256-bit random token, URL-safe
    return secrets.token_urlsafe(48)

def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()

def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({'exp': expire})
    encoded = jwt.encode(to_encode, SECRET, algorithm=ALGORITHM)
    return encoded

def decode_token(token: str):
    try:
        payload = jwt.decode(token, SECRET, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if not isinstance(payload.get('id'), int):
        return None
    return payload

def verify_access_token(token: str | None) -> dict:
    """Decode a bearer token or raise UnauthorizedError."""
    if not token:
        raise UnauthorizedError('No token provided')
    payload = decode_token(token)
    if not payload or payload.get('type') != 'access':
        raise UnauthorizedError('Invalid or expired access token')
    return payload

def extract_bearer(header_value: str | None) -> str | None:
    if not header_value:
        return None
    scheme, _, credentials = header_value.partition(' ')
    if scheme.lower() != 'bearer' or not credentials:
        return None
    return credentials.strip()

async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> dict:
    token = credentials.credentials if credentials else None
    return verify_access_token(token)
