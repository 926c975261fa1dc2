import re
from datetime import datetime, timezone

_whitespace = re.compile(r'\s+')

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def sanitize_string(value: str) -> str:
    """Trim and collapse runs of whitespace into single spaces."""
    return _whitespace.sub(' ', value.strip())

def room_name(conversation_id: int) -> str:
    return f'conversation:{conversation_id}'
