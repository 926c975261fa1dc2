import itertools
import os
import tempfile
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

# Configure test environment before the app modules read it
_DB_PATH = Path(tempfile.mkdtemp(prefix='socialchat-tests-')) / 'test.db'
os.environ['DATABASE_URL'] = f'sqlite+aiosqlite:///{_DB_PATH}'
os.environ['ENABLE_METRICS'] = '0'
os.environ.pop('REDIS_URL', None)
os.environ.setdefault('JWT_SECRET', 'test-secret')

from socialchat import core  # noqa: E402
from socialchat.auth import create_access_token  # noqa: E402
from socialchat.models import Base  # noqa: E402
from socialchat.models.posts import Post  # noqa: E402
from socialchat.models.users import User  # noqa: E402
from socialchat.main import app  # noqa: E402

# schema setup and fixtures use a plain sqlite engine on the same file
sync_engine = create_engine(f'sqlite:///{_DB_PATH}')


@pytest.fixture(autouse=True)
def fresh_schema():
    """Every test starts with empty tables and nobody online."""
    Base.metadata.drop_all(sync_engine)
    Base.metadata.create_all(sync_engine)
    app.state.gateway.manager.clear()
    yield
    app.state.gateway.manager.clear()


@pytest.fixture
def make_user():
    counter = itertools.count(1)

    def _make(name=None):
        n = next(counter)
        with Session(sync_engine, expire_on_commit=False) as session:
            user = User(email=f'user{n}@example.com', name=name or f'User {n}', hashed_password='!')
            session.add(user)
            session.commit()
            return user

    return _make


@pytest.fixture
def make_post():
    def _make(author):
        with Session(sync_engine, expire_on_commit=False) as session:
            post = Post(author_id=author.id, content='first post')
            session.add(post)
            session.commit()
            return post

    return _make


def token_for(user) -> str:
    return create_access_token({'id': user.id, 'email': user.email, 'type': 'access'})


@pytest.fixture
def auth_header():
    def _header(user):
        return {'Authorization': f'Bearer {token_for(user)}'}
    return _header


@pytest.fixture
def token():
    return token_for


class FakeRedis:
    """In-memory stand-in for the redis.asyncio calls the app makes."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def set(self, key, value, ex=None):
        self.store[key] = value
        if ex:
            self.ttls[key] = ex
        else:
            self.ttls.pop(key, None)

    async def get(self, key):
        return self.store.get(key)

    async def delete(self, key):
        self.store.pop(key, None)
        self.ttls.pop(key, None)

    async def incr(self, key):
        self.store[key] = int(self.store.get(key, 0)) + 1
        return self.store[key]

    async def expire(self, key, ttl):
        self.ttls[key] = ttl

    async def aclose(self):
        pass


@pytest.fixture
def fake_redis(monkeypatch):
    redis = FakeRedis()
    monkeypatch.setattr(core, 'REDIS', redis)
    return redis
