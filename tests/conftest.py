"""Shared test fixtures and configuration."""

import fnmatch
from datetime import datetime, timedelta, UTC
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis

from redis_presence.models import User, UserRole

FIXED_NOW = datetime(2024, 1, 30, 9, 0, 0, tzinfo=UTC)


class FakeClock:
    """Controllable clock for time-dependent services."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class InMemoryRedis:
    """
    Stateful stand-in for the subset of redis.asyncio.Redis the services use.

    Keys expire against the shared FakeClock, so TTL behaviour can be
    exercised end to end by advancing the clock instead of sleeping.
    """

    def __init__(self, clock: FakeClock):
        self._clock = clock
        self._data: dict = {}
        self._expires_at: dict[str, datetime] = {}

    def _alive(self, key: str) -> bool:
        expires_at = self._expires_at.get(key)
        if expires_at is not None and expires_at <= self._clock.now:
            self._data.pop(key, None)
            self._expires_at.pop(key, None)
        return key in self._data

    def _set_of(self, key: str) -> set:
        return self._data[key] if self._alive(key) else set()

    async def set(self, key, value, ex=None):
        self._data[key] = value
        if ex is None:
            self._expires_at.pop(key, None)
        else:
            self._expires_at[key] = self._clock.now + timedelta(seconds=ex)
        return True

    async def get(self, key):
        return self._data[key] if self._alive(key) else None

    async def mget(self, keys):
        return [await self.get(key) for key in keys]

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self._alive(key):
                del self._data[key]
                self._expires_at.pop(key, None)
                removed += 1
        return removed

    async def exists(self, *keys):
        return sum(1 for key in keys if self._alive(key))

    async def expire(self, key, seconds):
        if not self._alive(key):
            return False
        self._expires_at[key] = self._clock.now + timedelta(seconds=seconds)
        return True

    async def ttl(self, key):
        if not self._alive(key):
            return -2
        expires_at = self._expires_at.get(key)
        if expires_at is None:
            return -1
        return round((expires_at - self._clock.now).total_seconds())

    async def sadd(self, key, *members):
        current = self._set_of(key)
        added = len(set(members) - current)
        self._data[key] = current | set(members)
        return added

    async def srem(self, key, *members):
        current = self._set_of(key)
        removed = len(current & set(members))
        remaining = current - set(members)
        if remaining:
            self._data[key] = remaining
        elif key in self._data:
            del self._data[key]
        return removed

    async def smembers(self, key):
        return set(self._set_of(key))

    async def scard(self, key):
        return len(self._set_of(key))

    async def scan(self, cursor=0, match=None, count=None):
        keys = [key for key in list(self._data) if self._alive(key)]
        if match is not None:
            keys = [key for key in keys if fnmatch.fnmatchcase(key, match)]
        return 0, sorted(keys)

    async def ping(self):
        return True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_redis():
    """Create mock Redis client with every command the services use."""
    mock = AsyncMock(spec=redis.Redis)
    mock.set = AsyncMock(return_value=True)
    mock.get = AsyncMock(return_value=None)
    mock.mget = AsyncMock(return_value=[])
    mock.delete = AsyncMock(return_value=1)
    mock.exists = AsyncMock(return_value=0)
    mock.expire = AsyncMock(return_value=True)
    mock.ttl = AsyncMock(return_value=-2)
    mock.sadd = AsyncMock(return_value=1)
    mock.srem = AsyncMock(return_value=1)
    mock.smembers = AsyncMock(return_value=set())
    mock.scard = AsyncMock(return_value=0)
    mock.scan = AsyncMock(return_value=(0, []))
    mock.ping = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def fake_redis(clock):
    """In-memory Redis whose keys expire on the `clock` fixture."""
    return InMemoryRedis(clock)


@pytest.fixture
def sample_users():
    """Three roster users, none flagged online."""
    return [
        User(
            user_id="user001",
            username="alice",
            email="alice@example.com",
            role=UserRole.ADMIN,
            last_login=FIXED_NOW,
        ),
        User(
            user_id="user002",
            username="bob",
            email="bob@example.com",
            last_login=FIXED_NOW,
        ),
        User(
            user_id="user003",
            username="charlie",
            email="charlie@example.com",
            role=UserRole.MODERATOR,
            last_login=FIXED_NOW,
        ),
    ]
