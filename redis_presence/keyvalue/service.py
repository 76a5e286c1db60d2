"""
키-값 서비스

운영/디버그용으로 Redis 문자열 키를 직접 다루는 얇은 서비스입니다.
프레즌스 키(user:*, session:*)도 같은 키 공간에 있으므로 값을 그대로 보여줍니다.

제약:
    - 키와 값은 공백만으로 이루어질 수 없음
    - 키 최대 1,000자, 값 최대 10,000자
    - 만료 시간은 1초 ~ 1년(31,536,000초)

키 목록은 KEYS 대신 SCAN 커서로 수집하므로 서버를 블로킹하지 않지만,
비용은 여전히 전체 키 개수에 비례합니다.
"""

from typing import Optional, Union

import redis.asyncio as redis
import structlog

from ..exceptions import InvalidArgumentError

logger = structlog.get_logger(__name__)

MAX_KEY_LENGTH = 1000
MAX_VALUE_LENGTH = 10000
MAX_TTL_SECONDS = 365 * 24 * 60 * 60


def _as_str(value: Union[str, bytes]) -> str:
    return value.decode() if isinstance(value, bytes) else value


def _require_key(key: str) -> str:
    if key is None or not key.strip():
        raise InvalidArgumentError("Key cannot be empty", field="key")
    return key


class KeyValueService:
    """Redis 문자열 키 조회/저장/삭제/만료"""

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def set(self, key: str, value: str) -> None:
        """
        키에 값을 저장 (만료 없음, 기존 TTL도 제거됨)

        Raises:
            InvalidArgumentError: 빈 키/값 또는 길이 제한 초과
        """
        if not key or not key.strip() or not value or not value.strip():
            raise InvalidArgumentError("Key and value cannot be empty")
        if len(key) > MAX_KEY_LENGTH or len(value) > MAX_VALUE_LENGTH:
            raise InvalidArgumentError(
                "Key or value too long",
                data={
                    "max_key_length": MAX_KEY_LENGTH,
                    "max_value_length": MAX_VALUE_LENGTH,
                },
            )

        await self.redis.set(key, value)
        logger.info("Key set", key=key, value_length=len(value))

    async def get(self, key: str) -> Optional[str]:
        """값 조회, 키가 없으면 None"""
        raw = await self.redis.get(_require_key(key))
        return None if raw is None else _as_str(raw)

    async def get_ttl(self, key: str) -> Optional[int]:
        """남은 TTL (초), 만료가 없거나 키가 없으면 None"""
        remaining = await self.redis.ttl(_require_key(key))
        if remaining is None or remaining < 0:
            return None
        return int(remaining)

    async def delete(self, key: str) -> bool:
        """키 삭제, 실제로 삭제되었는지 여부 반환"""
        deleted = await self.redis.delete(_require_key(key))
        if deleted:
            logger.info("Key deleted", key=key)
        return bool(deleted)

    async def keys(self, pattern: str = "*", batch_size: int = 100) -> list[str]:
        """패턴에 맞는 모든 키 (정렬됨)"""
        found: set[str] = set()
        cursor = 0

        while True:
            cursor, batch = await self.redis.scan(cursor, match=pattern, count=batch_size)
            found.update(_as_str(key) for key in batch)
            if cursor == 0:
                break

        return sorted(found)

    async def expire(self, key: str, seconds: int) -> bool:
        """
        키에 만료 시간 설정

        Returns:
            키가 존재하여 만료가 설정되었는지 여부

        Raises:
            InvalidArgumentError: seconds가 1 ~ MAX_TTL_SECONDS 범위를 벗어날 때
        """
        _require_key(key)
        if seconds < 1 or seconds > MAX_TTL_SECONDS:
            raise InvalidArgumentError(
                f"TTL must be between 1 and {MAX_TTL_SECONDS} seconds",
                field="seconds",
                value=seconds,
            )

        applied = await self.redis.expire(key, seconds)
        if applied:
            logger.info("Key expiry set", key=key, ttl_seconds=seconds)
        return bool(applied)
