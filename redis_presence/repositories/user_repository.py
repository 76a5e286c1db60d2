"""
로스터 사용자 영속성 관리를 위한 Repository 패턴 구현

세션 관리 변형에서 쓰이는 영속 사용자 레코드를 저장합니다.
프레즌스 트래커는 이 레코드를 소유하지 않으며, 로스터는 외부 협력자로 취급됩니다.

구현체:
    - RedisUserRepository: Redis 기반 구현 (운영용)
        users:{user_id}  사용자 JSON
        users            사용자 ID 인덱스 Set
    - InMemoryUserRepository: 메모리 기반 구현 (개발/테스트용)
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional, Union

import redis.asyncio as redis
import structlog

from ..models import User

# 구조화된 로깅을 위한 모듈별 로거
logger = structlog.get_logger(__name__)


class UserRepository(ABC):
    """
    로스터 사용자 저장소 추상 클래스

    모든 메서드는 async/await 패턴을 사용합니다.
    """

    @abstractmethod
    async def get(self, user_id: str) -> Optional[User]:
        """
        사용자 ID로 조회

        Returns:
            Optional[User]: 사용자 모델 또는 None (미존재시)
        """
        pass

    @abstractmethod
    async def get_many(self, user_ids: Iterable[str]) -> list[User]:
        """여러 사용자를 한 번에 조회 (없는 ID는 건너뜀)"""
        pass

    @abstractmethod
    async def list_all(self) -> list[User]:
        """전체 사용자 목록 (user_id 정렬)"""
        pass

    @abstractmethod
    async def count(self) -> int:
        pass

    @abstractmethod
    async def save(self, user: User) -> User:
        """사용자 생성 또는 덮어쓰기"""
        pass

    async def save_all(self, users: Iterable[User]) -> int:
        saved = 0
        for user in users:
            await self.save(user)
            saved += 1
        return saved

    @abstractmethod
    async def delete(self, user_id: str) -> bool:
        """
        사용자 삭제

        Returns:
            bool: 삭제 성공 여부 (없던 사용자면 False)
        """
        pass

    @abstractmethod
    async def delete_all(self) -> None:
        pass


class InMemoryUserRepository(UserRepository):
    """
    메모리 기반 사용자 Repository 구현체

    애플리케이션 재시작 시 데이터가 사라집니다.
    로컬 개발과 단위 테스트에서 사용합니다.
    """

    def __init__(self, users: Optional[Iterable[User]] = None) -> None:
        # user_id -> User 객체
        self._users: dict[str, User] = {}
        for user in users or []:
            self._users[user.user_id] = user

    async def get(self, user_id: str) -> Optional[User]:
        user = self._users.get(user_id)
        return user.model_copy() if user else None

    async def get_many(self, user_ids: Iterable[str]) -> list[User]:
        found = [self._users[uid] for uid in user_ids if uid in self._users]
        return sorted(
            (u.model_copy() for u in found), key=lambda u: u.user_id
        )

    async def list_all(self) -> list[User]:
        return [self._users[uid].model_copy() for uid in sorted(self._users)]

    async def count(self) -> int:
        return len(self._users)

    async def save(self, user: User) -> User:
        self._users[user.user_id] = user.model_copy()
        return user

    async def delete(self, user_id: str) -> bool:
        return self._users.pop(user_id, None) is not None

    async def delete_all(self) -> None:
        self._users.clear()


class RedisUserRepository(UserRepository):
    """
    Redis 기반 사용자 Repository 구현체

    사용자 레코드는 TTL 없이 저장됩니다. 인덱스 Set에는 남아 있지만
    본문이 사라진 ID는 목록 조회 시 인덱스에서 정리합니다.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        key_prefix: str = "users",
    ):
        """
        Args:
            redis_client: Redis 비동기 클라이언트
            key_prefix: 사용자 키 접두사이자 인덱스 Set 이름
        """
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.index_key = key_prefix

    def _user_key(self, user_id: str) -> str:
        return f"{self.key_prefix}:{user_id}"

    @staticmethod
    def _decode(raw: Union[str, bytes, None]) -> Optional[User]:
        if raw is None:
            return None
        return User.model_validate_json(raw)

    async def get(self, user_id: str) -> Optional[User]:
        return self._decode(await self.redis.get(self._user_key(user_id)))

    async def get_many(self, user_ids: Iterable[str]) -> list[User]:
        ids = sorted(set(user_ids))
        if not ids:
            return []

        raws = await self.redis.mget([self._user_key(uid) for uid in ids])
        return [user for user in map(self._decode, raws) if user is not None]

    async def list_all(self) -> list[User]:
        members = await self.redis.smembers(self.index_key)
        ids = sorted(m.decode() if isinstance(m, bytes) else m for m in members)
        if not ids:
            return []

        raws = await self.redis.mget([self._user_key(uid) for uid in ids])

        users: list[User] = []
        orphaned: list[str] = []
        for uid, raw in zip(ids, raws):
            user = self._decode(raw)
            if user is None:
                orphaned.append(uid)
            else:
                users.append(user)

        if orphaned:
            await self.redis.srem(self.index_key, *orphaned)
            logger.warning("Dropped orphaned user index entries", count=len(orphaned))

        return users

    async def count(self) -> int:
        return int(await self.redis.scard(self.index_key))

    async def save(self, user: User) -> User:
        await self.redis.set(self._user_key(user.user_id), user.model_dump_json())
        await self.redis.sadd(self.index_key, user.user_id)
        return user

    async def delete(self, user_id: str) -> bool:
        deleted = await self.redis.delete(self._user_key(user_id))
        await self.redis.srem(self.index_key, user_id)
        return bool(deleted)

    async def delete_all(self) -> None:
        members = await self.redis.smembers(self.index_key)
        keys = [
            self._user_key(m.decode() if isinstance(m, bytes) else m) for m in members
        ]
        if keys:
            await self.redis.delete(*keys)
        await self.redis.delete(self.index_key)
        logger.info("User roster cleared", count=len(keys))
