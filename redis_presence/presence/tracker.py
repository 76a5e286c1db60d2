"""
Redis 기반 사용자 프레즌스 트래커

사용자별 TTL 마커 키의 존재 여부로 온라인 상태를 판단하고,
멤버십 Set으로 전체 키 스캔 없이 온라인 사용자를 열거합니다.

저장 구조:
    - {prefix}:{user_id}:online      마커 키 (TTL = ONLINE_TTL)
    - {prefix}:{user_id}:lastActive  마지막 활동 시각 (TTL 없음, ISO 8601)
    - online_users                   온라인으로 추정되는 사용자 ID Set

상태 전이:
    Unknown --login--> Online --(TTL 만료 | logout)--> Offline
    Online --refresh--> Online (TTL 재설정)
    Offline --login--> Online

    Unknown과 Offline은 lastActive 기록 유무로만 구분됩니다.

정합성:
    - 멤버십 Set의 항목은 살아있는 마커를 가져야 하지만 강제하지 않음
    - 마커가 조용히 만료된 항목은 다음 열거 시 제거 (지연 정리)
    - 트랜잭션/락 없음, 모든 작업은 1~2회의 독립적인 Redis 호출
    - Redis 오류는 재시도 없이 호출자에게 그대로 전파
"""

from datetime import datetime, UTC
from typing import Callable, Optional, Set, Union

import redis.asyncio as redis
import structlog

from ..exceptions import NotFoundError, require_user_id

logger = structlog.get_logger(__name__)

ONLINE_USERS_SET = "online_users"
DEFAULT_KEY_PREFIX = "user"
DEFAULT_ONLINE_TTL = 30
ONLINE_MARKER_VALUE = "ONLINE"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _as_str(value: Union[str, bytes]) -> str:
    return value.decode() if isinstance(value, bytes) else value


class PresenceTracker:
    """
    TTL 마커 기반 프레즌스 트래커

    상태를 갖지 않는 애플리케이션 로직으로, 모든 상태는 Redis에 있습니다.
    여러 인스턴스가 같은 Redis를 공유해도 동일한 결과를 봅니다.

    사용 예시:
        tracker = PresenceTracker(redis_client, online_ttl=30)
        ttl = await tracker.login("u1")       # 30
        await tracker.is_online("u1")         # True
        await tracker.get_online_users()      # {"u1"}
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        online_ttl: int = DEFAULT_ONLINE_TTL,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        membership_key: str = ONLINE_USERS_SET,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            redis_client: Redis 비동기 클라이언트 (연결 풀 공유)
            online_ttl: 마커 키 TTL (초)
            key_prefix: 마커/lastActive 키 접두사
            membership_key: 온라인 사용자 Set 키
            clock: 현재 시각 공급자 (테스트에서 교체)
        """
        if online_ttl <= 0:
            raise ValueError("online_ttl must be positive")

        self.redis = redis_client
        self.online_ttl = online_ttl
        self.key_prefix = key_prefix
        self.membership_key = membership_key
        self._clock = clock

    def _marker_key(self, user_id: str) -> str:
        return f"{self.key_prefix}:{user_id}:online"

    def _last_active_key(self, user_id: str) -> str:
        return f"{self.key_prefix}:{user_id}:lastActive"

    async def _touch(self, user_id: str) -> datetime:
        """마지막 활동 시각 기록 (만료 없음)"""
        now = self._clock()
        await self.redis.set(self._last_active_key(user_id), now.isoformat())
        return now

    async def login(self, user_id: str) -> int:
        """
        사용자를 온라인으로 표시

        이미 온라인이면 TTL 창만 다시 시작합니다 (refresh와 동일한 효과).

        Args:
            user_id: 사용자 식별자 (공백 불가)

        Returns:
            적용된 TTL (초)

        Raises:
            InvalidArgumentError: user_id가 비어 있을 때
        """
        user_id = require_user_id(user_id)

        await self.redis.set(
            self._marker_key(user_id), ONLINE_MARKER_VALUE, ex=self.online_ttl
        )
        # 마커 설정 후 멤버십 추가가 실패하면 마커만 남는다 (TTL로 자연 소멸)
        await self.redis.sadd(self.membership_key, user_id)
        await self._touch(user_id)

        logger.info("User online", user_id=user_id, ttl_seconds=self.online_ttl)
        return self.online_ttl

    async def logout(self, user_id: str) -> None:
        """
        사용자를 오프라인으로 표시

        마커와 멤버십을 지우고 lastActive는 갱신해 보존합니다.
        이미 오프라인인 사용자에 대해서도 성공합니다 (멱등).
        """
        user_id = require_user_id(user_id)

        await self.redis.delete(self._marker_key(user_id))
        await self.redis.srem(self.membership_key, user_id)
        await self._touch(user_id)

        logger.info("User offline", user_id=user_id)

    async def refresh(self, user_id: str) -> int:
        """
        온라인 마커의 TTL을 ONLINE_TTL로 재설정

        마커가 없으면 NotFoundError를 발생시킵니다. 멤버십도 다시 추가하여
        마커만 있고 멤버십이 빠진 불일치 상태를 복구합니다.

        Returns:
            재조회한 남은 TTL (0 < ttl <= ONLINE_TTL)

        Raises:
            InvalidArgumentError: user_id가 비어 있을 때
            NotFoundError: 활성 마커가 없을 때
        """
        user_id = require_user_id(user_id)
        marker_key = self._marker_key(user_id)

        # EXPIRE는 키가 없으면 0을 돌려주므로 존재 확인과 갱신이 한 번에 끝난다
        if not await self.redis.expire(marker_key, self.online_ttl):
            logger.info("Refresh rejected, no active session", user_id=user_id)
            raise NotFoundError(
                f"No active session for user: {user_id}",
                resource_type="session",
                resource_id=user_id,
            )

        await self.redis.sadd(self.membership_key, user_id)
        await self._touch(user_id)

        remaining = await self.redis.ttl(marker_key)
        if remaining is None or remaining <= 0:
            # 갱신 직후 logout과 경합한 경우
            remaining = self.online_ttl

        logger.debug("Session refreshed", user_id=user_id, ttl_seconds=remaining)
        return int(remaining)

    async def is_online(self, user_id: str) -> bool:
        """마커 키 존재 여부 (부수 효과 없음)"""
        user_id = require_user_id(user_id)
        return bool(await self.redis.exists(self._marker_key(user_id)))

    async def get_last_active_time(self, user_id: str) -> Optional[datetime]:
        """
        마지막 활동 시각 조회

        Returns:
            기록된 시각, 한 번도 활동하지 않았으면 None
        """
        user_id = require_user_id(user_id)
        raw = await self.redis.get(self._last_active_key(user_id))
        if raw is None:
            return None
        return datetime.fromisoformat(_as_str(raw))

    async def get_remaining_ttl(self, user_id: str) -> Optional[int]:
        """마커의 남은 TTL (초), 오프라인이면 None"""
        user_id = require_user_id(user_id)
        remaining = await self.redis.ttl(self._marker_key(user_id))
        if remaining is None or remaining < 0:
            return None
        return int(remaining)

    async def get_online_users(self) -> Set[str]:
        """
        온라인 사용자 조회 (지연 정리 포함)

        멤버십 Set을 읽고 각 멤버의 마커를 확인합니다. 마커가 만료된
        멤버는 결과에서 제외하고 Set에서도 제거합니다.

        Set 조회와 마커 확인 사이에 만료되는 멤버가 있을 수 있으며,
        결과는 스냅샷이 아닌 "현재 기준 최선"입니다.

        Returns:
            정리된 온라인 사용자 ID 집합
        """
        members = await self.redis.smembers(self.membership_key)
        if not members:
            return set()

        alive: Set[str] = set()
        stale: list[str] = []

        for member in members:
            user_id = _as_str(member)
            if await self.redis.exists(self._marker_key(user_id)):
                alive.add(user_id)
            else:
                stale.append(user_id)

        if stale:
            await self.redis.srem(self.membership_key, *stale)
            logger.info(
                "Removed stale online members",
                stale_count=len(stale),
                membership_key=self.membership_key,
            )

        return alive

    async def scan_online_users(self, batch_size: int = 100) -> Set[str]:
        """
        마커 키 패턴을 스캔해 온라인 사용자 도출 (디버그 전용)

        멤버십 Set을 쓰지 않으므로 불일치가 없지만, 비용이 온라인 사용자
        수가 아닌 전체 키 개수에 비례합니다. 운영 경로에서 사용하지 마세요.
        """
        head = f"{self.key_prefix}:"
        tail = ":online"
        found: Set[str] = set()
        cursor = 0

        while True:
            cursor, keys = await self.redis.scan(
                cursor, match=f"{head}*{tail}", count=batch_size
            )
            for key in keys:
                key = _as_str(key)
                found.add(key[len(head) : -len(tail)])

            if cursor == 0:
                break

        return found

    async def remove(self, user_id: str) -> None:
        """
        사용자의 프레즌스 흔적을 모두 삭제

        logout과 같이 마커와 멤버십을 지우고, lastActive 기록까지 삭제합니다.
        """
        user_id = require_user_id(user_id)

        await self.redis.delete(
            self._marker_key(user_id), self._last_active_key(user_id)
        )
        await self.redis.srem(self.membership_key, user_id)

        logger.info("User presence removed", user_id=user_id)

    async def clear_membership(self) -> None:
        """멤버십 Set 전체 삭제 (시드 로딩 전 초기화용)"""
        await self.redis.delete(self.membership_key)
