"""
로스터 기반 세션 관리 서비스

영속 사용자 로스터(UserRepository)와 TTL 기반 프레즌스 트래커를 결합해
온라인/오프라인 목록, 통계, 사용자 제거를 제공합니다.

단일 진실 공급원:
    - 온라인 여부는 항상 트래커의 TTL 마커로 판단
    - 로스터의 is_online 필드는 캐시된 투영값이며,
      조회 결과를 돌려줄 때마다 마커 기준으로 덮어씀

멱등성 정책:
    - set_user_offline: 이미 오프라인이어도 성공 (로스터에 없으면 NotFound)
    - refresh_user_ttl: 활성 세션이 없으면 NotFound
"""

from datetime import datetime, UTC
from typing import Callable

import structlog

from ..exceptions import NotFoundError, require_user_id
from ..models import SessionResponse, SessionStatsResponse, User
from ..presence import PresenceTracker
from ..repositories import UserRepository

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SessionService:
    """
    세션 관리 서비스

    Attributes:
        users (UserRepository): 로스터 저장소
        tracker (PresenceTracker): TTL 프레즌스 트래커
    """

    def __init__(
        self,
        user_repository: UserRepository,
        tracker: PresenceTracker,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.users = user_repository
        self.tracker = tracker
        self._clock = clock

    @staticmethod
    def _project(users: list[User], alive_ids: set[str]) -> list[User]:
        return [
            user.model_copy(update={"is_online": user.user_id in alive_ids})
            for user in users
        ]

    async def _get_user_or_raise(self, user_id: str) -> User:
        user_id = require_user_id(user_id)
        user = await self.users.get(user_id)
        if user is None:
            logger.error("User not found", user_id=user_id)
            raise NotFoundError(
                f"User not found: {user_id}", resource_type="user", resource_id=user_id
            )
        return user

    async def get_all_users(self) -> list[User]:
        """전체 사용자 (온라인 여부는 마커 기준으로 투영)"""
        alive_ids = await self.tracker.get_online_users()
        return self._project(await self.users.list_all(), alive_ids)

    async def get_online_users(self) -> list[User]:
        """마커가 살아 있는 로스터 사용자"""
        alive_ids = await self.tracker.get_online_users()
        if not alive_ids:
            return []
        return self._project(await self.users.get_many(alive_ids), alive_ids)

    async def get_offline_users(self) -> list[User]:
        alive_ids = await self.tracker.get_online_users()
        all_users = await self.users.list_all()
        offline = [user for user in all_users if user.user_id not in alive_ids]
        return self._project(offline, alive_ids)

    async def get_session_stats(self) -> SessionStatsResponse:
        """
        세션 통계

        로스터에 없는 ID가 멤버십에 남아 있어도 온라인 수에 포함하지 않으므로
        online + offline == total, 0 <= 비율 <= 100이 항상 성립합니다.
        """
        alive_ids = await self.tracker.get_online_users()
        all_users = await self.users.list_all()
        online = sum(1 for user in all_users if user.user_id in alive_ids)
        return SessionStatsResponse.of(len(all_users), online)

    async def set_user_online(self, user_id: str) -> SessionResponse:
        """
        사용자를 온라인으로 설정

        Raises:
            NotFoundError: 로스터에 사용자가 없을 때
        """
        user = await self._get_user_or_raise(user_id)

        ttl = await self.tracker.login(user.user_id)
        await self.users.save(
            user.model_copy(update={"is_online": True, "last_login": self._clock()})
        )

        return SessionResponse(
            message="User set to online successfully",
            user_id=user.user_id,
            username=user.username,
            status="online",
            ttl_seconds=ttl,
        )

    async def set_user_offline(self, user_id: str) -> SessionResponse:
        user = await self._get_user_or_raise(user_id)

        await self.tracker.logout(user.user_id)
        await self.users.save(user.model_copy(update={"is_online": False}))

        return SessionResponse(
            message="User set to offline successfully",
            user_id=user.user_id,
            username=user.username,
            status="offline",
        )

    async def refresh_user_ttl(self, user_id: str) -> SessionResponse:
        """
        세션 TTL 갱신

        Raises:
            NotFoundError: 로스터에 없거나 활성 세션이 없을 때
        """
        user = await self._get_user_or_raise(user_id)
        ttl = await self.tracker.refresh(user.user_id)

        return SessionResponse(
            message="User session TTL refreshed successfully",
            user_id=user.user_id,
            username=user.username,
            status="refreshed",
            ttl_seconds=ttl,
        )

    async def remove_user(self, user_id: str) -> SessionResponse:
        """세션과 로스터 레코드를 모두 삭제"""
        user = await self._get_user_or_raise(user_id)

        await self.tracker.remove(user.user_id)
        await self.users.delete(user.user_id)

        logger.info("User removed", user_id=user.user_id)
        return SessionResponse(
            message="User removed successfully",
            user_id=user.user_id,
            username=user.username,
            status="removed",
        )
