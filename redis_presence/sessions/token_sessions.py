"""
토큰 세션 서비스

자격 증명 로그인으로 불투명한 세션 토큰을 발급하고 Redis에 TTL과 함께 저장합니다.
사용자별 세션 인덱스 Set으로 한 사용자의 세션을 열거/일괄 종료합니다.

저장 구조:
    - session:{session_id}      세션 JSON (TTL = expires_at까지 남은 시간)
    - user_sessions:{user_id}   사용자의 세션 ID Set

정합성:
    - 세션 키가 TTL로 사라져도 인덱스에는 ID가 남을 수 있음
    - 사용자 세션 조회 시 죽은 ID를 인덱스에서 제거 (지연 정리)
"""

import re
import uuid
from datetime import datetime, timedelta, UTC
from typing import Callable, Optional, Union

import redis.asyncio as redis
import structlog

from ..exceptions import InvalidArgumentError, UnauthorizedError
from ..models import UserSession
from ..repositories import InMemoryAccountRepository

logger = structlog.get_logger(__name__)

SESSION_PREFIX = "session:"
USER_SESSIONS_PREFIX = "user_sessions:"
SESSION_ID_PREFIX = "sess_"
DEFAULT_SESSION_TTL = timedelta(minutes=30)
SESSION_ID_PATTERN = re.compile(r"sess_[0-9a-f]{32}")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _as_str(value: Union[str, bytes]) -> str:
    return value.decode() if isinstance(value, bytes) else value


def generate_session_id() -> str:
    """sess_ + 하이픈 없는 UUID4"""
    return SESSION_ID_PREFIX + uuid.uuid4().hex


def is_valid_session_id(session_id: str) -> bool:
    """generate_session_id 형식(sess_ + 32자리 소문자 hex)인지 확인"""
    return SESSION_ID_PATTERN.fullmatch(session_id) is not None


class TokenSessionService:
    """Redis 기반 토큰 세션 관리"""

    def __init__(
        self,
        redis_client: redis.Redis,
        accounts: InMemoryAccountRepository,
        session_ttl: timedelta = DEFAULT_SESSION_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            redis_client: Redis 비동기 클라이언트
            accounts: 자격 증명 검증용 계정 저장소
            session_ttl: 새 세션의 기본 수명
            clock: 현재 시각 공급자 (테스트에서 교체)
        """
        self.redis = redis_client
        self.accounts = accounts
        self.session_ttl = session_ttl
        self._clock = clock

    @staticmethod
    def _session_key(session_id: str) -> str:
        return f"{SESSION_PREFIX}{session_id}"

    @staticmethod
    def _user_sessions_key(user_id: int) -> str:
        return f"{USER_SESSIONS_PREFIX}{user_id}"

    async def _persist(self, session: UserSession, ttl: timedelta) -> None:
        await self.redis.set(
            self._session_key(session.session_id),
            session.model_dump_json(),
            ex=max(1, int(ttl.total_seconds())),
        )

    async def _read(self, session_id: str) -> Optional[UserSession]:
        if not is_valid_session_id(session_id):
            # 다른 네임스페이스(session:user:...) 키를 읽지 않음
            return None
        raw = await self.redis.get(self._session_key(session_id))
        if raw is None:
            return None
        return UserSession.model_validate_json(raw)

    async def create_session(
        self, username: str, password: str, client_ip: Optional[str] = None
    ) -> Optional[UserSession]:
        """
        자격 증명이 유효하면 새 세션 생성

        Returns:
            생성된 세션, 사용자 없음/비밀번호 불일치/비활성 계정이면 None
        """
        if not self.accounts.validate_credentials(username, password):
            logger.warning("Login rejected", username=username, client_ip=client_ip)
            return None

        account = self.accounts.find_by_username(username)
        now = self._clock()
        session = UserSession(
            session_id=generate_session_id(),
            user_id=account.id,
            username=account.username,
            roles=list(account.roles),
            created_at=now,
            expires_at=now + self.session_ttl,
            client_ip=client_ip,
        )

        await self._persist(session, self.session_ttl)
        await self.redis.sadd(self._user_sessions_key(account.id), session.session_id)

        logger.info(
            "Session created",
            session_id=session.session_id,
            user_id=account.id,
            ttl_seconds=int(self.session_ttl.total_seconds()),
        )
        return session

    async def get_session(self, session_id: str) -> Optional[UserSession]:
        """
        세션 조회

        저장된 expires_at이 지났으면 세션을 삭제하고 None을 돌려줍니다.
        """
        session = await self._read(session_id)
        if session is None:
            return None

        if session.is_expired(self._clock()):
            await self.delete_session(session_id)
            return None

        return session

    async def delete_session(self, session_id: str) -> bool:
        """
        세션 삭제 (인덱스 정리 포함)

        Returns:
            실제로 키가 삭제되었는지 여부
        """
        if not is_valid_session_id(session_id):
            return False

        session = await self._read(session_id)
        deleted = await self.redis.delete(self._session_key(session_id))

        if session is not None:
            await self.redis.srem(self._user_sessions_key(session.user_id), session_id)

        return bool(deleted)

    async def get_all_active_sessions(self, batch_size: int = 100) -> list[str]:
        """
        모든 활성 세션 ID (디버그 전용 키 스캔)

        비용이 전체 키 개수에 비례합니다.
        """
        found: set[str] = set()
        cursor = 0
        match = f"{SESSION_PREFIX}{SESSION_ID_PREFIX}*"

        while True:
            cursor, keys = await self.redis.scan(cursor, match=match, count=batch_size)
            for key in keys:
                found.add(_as_str(key)[len(SESSION_PREFIX) :])
            if cursor == 0:
                break

        return sorted(found)

    async def get_user_active_sessions(self, user_id: int) -> list[str]:
        """
        사용자의 활성 세션 ID 목록

        인덱스에 남은 죽은 세션 ID는 조회 중에 제거합니다.
        """
        index_key = self._user_sessions_key(user_id)
        members = await self.redis.smembers(index_key)
        if not members:
            return []

        alive: list[str] = []
        for session_id in sorted(_as_str(m) for m in members):
            if await self.get_session(session_id) is not None:
                alive.append(session_id)
            else:
                await self.redis.srem(index_key, session_id)

        return alive

    async def extend_session(self, session_id: str, additional_minutes: int) -> bool:
        """
        세션 만료 시각을 분 단위로 연장

        Returns:
            연장 성공 여부 (세션 없음/만료 시 False)

        Raises:
            InvalidArgumentError: additional_minutes가 0 이하일 때
        """
        if additional_minutes <= 0:
            raise InvalidArgumentError(
                "Extension minutes must be positive",
                field="minutes",
                value=additional_minutes,
            )

        if not is_valid_session_id(session_id):
            return False

        session = await self._read(session_id)
        if session is None:
            return False

        now = self._clock()
        if session.is_expired(now):
            await self.delete_session(session_id)
            return False

        new_expires_at = session.expires_at + timedelta(minutes=additional_minutes)
        remaining = new_expires_at - now
        if remaining <= timedelta(0):
            await self.delete_session(session_id)
            return False

        extended = session.model_copy(update={"expires_at": new_expires_at})
        await self._persist(extended, remaining)

        logger.info(
            "Session extended",
            session_id=session_id,
            minutes=additional_minutes,
            expires_at=new_expires_at.isoformat(),
        )
        return True

    async def terminate_all_user_sessions(self, user_id: int) -> int:
        """사용자의 모든 활성 세션 종료, 종료된 개수 반환"""
        terminated = 0
        for session_id in await self.get_user_active_sessions(user_id):
            if await self.delete_session(session_id):
                terminated += 1

        logger.info("User sessions terminated", user_id=user_id, count=terminated)
        return terminated

    async def validate_session(self, session_id: str) -> UserSession:
        """
        세션 검증

        Raises:
            UnauthorizedError: 세션이 없거나 만료되었을 때
        """
        session = await self.get_session(session_id)
        if session is None:
            raise UnauthorizedError("Invalid or expired session")
        return session
