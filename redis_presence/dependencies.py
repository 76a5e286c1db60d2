"""
FastAPI 의존성 주입 모듈

서비스 인스턴스를 지연 초기화 싱글톤으로 관리하고
FastAPI Depends로 라우트에 주입합니다.

의존성 체계:
    1. get_config(): 환경 변수 기반 ServerConfig
    2. get_redis_client(): 프로세스당 하나의 연결 풀 공유 클라이언트
    3. get_presence_tracker(): 경량 트래커 (user:*, online_users)
    4. get_session_tracker(): 로스터용 트래커 (session:user:*, session:online_users)
    5. get_user_repository() / get_session_service(): 로스터 기반 세션 관리
    6. get_account_repository() / get_token_session_service(): 토큰 세션
    7. get_key_value_service(): 원시 키-값 관리

테스트에서는 app.dependency_overrides로 각 함수를 교체합니다.
"""

from datetime import timedelta
from typing import Annotated, Optional

import redis.asyncio as redis
from fastapi import Depends

from .config import ServerConfig
from .keyvalue import KeyValueService
from .presence import PresenceTracker
from .repositories import (
    InMemoryAccountRepository,
    RedisUserRepository,
    UserRepository,
)
from .sessions import SessionService, TokenSessionService, UserDataLoader

SESSION_KEY_PREFIX = "session:user"
SESSION_MEMBERSHIP_KEY = "session:online_users"

# 싱글톤 인스턴스 저장소
_config: Optional[ServerConfig] = None
_redis_client: Optional[redis.Redis] = None
_presence_tracker: Optional[PresenceTracker] = None
_session_tracker: Optional[PresenceTracker] = None
_user_repository: Optional[UserRepository] = None
_session_service: Optional[SessionService] = None
_account_repository: Optional[InMemoryAccountRepository] = None
_token_session_service: Optional[TokenSessionService] = None
_key_value_service: Optional[KeyValueService] = None


def get_config() -> ServerConfig:
    global _config
    if _config is None:
        _config = ServerConfig.from_env()
    return _config


def get_redis_client() -> redis.Redis:
    """
    공유 Redis 클라이언트

    연결은 첫 명령 실행 시점에 맺어지며, 소켓 타임아웃은 설정값을 따릅니다.
    """
    global _redis_client
    if _redis_client is None:
        redis_config = get_config().redis_config
        _redis_client = redis.from_url(
            redis_config.redis_url,
            decode_responses=True,
            socket_timeout=redis_config.socket_timeout,
            socket_connect_timeout=redis_config.socket_connect_timeout,
            max_connections=redis_config.max_connections,
        )
    return _redis_client


def get_presence_tracker() -> PresenceTracker:
    global _presence_tracker
    if _presence_tracker is None:
        _presence_tracker = PresenceTracker(
            get_redis_client(),
            online_ttl=get_config().presence_config.online_ttl_seconds,
        )
    return _presence_tracker


def get_session_tracker() -> PresenceTracker:
    """로스터 기반 세션용 트래커 (별도 키 공간과 TTL)"""
    global _session_tracker
    if _session_tracker is None:
        _session_tracker = PresenceTracker(
            get_redis_client(),
            online_ttl=get_config().presence_config.session_user_ttl_seconds,
            key_prefix=SESSION_KEY_PREFIX,
            membership_key=SESSION_MEMBERSHIP_KEY,
        )
    return _session_tracker


def get_user_repository() -> UserRepository:
    global _user_repository
    if _user_repository is None:
        _user_repository = RedisUserRepository(get_redis_client())
    return _user_repository


def get_session_service() -> SessionService:
    global _session_service
    if _session_service is None:
        _session_service = SessionService(get_user_repository(), get_session_tracker())
    return _session_service


def get_user_data_loader() -> UserDataLoader:
    return UserDataLoader(get_user_repository(), get_session_tracker())


def get_account_repository() -> InMemoryAccountRepository:
    global _account_repository
    if _account_repository is None:
        _account_repository = InMemoryAccountRepository()
    return _account_repository


def get_token_session_service() -> TokenSessionService:
    global _token_session_service
    if _token_session_service is None:
        _token_session_service = TokenSessionService(
            get_redis_client(),
            get_account_repository(),
            session_ttl=timedelta(
                minutes=get_config().presence_config.token_session_ttl_minutes
            ),
        )
    return _token_session_service


def get_key_value_service() -> KeyValueService:
    global _key_value_service
    if _key_value_service is None:
        _key_value_service = KeyValueService(get_redis_client())
    return _key_value_service


async def close_redis_client() -> None:
    """공유 클라이언트 종료 및 싱글톤 초기화"""
    global _redis_client, _presence_tracker, _session_tracker
    global _user_repository, _session_service, _token_session_service
    global _key_value_service

    if _redis_client is not None:
        await _redis_client.aclose()

    _redis_client = None
    _presence_tracker = None
    _session_tracker = None
    _user_repository = None
    _session_service = None
    _token_session_service = None
    _key_value_service = None


RedisDep = Annotated[redis.Redis, Depends(get_redis_client)]
PresenceTrackerDep = Annotated[PresenceTracker, Depends(get_presence_tracker)]
SessionServiceDep = Annotated[SessionService, Depends(get_session_service)]
TokenSessionServiceDep = Annotated[
    TokenSessionService, Depends(get_token_session_service)
]
KeyValueServiceDep = Annotated[KeyValueService, Depends(get_key_value_service)]
