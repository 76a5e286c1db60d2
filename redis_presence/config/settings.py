"""
서버 설정 클래스

프레즌스 서비스의 모든 설정을 관리합니다.
각 관심사별 dataclass가 환경 변수에서 스스로를 로드하며,
ServerConfig가 이를 하나로 묶습니다.

주요 기능:
    - Redis 연결 설정 (URL, 타임아웃, 풀 크기)
    - 온라인 마커 TTL과 세션 TTL
    - 로깅 레벨과 출력 형식
    - 시작 시 사용자 시드 여부
"""

import os
from dataclasses import dataclass, field
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class RedisConfig:
    """
    Redis 연결 설정

    클라이언트의 소켓 타임아웃이 유일한 타임아웃입니다.
    서비스 계층은 별도의 타임아웃이나 재시도를 두지 않습니다.
    """

    redis_url: str = "redis://localhost:6379/0"
    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0
    max_connections: int = 50

    @classmethod
    def from_env(cls) -> "RedisConfig":
        """환경 변수에서 Redis 설정 로드"""
        return cls(
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            socket_timeout=float(os.getenv("REDIS_SOCKET_TIMEOUT", "5")),
            socket_connect_timeout=float(
                os.getenv("REDIS_SOCKET_CONNECT_TIMEOUT", "5")
            ),
            max_connections=int(os.getenv("REDIS_MAX_CONNECTIONS", "50")),
        )


@dataclass
class PresenceConfig:
    """
    프레즌스/세션 TTL 설정

    ONLINE_TTL은 프로토콜 상수가 아닌 설정값입니다.
    """

    online_ttl_seconds: int = 30  # 경량 트래커 (/api/session)
    session_user_ttl_seconds: int = 300  # 로스터 기반 세션 (/api/sessions)
    token_session_ttl_minutes: int = 30  # 토큰 세션 (/api/token-sessions)

    def __post_init__(self) -> None:
        for name in (
            "online_ttl_seconds",
            "session_user_ttl_seconds",
            "token_session_ttl_minutes",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    @classmethod
    def from_env(cls) -> "PresenceConfig":
        """환경 변수에서 TTL 설정 로드"""
        return cls(
            online_ttl_seconds=int(os.getenv("PRESENCE_ONLINE_TTL", "30")),
            session_user_ttl_seconds=int(os.getenv("SESSION_USER_TTL", "300")),
            token_session_ttl_minutes=int(
                os.getenv("TOKEN_SESSION_TTL_MINUTES", "30")
            ),
        )


@dataclass
class LoggingConfig:
    """
    로깅 설정

    구조화된 로깅(structlog) 출력 형식을 제어합니다.
    """

    log_level: str = "INFO"
    json_logs: bool = False

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """환경 변수에서 로깅 설정 로드"""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            json_logs=_env_bool("LOG_JSON", "false"),
        )


@dataclass
class ServerConfig:
    """
    통합 서버 설정

    사용 예시:
        config = ServerConfig.from_env()
        config.presence_config.online_ttl_seconds  # 30
    """

    name: str = "redis-presence"
    host: str = "0.0.0.0"
    port: int = 8080
    seed_users_file: Optional[str] = None
    seed_users_on_startup: bool = True

    redis_config: RedisConfig = field(default_factory=RedisConfig)
    presence_config: PresenceConfig = field(default_factory=PresenceConfig)
    logging_config: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        환경 변수 기반 설정 생성

        Returns:
            설정된 ServerConfig 인스턴스
        """
        config = cls(
            name=os.getenv("SERVER_NAME", "redis-presence"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8080")),
            seed_users_file=os.getenv("SEED_USERS_FILE") or None,
            seed_users_on_startup=_env_bool("SEED_USERS_ON_STARTUP", "true"),
            redis_config=RedisConfig.from_env(),
            presence_config=PresenceConfig.from_env(),
            logging_config=LoggingConfig.from_env(),
        )

        logger.debug(
            "Server config loaded",
            name=config.name,
            port=config.port,
            online_ttl=config.presence_config.online_ttl_seconds,
        )
        return config
