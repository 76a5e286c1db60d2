"""
설정 관리 모듈

프레즌스 서비스의 모든 설정을 중앙에서 관리합니다.

주요 구성요소:
    - ServerConfig: 메인 서버 설정 클래스
    - RedisConfig / PresenceConfig / LoggingConfig: 관심사별 설정
"""

from .settings import LoggingConfig, PresenceConfig, RedisConfig, ServerConfig

__all__ = [
    "ServerConfig",
    "RedisConfig",
    "PresenceConfig",
    "LoggingConfig",
]
