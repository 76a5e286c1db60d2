"""
데이터 저장소 모듈

    - UserRepository: 로스터 사용자 저장소 인터페이스
    - RedisUserRepository / InMemoryUserRepository: 구현체
    - InMemoryAccountRepository: 토큰 세션 로그인용 계정 저장소
"""

from .account_repository import InMemoryAccountRepository, hash_password
from .user_repository import (
    InMemoryUserRepository,
    RedisUserRepository,
    UserRepository,
)

__all__ = [
    "UserRepository",
    "RedisUserRepository",
    "InMemoryUserRepository",
    "InMemoryAccountRepository",
    "hash_password",
]
