"""
세션 관리 모듈

    - SessionService: 로스터 + TTL 트래커 기반 세션 관리
    - TokenSessionService: 자격 증명 로그인 기반 토큰 세션
    - UserDataLoader: JSON 시드 로더
"""

from .loader import UserDataLoader
from .service import SessionService
from .token_sessions import TokenSessionService

__all__ = ["SessionService", "TokenSessionService", "UserDataLoader"]
