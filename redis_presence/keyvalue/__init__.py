"""
키-값 관리 모듈

KeyValueService: Redis 문자열 키에 대한 단순 조회/저장/삭제/만료 설정
"""

from .service import (
    MAX_KEY_LENGTH,
    MAX_TTL_SECONDS,
    MAX_VALUE_LENGTH,
    KeyValueService,
)

__all__ = ["KeyValueService", "MAX_KEY_LENGTH", "MAX_VALUE_LENGTH", "MAX_TTL_SECONDS"]
