"""
미들웨어 모듈

    - configure_logging: structlog 전역 설정
    - LoggingMiddleware: HTTP 요청 로깅
"""

from .logging import LoggingMiddleware, configure_logging

__all__ = ["LoggingMiddleware", "configure_logging"]
