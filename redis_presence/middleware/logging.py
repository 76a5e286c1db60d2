"""
구조화된 로깅 설정과 HTTP 요청 로깅 미들웨어

주요 기능:
    로깅 설정:
        - structlog + 표준 logging 연동 (레벨 필터, 로거 이름, ISO 타임스탬프)
        - 개발 환경: 사람이 읽기 쉬운 콘솔 출력
        - 운영 환경 (LOG_JSON=true): JSON 한 줄 출력

    요청 로깅:
        - 요청마다 고유 request_id 생성 (X-Request-ID 응답 헤더)
        - 처리 시간 측정 (밀리초)
        - 느린 요청 경고 (1초 이상)

사용 예시:
    ```python
    configure_logging(LoggingConfig(log_level="DEBUG"))
    app.middleware("http")(LoggingMiddleware())
    ```
"""

import logging
import sys
import time
import uuid
from typing import Awaitable, Callable

import structlog
from fastapi import Request, Response

from ..config import LoggingConfig

logger = structlog.get_logger(__name__)

SLOW_REQUEST_THRESHOLD_MS = 1000


def configure_logging(config: LoggingConfig) -> None:
    """
    structlog 전역 설정

    애플리케이션 시작 시 한 번 호출합니다.
    """
    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer = (
        structlog.processors.JSONRenderer()
        if config.json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


class LoggingMiddleware:
    """
    HTTP 요청/응답 로깅 미들웨어

    요청 시작과 완료를 같은 request_id로 묶어 기록합니다.
    처리 중 발생한 예외는 기록 후 그대로 다시 발생시킵니다.
    """

    def __init__(self, slow_request_threshold_ms: float = SLOW_REQUEST_THRESHOLD_MS):
        self.slow_request_threshold_ms = slow_request_threshold_ms

    async def __call__(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start_time = time.perf_counter()
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        log_context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }
        logger.debug("Request received", **log_context)

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.exception(
                "Unhandled exception while processing request",
                **log_context,
                duration_ms=round(duration_ms, 2),
                error=str(e),
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Request-ID"] = request_id

        log_level = "warning" if response.status_code >= 500 else "info"
        getattr(logger, log_level)(
            "Request completed",
            **log_context,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        if duration_ms > self.slow_request_threshold_ms:
            logger.warning(
                "Slow request detected",
                **log_context,
                duration_ms=round(duration_ms, 2),
                threshold_ms=self.slow_request_threshold_ms,
            )

        return response
