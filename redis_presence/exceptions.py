"""
사용자 정의 예외 및 에러 처리 모듈

이 모듈은 프레즌스/세션 서비스의 모든 에러와 예외를 정의합니다.
HTTP 프런트엔드는 ErrorHandler를 통해 예외를 상태 코드와 응답 본문으로 변환합니다.

주요 구성요소:
    - ErrorCode: 에러 코드 열거형
    - PresenceError: 모든 서비스 예외의 기본 클래스
    - 구체적인 예외 클래스들: 미존재, 잘못된 인자, 인증 실패, 저장소 장애
    - ErrorHandler: 중앙 집중식 에러 처리기

전파 정책:
    - 서비스 계층은 재시도나 폴백 없이 예외를 그대로 호출자에게 전달
    - Redis 연결 장애는 StoreUnavailableError(503)로 매핑
"""

from typing import Any, Dict, Optional, Tuple
from enum import Enum

import redis.exceptions


class ErrorCode(Enum):
    """
    서비스 에러 코드 열거형

    각 코드는 HTTP 상태 코드와 1:1로 대응합니다.
    """

    INVALID_ARGUMENT = "invalid_argument"  # 잘못된 입력값
    UNAUTHORIZED = "unauthorized"  # 세션/자격 증명 검증 실패
    NOT_FOUND = "not_found"  # 사용자 또는 세션 없음
    INTERNAL_ERROR = "internal_error"  # 내부 서버 에러
    STORE_UNAVAILABLE = "store_unavailable"  # Redis 연결 불가/시간 초과


# 에러 코드 -> HTTP 상태 코드
HTTP_STATUS_BY_CODE: Dict[ErrorCode, int] = {
    ErrorCode.INVALID_ARGUMENT: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.STORE_UNAVAILABLE: 503,
}


class PresenceError(Exception):
    """
    모든 서비스 에러의 기본 예외 클래스

    Attributes:
        message (str): 에러 메시지
        code (ErrorCode): 에러 코드
        data (dict): 추가 에러 정보 (선택사항)
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        data: Optional[Dict[str, Any]] = None,
    ):
        """
        Args:
            message: 사용자에게 표시될 에러 메시지
            code: 에러 코드 (기본값: INTERNAL_ERROR)
            data: 디버깅에 유용한 추가 정보 (선택사항)
        """
        self.message = message
        self.code = code
        self.data = data or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_CODE[self.code]

    def to_dict(self) -> Dict[str, Any]:
        """
        에러를 응답 본문용 딕셔너리로 변환

        data 필드는 값이 있을 때만 포함됩니다.
        """
        error_dict = {"code": self.code.value, "message": self.message}
        if self.data:
            error_dict["data"] = self.data
        return error_dict


class NotFoundError(PresenceError):
    """
    리소스를 찾을 수 없음 에러

    로스터에 없는 사용자, 활성 마커가 없는 세션 등
    계약상 존재해야 하는 대상이 없을 때 발생합니다.
    """

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        """
        Args:
            message: 에러 메시지
            resource_type: 리소스 타입 (예: "user", "session")
            resource_id: 리소스 식별자
            data: 추가 정보
        """
        if data is None:
            data = {}
        if resource_type:
            data["resource_type"] = resource_type
        if resource_id:
            data["resource_id"] = resource_id

        super().__init__(message=message, code=ErrorCode.NOT_FOUND, data=data)


class InvalidArgumentError(PresenceError):
    """
    입력값 검증 실패 에러

    빈 사용자 ID, 0 이하의 연장 시간 등 범위를 벗어난 매개변수에 사용됩니다.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        if data is None:
            data = {}
        if field:
            data["field"] = field
        if value is not None:
            # 긴 값은 100자로 잘라서 로그에 과도한 데이터 방지
            data["value"] = str(value)[:100]

        super().__init__(message=message, code=ErrorCode.INVALID_ARGUMENT, data=data)


class UnauthorizedError(PresenceError):
    """자격 증명이 틀렸거나 세션이 만료/무효일 때 발생합니다."""

    def __init__(
        self,
        message: str = "Invalid or expired session",
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=ErrorCode.UNAUTHORIZED, data=data)


class StoreUnavailableError(PresenceError):
    """
    저장소 이용 불가 에러

    Redis에 연결할 수 없거나 응답 시간이 초과된 경우입니다.
    트래커는 재시도하지 않으며, 503 HTTP 상태 코드로 노출됩니다.
    """

    def __init__(
        self,
        message: str = "Key-value store unavailable",
        operation: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        if data is None:
            data = {}
        if operation:
            data["operation"] = operation

        super().__init__(message=message, code=ErrorCode.STORE_UNAVAILABLE, data=data)


def require_user_id(user_id: Optional[str], field: str = "user_id") -> str:
    """빈 식별자를 거부하고 앞뒤 공백을 제거한 값을 돌려줍니다."""
    if user_id is None or not str(user_id).strip():
        raise InvalidArgumentError(f"{field} must not be blank", field=field)
    return str(user_id).strip()


class ErrorHandler:
    """
    중앙 집중식 에러 처리기

    모든 예외를 (HTTP 상태 코드, 응답 본문) 쌍으로 변환하고
    로깅용 에러 컨텍스트를 생성하는 유틸리티 클래스입니다.
    """

    @staticmethod
    def handle_error(error: Exception) -> Tuple[int, Dict[str, Any]]:
        """
        예외를 HTTP 응답으로 변환

        Returns:
            (status_code, body) 튜플
                - body.message: 사람이 읽을 수 있는 메시지
                - body.error: 에러 객체 (code, message, data)
        """
        if isinstance(error, PresenceError):
            mapped = error
        elif isinstance(
            error, (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError)
        ):
            # 연결/시간 초과는 저장소 장애로 취급
            mapped = StoreUnavailableError(
                data={"exception_type": type(error).__name__}
            )
        else:
            # 예상치 못한 예외는 내부 에러로 처리
            # 보안을 위해 상세 정보는 data 필드에만 포함
            mapped = PresenceError(
                message="An unexpected error occurred",
                code=ErrorCode.INTERNAL_ERROR,
                data={"exception_type": type(error).__name__},
            )

        body = {"message": mapped.message, "error": mapped.to_dict()}
        return mapped.status_code, body

    @staticmethod
    def create_error_context(
        error: Exception,
        method: Optional[str] = None,
        path: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        로깅을 위한 에러 컨텍스트 생성

        Args:
            error: 발생한 예외
            method: HTTP 메서드
            path: 요청 경로
            user_id: 에러를 발생시킨 사용자 ID

        Returns:
            Dict[str, Any]: 구조화된 로깅에 넘길 키/값
        """
        context = {
            "error_type": type(error).__name__,
            "error_message": str(error),
        }

        if method:
            context["method"] = method
        if path:
            context["path"] = path
        if user_id:
            context["user_id"] = user_id

        if isinstance(error, PresenceError):
            context["error_code"] = error.code.value
            context["error_data"] = error.data

        return context
