"""
프레즌스/세션 관련 모델 정의

이 모듈은 로스터 사용자, 토큰 세션, HTTP 응답 본문에 쓰이는
Pydantic 모델들을 정의합니다.

주요 모델:
    - User: 로스터에 저장되는 사용자 레코드
    - Account: 토큰 세션 로그인용 계정
    - UserSession: Redis에 TTL과 함께 저장되는 토큰 세션
    - SessionResponse / SessionStatsResponse: 세션 작업 응답
    - PresenceStatusResponse: 온라인 여부 + 마지막 활동 시각

응답 모델은 camelCase 별칭으로 직렬화됩니다 (userId, ttlSeconds 등).
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """camelCase 별칭으로 직렬화되는 모델의 기반 클래스"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserRole(str, Enum):
    """로스터 사용자 역할"""

    ADMIN = "admin"
    MODERATOR = "moderator"
    USER = "user"


class User(CamelModel):
    """
    로스터 사용자 모델

    is_online은 TTL 마커에서 파생된 캐시 값일 뿐이며 권위 있는 값이 아닙니다.
    조회 시점마다 마커 기준으로 덮어씌워집니다.

    Attributes:
        user_id (str): 사용자 고유 식별자
        username (str): 표시용 사용자명 (공백 불가)
        email (EmailStr): 이메일 주소
        role (UserRole): admin / moderator / user
        last_login (datetime): 마지막 로그인 시각
        is_online (Optional[bool]): 온라인 여부 투영값
    """

    user_id: str
    username: str
    email: EmailStr
    role: UserRole = UserRole.USER
    last_login: datetime
    is_online: Optional[bool] = None

    @field_validator("user_id", "username")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class Account(BaseModel):
    """
    토큰 세션 로그인용 계정

    비밀번호는 passlib 해시로만 보관합니다.
    """

    id: int
    username: str
    hashed_password: str
    email: EmailStr
    roles: list[str] = Field(default_factory=lambda: ["USER"])
    active: bool = True


class UserSession(BaseModel):
    """
    Redis에 JSON으로 저장되는 토큰 세션

    키: session:{session_id}, TTL은 expires_at까지 남은 시간
    """

    session_id: str
    user_id: int
    username: str
    roles: list[str] = Field(default_factory=list)
    created_at: datetime
    expires_at: datetime
    client_ip: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class SessionResponse(CamelModel):
    """
    세션 작업 응답

    username과 ttl_seconds는 해당되는 작업에서만 채워지며,
    None인 필드는 응답에서 생략됩니다.
    """

    message: str
    user_id: Optional[str] = None
    username: Optional[str] = None
    status: Optional[str] = None
    ttl_seconds: Optional[int] = None


class SessionStatsResponse(CamelModel):
    """세션 통계 (전체/온라인/오프라인/온라인 비율)"""

    total_users: int
    online_users: int
    offline_users: int
    online_percentage: float

    @classmethod
    def of(cls, total: int, online: int) -> "SessionStatsResponse":
        """
        전체/온라인 수로부터 통계 생성

        offline은 0 미만으로 내려가지 않고,
        비율은 소수점 둘째 자리에서 반올림합니다 (total == 0이면 0).
        """
        offline = max(0, total - online)
        percentage = online / total * 100 if total > 0 else 0.0
        return cls(
            total_users=total,
            online_users=online,
            offline_users=offline,
            online_percentage=round(percentage, 2),
        )


class PresenceStatusResponse(CamelModel):
    """사용자의 온라인 여부와 마지막 활동 시각"""

    user_id: str
    online: bool
    last_active_at: Optional[datetime] = None
    ttl_seconds: Optional[int] = None


class LoginRequest(BaseModel):
    """토큰 세션 로그인 요청"""

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class LoginResponse(CamelModel):
    session_id: str
    user_id: int
    username: str
    roles: list[str]
    expires_at: datetime
    message: str = "Login successful"


class SessionDetailsResponse(CamelModel):
    session_id: str
    user_id: int
    username: str
    roles: list[str]
    created_at: datetime
    expires_at: datetime
    client_ip: Optional[str] = None

    @classmethod
    def from_session(cls, session: UserSession) -> "SessionDetailsResponse":
        return cls(**session.model_dump())


class ActiveSessionsResponse(CamelModel):
    sessions: list[str]
    count: int


class UserSessionsResponse(CamelModel):
    user_id: int
    sessions: list[str]
    count: int


class ExtendSessionResponse(CamelModel):
    message: str
    session_id: str
    extended_minutes: int


class TerminateAllResponse(CamelModel):
    message: str
    user_id: int
    terminated_count: int


class ValidateSessionResponse(CamelModel):
    valid: bool
    user_id: Optional[int] = None
    username: Optional[str] = None
    roles: list[str] = Field(default_factory=list)
    error: Optional[str] = None


class MessageResponse(CamelModel):
    message: str
    data: dict = Field(default_factory=dict)


class KeyValueResponse(CamelModel):
    key: str
    value: str
    ttl_seconds: Optional[int] = None


class KeyListResponse(CamelModel):
    keys: list[str]
    count: int
