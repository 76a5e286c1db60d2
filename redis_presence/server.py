"""
Redis 프레즌스/세션 HTTP 서버

FastAPI 기반으로 세 가지 세션 관리 방식을 HTTP로 노출합니다.

엔드포인트 구성:
    /api/session/*          경량 프레즌스 트래커 (TTL 마커 + 멤버십 Set)
    /api/users, /api/sessions/*
                            로스터 기반 세션 관리 (사용자 레코드 + 트래커)
    /api/token-sessions/*   자격 증명 로그인 기반 토큰 세션
    /api/redis/*            원시 키-값 조회/저장/삭제/만료 (운영용)
    /health                 Redis 연결 확인

에러 응답:
    모든 에러는 {"message": ..., "error": {"code", "message", "data"}} 형식이며
    ErrorHandler가 예외 종류에 따라 상태 코드를 결정합니다.
        - NotFoundError: 404
        - InvalidArgumentError / 요청 검증 실패: 400
        - UnauthorizedError: 401
        - Redis 연결/시간 초과: 503
"""

from contextlib import asynccontextmanager
from typing import Optional

import redis.asyncio as redis
import structlog
from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .dependencies import (
    KeyValueServiceDep,
    PresenceTrackerDep,
    RedisDep,
    SessionServiceDep,
    TokenSessionServiceDep,
    close_redis_client,
    get_config,
    get_redis_client,
    get_user_data_loader,
)
from .exceptions import (
    ErrorHandler,
    InvalidArgumentError,
    NotFoundError,
    PresenceError,
    UnauthorizedError,
    require_user_id,
)
from .middleware import LoggingMiddleware, configure_logging
from .models import (
    ActiveSessionsResponse,
    ExtendSessionResponse,
    KeyListResponse,
    KeyValueResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PresenceStatusResponse,
    SessionDetailsResponse,
    SessionResponse,
    SessionStatsResponse,
    TerminateAllResponse,
    User,
    UserSessionsResponse,
    ValidateSessionResponse,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    애플리케이션 수명주기 관리

    시작 시 작업:
        - 로깅 설정
        - Redis 클라이언트 생성
        - 로스터 시드 로딩 (SEED_USERS_ON_STARTUP)

    종료 시 작업:
        - Redis 연결 풀 종료
    """
    config = get_config()
    configure_logging(config.logging_config)
    logger.info("Presence server starting", name=config.name, port=config.port)

    get_redis_client()

    if config.seed_users_on_startup:
        try:
            await get_user_data_loader().load(config.seed_users_file)
        except redis.RedisError as e:
            logger.error("Seed loading failed", error=str(e))

    yield

    await close_redis_client()
    logger.info("Presence server stopped")


app = FastAPI(
    title="Redis Presence Server",
    description="TTL 기반 사용자 프레즌스와 세션 관리 API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(LoggingMiddleware())


def client_ip(request: Request) -> Optional[str]:
    """
    요청자 IP 추출

    X-Forwarded-For의 첫 번째 주소, X-Real-IP, 소켓 peer 주소 순으로 사용합니다.
    """
    forwarded = request.headers.get("X-Forwarded-For", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first

    real_ip = request.headers.get("X-Real-IP", "").strip()
    if real_ip:
        return real_ip

    return request.client.host if request.client else None


# === 에러 핸들러 ===


def _error_response(request: Request, exc: Exception) -> JSONResponse:
    status_code, body = ErrorHandler.handle_error(exc)
    context = ErrorHandler.create_error_context(
        exc, method=request.method, path=request.url.path
    )

    if status_code >= 500:
        logger.error("Request failed", status_code=status_code, **context)
    else:
        logger.info("Request rejected", status_code=status_code, **context)

    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(PresenceError)
async def presence_error_handler(request: Request, exc: PresenceError):
    return _error_response(request, exc)


@app.exception_handler(redis.RedisError)
async def redis_error_handler(request: Request, exc: redis.RedisError):
    """Redis 오류 핸들러 (연결/시간 초과는 503, 그 외 500)"""
    return _error_response(request, exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """요청 검증 실패는 400으로 응답"""
    errors = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg")}
        for err in exc.errors()
    ]
    error = InvalidArgumentError("Request validation failed", data={"errors": errors})
    return _error_response(request, error)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error("Unexpected error", path=request.url.path, error=str(exc), exc_info=True)
    status_code, body = ErrorHandler.handle_error(exc)
    return JSONResponse(status_code=status_code, content=body)


# === 헬스체크 ===


@app.get("/health")
async def health_check(redis_client: RedisDep):
    """
    서비스 상태 확인

    Redis PING이 실패하면 에러 핸들러를 통해 503을 돌려줍니다.
    """
    await redis_client.ping()
    return {
        "status": "healthy",
        "service": get_config().name,
        "version": __version__,
        "redis": "connected",
    }


# === 경량 프레즌스 (/api/session) ===


@app.post(
    "/api/session/login/{user_id}",
    response_model=SessionResponse,
    response_model_exclude_none=True,
)
async def presence_login(user_id: str, tracker: PresenceTrackerDep):
    user_id = require_user_id(user_id)
    ttl = await tracker.login(user_id)
    return SessionResponse(
        message=f"User {user_id} is now ONLINE",
        user_id=user_id,
        status="online",
        ttl_seconds=ttl,
    )


@app.post(
    "/api/session/logout/{user_id}",
    response_model=SessionResponse,
    response_model_exclude_none=True,
)
async def presence_logout(user_id: str, tracker: PresenceTrackerDep):
    user_id = require_user_id(user_id)
    await tracker.logout(user_id)
    return SessionResponse(
        message=f"User {user_id} is now OFFLINE",
        user_id=user_id,
        status="offline",
    )


@app.post(
    "/api/session/refresh/{user_id}",
    response_model=SessionResponse,
    response_model_exclude_none=True,
)
async def presence_refresh(user_id: str, tracker: PresenceTrackerDep):
    """활성 마커가 없으면 404"""
    user_id = require_user_id(user_id)
    ttl = await tracker.refresh(user_id)
    return SessionResponse(
        message=f"User {user_id} TTL refreshed",
        user_id=user_id,
        status="refreshed",
        ttl_seconds=ttl,
    )


@app.get(
    "/api/session/status/{user_id}",
    response_model=PresenceStatusResponse,
    response_model_exclude_none=True,
)
async def presence_status(user_id: str, tracker: PresenceTrackerDep):
    user_id = require_user_id(user_id)
    online = await tracker.is_online(user_id)
    return PresenceStatusResponse(
        user_id=user_id,
        online=online,
        last_active_at=await tracker.get_last_active_time(user_id),
        ttl_seconds=await tracker.get_remaining_ttl(user_id) if online else None,
    )


@app.get("/api/session/online", response_model=list[str])
async def presence_online_users(tracker: PresenceTrackerDep):
    return sorted(await tracker.get_online_users())


# === 로스터 기반 세션 (/api/users, /api/sessions) ===


@app.get("/api/users", response_model=list[User], response_model_exclude_none=True)
async def list_users(service: SessionServiceDep):
    return await service.get_all_users()


@app.get(
    "/api/sessions/online",
    response_model=list[User],
    response_model_exclude_none=True,
)
async def list_online_users(service: SessionServiceDep):
    return await service.get_online_users()


@app.get(
    "/api/sessions/offline",
    response_model=list[User],
    response_model_exclude_none=True,
)
async def list_offline_users(service: SessionServiceDep):
    return await service.get_offline_users()


@app.get("/api/sessions/stats", response_model=SessionStatsResponse)
async def session_stats(service: SessionServiceDep):
    return await service.get_session_stats()


@app.post(
    "/api/sessions/{user_id}/online",
    response_model=SessionResponse,
    response_model_exclude_none=True,
)
async def set_user_online(user_id: str, service: SessionServiceDep):
    return await service.set_user_online(user_id)


@app.post(
    "/api/sessions/{user_id}/offline",
    response_model=SessionResponse,
    response_model_exclude_none=True,
)
async def set_user_offline(user_id: str, service: SessionServiceDep):
    return await service.set_user_offline(user_id)


@app.post(
    "/api/sessions/{user_id}/refresh-ttl",
    response_model=SessionResponse,
    response_model_exclude_none=True,
)
async def refresh_user_ttl(user_id: str, service: SessionServiceDep):
    return await service.refresh_user_ttl(user_id)


@app.delete(
    "/api/users/{user_id}",
    response_model=SessionResponse,
    response_model_exclude_none=True,
)
async def remove_user(user_id: str, service: SessionServiceDep):
    return await service.remove_user(user_id)


# === 토큰 세션 (/api/token-sessions) ===


@app.post(
    "/api/token-sessions/login",
    response_model=LoginResponse,
    response_model_exclude_none=True,
)
async def token_login(
    login_request: LoginRequest,
    request: Request,
    service: TokenSessionServiceDep,
):
    """자격 증명 검증 후 세션 발급, 실패 시 401"""
    session = await service.create_session(
        login_request.username, login_request.password, client_ip(request)
    )
    if session is None:
        raise UnauthorizedError("Invalid credentials or inactive user")

    return LoginResponse(
        session_id=session.session_id,
        user_id=session.user_id,
        username=session.username,
        roles=session.roles,
        expires_at=session.expires_at,
    )


# /{session_id}보다 먼저 등록되어야 함
@app.get("/api/token-sessions/active", response_model=ActiveSessionsResponse)
async def token_active_sessions(service: TokenSessionServiceDep):
    sessions = await service.get_all_active_sessions()
    return ActiveSessionsResponse(sessions=sessions, count=len(sessions))


@app.get("/api/token-sessions/user/{user_id}", response_model=UserSessionsResponse)
async def token_user_sessions(user_id: int, service: TokenSessionServiceDep):
    sessions = await service.get_user_active_sessions(user_id)
    return UserSessionsResponse(user_id=user_id, sessions=sessions, count=len(sessions))


@app.delete(
    "/api/token-sessions/user/{user_id}/terminate-all",
    response_model=TerminateAllResponse,
)
async def token_terminate_all(user_id: int, service: TokenSessionServiceDep):
    count = await service.terminate_all_user_sessions(user_id)
    return TerminateAllResponse(
        message="User sessions terminated", user_id=user_id, terminated_count=count
    )


@app.post(
    "/api/token-sessions/validate",
    response_model=ValidateSessionResponse,
    response_model_exclude_none=True,
)
async def token_validate(
    service: TokenSessionServiceDep,
    session_id: str = Query(..., min_length=1),
):
    """유효하지 않거나 만료된 세션이면 401"""
    session = await service.validate_session(session_id)
    return ValidateSessionResponse(
        valid=True,
        user_id=session.user_id,
        username=session.username,
        roles=session.roles,
    )


@app.get(
    "/api/token-sessions/{session_id}",
    response_model=SessionDetailsResponse,
    response_model_exclude_none=True,
)
async def token_get_session(session_id: str, service: TokenSessionServiceDep):
    session = await service.get_session(session_id)
    if session is None:
        raise NotFoundError(
            "Session not found or expired",
            resource_type="session",
            resource_id=session_id,
        )
    return SessionDetailsResponse.from_session(session)


@app.delete("/api/token-sessions/{session_id}/logout", response_model=MessageResponse)
async def token_logout(session_id: str, service: TokenSessionServiceDep):
    if not await service.delete_session(session_id):
        raise NotFoundError(
            "Session not found", resource_type="session", resource_id=session_id
        )
    return MessageResponse(message="Logout successful", data={"sessionId": session_id})


@app.put("/api/token-sessions/{session_id}/extend", response_model=ExtendSessionResponse)
async def token_extend(
    session_id: str,
    service: TokenSessionServiceDep,
    minutes: int = Query(30),
):
    """minutes가 0 이하이면 400, 세션이 없거나 만료되었으면 404"""
    if not await service.extend_session(session_id, minutes):
        raise NotFoundError(
            "Session not found or expired",
            resource_type="session",
            resource_id=session_id,
        )
    return ExtendSessionResponse(
        message="Session extended successfully",
        session_id=session_id,
        extended_minutes=minutes,
    )


# === 원시 키-값 (/api/redis) ===


@app.post("/api/redis/set", response_model=MessageResponse)
async def kv_set(
    service: KeyValueServiceDep,
    key: str = Query(...),
    value: str = Query(...),
):
    """빈 키/값이나 길이 초과는 400"""
    await service.set(key, value)
    return MessageResponse(message=f"Key set successfully: {key}", data={"key": key})


@app.get(
    "/api/redis/get/{key}",
    response_model=KeyValueResponse,
    response_model_exclude_none=True,
)
async def kv_get(key: str, service: KeyValueServiceDep):
    value = await service.get(key)
    if value is None:
        raise NotFoundError(f"Key not found: {key}", resource_type="key", resource_id=key)
    return KeyValueResponse(key=key, value=value, ttl_seconds=await service.get_ttl(key))


@app.delete("/api/redis/del/{key}", response_model=MessageResponse)
async def kv_delete(key: str, service: KeyValueServiceDep):
    if not await service.delete(key):
        raise NotFoundError(f"Key not found: {key}", resource_type="key", resource_id=key)
    return MessageResponse(message=f"Key deleted: {key}", data={"key": key})


@app.get("/api/redis/keys", response_model=KeyListResponse)
async def kv_keys(service: KeyValueServiceDep, pattern: str = Query("*")):
    keys = await service.keys(pattern)
    return KeyListResponse(keys=keys, count=len(keys))


@app.post("/api/redis/expire/{key}", response_model=MessageResponse)
async def kv_expire(key: str, service: KeyValueServiceDep, seconds: int = Query(...)):
    """seconds가 1 ~ 31536000 범위를 벗어나면 400, 키가 없으면 404"""
    if not await service.expire(key, seconds):
        raise NotFoundError(f"Key not found: {key}", resource_type="key", resource_id=key)
    return MessageResponse(
        message=f"TTL set for key: {key} ({seconds}s)",
        data={"key": key, "ttlSeconds": seconds},
    )
