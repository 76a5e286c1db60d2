"""프레즌스 HTTP 서버 통합 테스트"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
import redis.exceptions
from fastapi.testclient import TestClient

from redis_presence.dependencies import (
    get_key_value_service,
    get_presence_tracker,
    get_redis_client,
    get_session_service,
    get_token_session_service,
)
from redis_presence.exceptions import NotFoundError, UnauthorizedError
from redis_presence.keyvalue import KeyValueService
from redis_presence.models import UserSession
from redis_presence.presence import PresenceTracker
from redis_presence.repositories import InMemoryAccountRepository, InMemoryUserRepository
from redis_presence.server import app
from redis_presence.sessions import SessionService, TokenSessionService

pytestmark = pytest.mark.integration


@pytest.fixture
def tracker():
    mock = AsyncMock(spec=PresenceTracker)
    mock.login.return_value = 30
    mock.refresh.return_value = 30
    mock.get_online_users.return_value = set()
    mock.get_last_active_time.return_value = None
    mock.get_remaining_ttl.return_value = None
    return mock


@pytest.fixture
def session_tracker():
    mock = AsyncMock(spec=PresenceTracker)
    mock.login.return_value = 300
    mock.refresh.return_value = 300
    mock.get_online_users.return_value = set()
    return mock


@pytest.fixture
def session_service(sample_users, session_tracker, clock):
    return SessionService(InMemoryUserRepository(sample_users), session_tracker, clock=clock)


@pytest.fixture
def token_service():
    return AsyncMock(spec=TokenSessionService)


@pytest.fixture
def client(mock_redis, tracker, session_service, token_service):
    """테스트 클라이언트 (lifespan 없이 의존성만 교체)"""
    app.dependency_overrides[get_redis_client] = lambda: mock_redis
    app.dependency_overrides[get_presence_tracker] = lambda: tracker
    app.dependency_overrides[get_session_service] = lambda: session_service
    app.dependency_overrides[get_token_session_service] = lambda: token_service
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:
    """헬스체크 테스트"""

    def test_health_check(self, client, mock_redis):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["redis"] == "connected"
        assert "X-Request-ID" in response.headers

    def test_health_check_store_down(self, client, mock_redis):
        mock_redis.ping.side_effect = redis.exceptions.ConnectionError("refused")

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "store_unavailable"


class TestPresenceRoutes:
    """경량 프레즌스 엔드포인트 테스트"""

    def test_login(self, client, tracker):
        response = client.post("/api/session/login/u1")

        assert response.status_code == 200
        assert response.json() == {
            "message": "User u1 is now ONLINE",
            "userId": "u1",
            "status": "online",
            "ttlSeconds": 30,
        }
        tracker.login.assert_awaited_once_with("u1")

    def test_logout_omits_ttl(self, client, tracker):
        response = client.post("/api/session/logout/u1")

        assert response.status_code == 200
        assert response.json()["status"] == "offline"
        assert "ttlSeconds" not in response.json()

    def test_refresh(self, client):
        response = client.post("/api/session/refresh/u1")

        assert response.status_code == 200
        assert response.json()["status"] == "refreshed"
        assert response.json()["ttlSeconds"] == 30

    def test_refresh_without_session_is_404(self, client, tracker):
        tracker.refresh.side_effect = NotFoundError(
            "No active session for user: u1", resource_type="session", resource_id="u1"
        )

        response = client.post("/api/session/refresh/u1")

        assert response.status_code == 404
        body = response.json()
        assert body["message"] == "No active session for user: u1"
        assert body["error"]["code"] == "not_found"
        assert body["error"]["data"]["resource_id"] == "u1"

    def test_blank_user_id_is_400(self, client, tracker):
        response = client.post("/api/session/login/%20%20")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_argument"
        tracker.login.assert_not_called()

    def test_status_online(self, client, tracker, clock):
        tracker.is_online.return_value = True
        tracker.get_last_active_time.return_value = clock.now
        tracker.get_remaining_ttl.return_value = 17

        response = client.get("/api/session/status/u1")

        body = response.json()
        assert body["online"] is True
        assert body["ttlSeconds"] == 17
        assert body["lastActiveAt"].startswith("2024-01-30T09:00:00")

    def test_status_never_seen(self, client, tracker):
        tracker.is_online.return_value = False

        response = client.get("/api/session/status/ghost")

        assert response.json() == {"userId": "ghost", "online": False}

    def test_online_users_sorted(self, client, tracker):
        tracker.get_online_users.return_value = {"u3", "u1", "u2"}

        response = client.get("/api/session/online")

        assert response.json() == ["u1", "u2", "u3"]

    def test_store_timeout_is_503(self, client, tracker):
        tracker.login.side_effect = redis.exceptions.TimeoutError("timed out")

        response = client.post("/api/session/login/u1")

        assert response.status_code == 503


class TestRosterRoutes:
    """로스터 기반 세션 엔드포인트 테스트"""

    def test_list_users(self, client, session_tracker):
        session_tracker.get_online_users.return_value = {"user002"}

        response = client.get("/api/users")

        users = response.json()
        assert [u["userId"] for u in users] == ["user001", "user002", "user003"]
        assert [u["isOnline"] for u in users] == [False, True, False]

    def test_online_and_offline_lists(self, client, session_tracker):
        session_tracker.get_online_users.return_value = {"user001"}

        online = client.get("/api/sessions/online").json()
        offline = client.get("/api/sessions/offline").json()

        assert [u["userId"] for u in online] == ["user001"]
        assert [u["userId"] for u in offline] == ["user002", "user003"]

    def test_stats(self, client, session_tracker):
        session_tracker.get_online_users.return_value = {"user001", "user002"}

        response = client.get("/api/sessions/stats")

        assert response.json() == {
            "totalUsers": 3,
            "onlineUsers": 2,
            "offlineUsers": 1,
            "onlinePercentage": 66.67,
        }

    def test_set_online(self, client):
        response = client.post("/api/sessions/user001/online")

        assert response.status_code == 200
        assert response.json() == {
            "message": "User set to online successfully",
            "userId": "user001",
            "username": "alice",
            "status": "online",
            "ttlSeconds": 300,
        }

    def test_set_offline(self, client):
        response = client.post("/api/sessions/user001/offline")

        assert response.json()["status"] == "offline"
        assert "ttlSeconds" not in response.json()

    def test_refresh_ttl(self, client):
        response = client.post("/api/sessions/user002/refresh-ttl")

        assert response.json()["status"] == "refreshed"

    def test_unknown_user_is_404(self, client):
        response = client.post("/api/sessions/nobody/online")

        assert response.status_code == 404
        assert response.json()["message"] == "User not found: nobody"

    def test_remove_user(self, client):
        response = client.delete("/api/users/user003")

        assert response.status_code == 200
        assert response.json()["status"] == "removed"
        assert client.delete("/api/users/user003").status_code == 404


class TestTokenSessionRoutes:
    """토큰 세션 엔드포인트 테스트"""

    @pytest.fixture
    def session(self, clock):
        return UserSession(
            session_id="sess_abc",
            user_id=2,
            username="john_doe",
            roles=["USER"],
            created_at=clock.now,
            expires_at=clock.now + timedelta(minutes=30),
            client_ip="203.0.113.7",
        )

    def test_login_uses_forwarded_ip(self, client, token_service, session):
        token_service.create_session.return_value = session

        response = client.post(
            "/api/token-sessions/login",
            json={"username": "john_doe", "password": "password123"},
            headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["sessionId"] == "sess_abc"
        assert body["userId"] == 2
        assert body["message"] == "Login successful"
        token_service.create_session.assert_awaited_once_with(
            "john_doe", "password123", "203.0.113.7"
        )

    def test_login_uses_real_ip_header(self, client, token_service, session):
        token_service.create_session.return_value = session

        client.post(
            "/api/token-sessions/login",
            json={"username": "john_doe", "password": "password123"},
            headers={"X-Real-IP": "198.51.100.4"},
        )

        assert token_service.create_session.await_args.args[2] == "198.51.100.4"

    def test_login_falls_back_to_peer_address(self, client, token_service, session):
        token_service.create_session.return_value = session

        client.post(
            "/api/token-sessions/login",
            json={"username": "john_doe", "password": "password123"},
        )

        assert token_service.create_session.await_args.args[2] == "testclient"

    def test_login_rejected_is_401(self, client, token_service):
        token_service.create_session.return_value = None

        response = client.post(
            "/api/token-sessions/login",
            json={"username": "john_doe", "password": "wrong"},
        )

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid credentials or inactive user"

    def test_login_missing_fields_is_400(self, client, token_service):
        response = client.post("/api/token-sessions/login", json={"username": "x"})

        assert response.status_code == 400
        token_service.create_session.assert_not_called()

    def test_get_session(self, client, token_service, session):
        token_service.get_session.return_value = session

        response = client.get("/api/token-sessions/sess_abc")

        body = response.json()
        assert body["sessionId"] == "sess_abc"
        assert body["clientIp"] == "203.0.113.7"

    def test_get_missing_session_is_404(self, client, token_service):
        token_service.get_session.return_value = None

        response = client.get("/api/token-sessions/sess_missing")

        assert response.status_code == 404
        assert response.json()["message"] == "Session not found or expired"

    def test_logout(self, client, token_service):
        token_service.delete_session.return_value = True

        response = client.delete("/api/token-sessions/sess_abc/logout")

        assert response.json() == {
            "message": "Logout successful",
            "data": {"sessionId": "sess_abc"},
        }

    def test_logout_missing_is_404(self, client, token_service):
        token_service.delete_session.return_value = False

        assert client.delete("/api/token-sessions/sess_x/logout").status_code == 404

    def test_active_sessions(self, client, token_service):
        token_service.get_all_active_sessions.return_value = ["sess_a", "sess_b"]

        response = client.get("/api/token-sessions/active")

        assert response.json() == {"sessions": ["sess_a", "sess_b"], "count": 2}
        token_service.get_session.assert_not_called()

    def test_user_sessions(self, client, token_service):
        token_service.get_user_active_sessions.return_value = ["sess_a"]

        response = client.get("/api/token-sessions/user/2")

        assert response.json() == {"userId": 2, "sessions": ["sess_a"], "count": 1}
        token_service.get_user_active_sessions.assert_awaited_once_with(2)

    def test_user_sessions_non_numeric_id_is_400(self, client):
        assert client.get("/api/token-sessions/user/abc").status_code == 400

    def test_extend_default_minutes(self, client, token_service):
        token_service.extend_session.return_value = True

        response = client.put("/api/token-sessions/sess_abc/extend")

        assert response.json()["extendedMinutes"] == 30
        token_service.extend_session.assert_awaited_once_with("sess_abc", 30)

    def test_extend_expired_is_404(self, client, token_service):
        token_service.extend_session.return_value = False

        response = client.put("/api/token-sessions/sess_abc/extend?minutes=10")

        assert response.status_code == 404

    def test_terminate_all(self, client, token_service):
        token_service.terminate_all_user_sessions.return_value = 3

        response = client.delete("/api/token-sessions/user/2/terminate-all")

        assert response.json() == {
            "message": "User sessions terminated",
            "userId": 2,
            "terminatedCount": 3,
        }

    def test_validate(self, client, token_service, session):
        token_service.validate_session.return_value = session

        response = client.post("/api/token-sessions/validate?session_id=sess_abc")

        assert response.json() == {
            "valid": True,
            "userId": 2,
            "username": "john_doe",
            "roles": ["USER"],
        }

    def test_validate_invalid_is_401(self, client, token_service):
        token_service.validate_session.side_effect = UnauthorizedError()

        response = client.post("/api/token-sessions/validate?session_id=sess_x")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "unauthorized"


class TestTokenSessionFlow:
    """실제 TokenSessionService + 모의 Redis로 확장 검증 경로 확인"""

    @pytest.fixture
    def client(self, mock_redis, clock):
        service = TokenSessionService(mock_redis, InMemoryAccountRepository(), clock=clock)
        app.dependency_overrides[get_token_session_service] = lambda: service
        yield TestClient(app)
        app.dependency_overrides.clear()

    @pytest.mark.parametrize("minutes", [0, -1])
    def test_extend_non_positive_minutes_is_400(self, client, mock_redis, minutes):
        response = client.put(f"/api/token-sessions/sess_abc/extend?minutes={minutes}")

        assert response.status_code == 400
        assert response.json()["error"]["data"]["field"] == "minutes"
        mock_redis.get.assert_not_called()

    def test_inactive_account_is_401(self, client):
        response = client.post(
            "/api/token-sessions/login",
            json={"username": "disabled_user", "password": "password789"},
        )

        assert response.status_code == 401


class TestTokenSessionKeyIsolation:
    """토큰 세션 경로가 같은 session: 접두사의 로스터 마커를 건드리지 않는지 확인"""

    @pytest.fixture
    def client(self, fake_redis, clock):
        service = TokenSessionService(fake_redis, InMemoryAccountRepository(), clock=clock)
        app.dependency_overrides[get_token_session_service] = lambda: service
        yield TestClient(app)
        app.dependency_overrides.clear()

    @staticmethod
    async def login_roster_user(fake_redis, clock) -> str:
        roster_tracker = PresenceTracker(
            fake_redis,
            online_ttl=300,
            key_prefix="session:user",
            membership_key="session:online_users",
            clock=clock,
        )
        await roster_tracker.login("user001")
        return "session:user:user001:online"

    @pytest.mark.asyncio
    async def test_roster_marker_reads_as_missing_session(
        self, client, fake_redis, clock
    ):
        await self.login_roster_user(fake_redis, clock)

        response = client.get("/api/token-sessions/user:user001:online")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_roster_marker_cannot_be_extended_or_deleted(
        self, client, fake_redis, clock
    ):
        roster_marker = await self.login_roster_user(fake_redis, clock)

        extend = client.put("/api/token-sessions/user:user001:online/extend?minutes=5")
        logout = client.delete("/api/token-sessions/user:user001:online/logout")

        assert extend.status_code == 404
        assert logout.status_code == 404
        assert await fake_redis.ttl(roster_marker) == 300

    def test_login_then_get_round_trip(self, client):
        login = client.post(
            "/api/token-sessions/login",
            json={"username": "john_doe", "password": "password123"},
        )
        session_id = login.json()["sessionId"]

        response = client.get(f"/api/token-sessions/{session_id}")

        assert response.status_code == 200
        assert response.json()["sessionId"] == session_id


class TestKeyValueRoutes:
    """원시 키-값 엔드포인트 테스트 (인메모리 저장소)"""

    @pytest.fixture
    def client(self, fake_redis):
        service = KeyValueService(fake_redis)
        app.dependency_overrides[get_key_value_service] = lambda: service
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_set_then_get(self, client):
        response = client.post("/api/redis/set", params={"key": "greeting", "value": "hi"})

        assert response.status_code == 200
        assert response.json()["message"] == "Key set successfully: greeting"

        response = client.get("/api/redis/get/greeting")

        assert response.status_code == 200
        assert response.json() == {"key": "greeting", "value": "hi"}

    def test_set_blank_value_is_400(self, client):
        response = client.post("/api/redis/set", params={"key": "greeting", "value": " "})

        assert response.status_code == 400
        assert response.json()["message"] == "Key and value cannot be empty"

    def test_set_oversized_key_is_400(self, client):
        response = client.post("/api/redis/set", params={"key": "k" * 1001, "value": "v"})

        assert response.status_code == 400
        assert response.json()["message"] == "Key or value too long"

    def test_set_missing_params_is_400(self, client):
        response = client.post("/api/redis/set", params={"key": "greeting"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_argument"

    def test_get_missing_is_404(self, client):
        response = client.get("/api/redis/get/ghost")

        assert response.status_code == 404
        assert response.json()["error"]["data"]["resource_type"] == "key"

    def test_delete(self, client):
        client.post("/api/redis/set", params={"key": "greeting", "value": "hi"})

        response = client.delete("/api/redis/del/greeting")

        assert response.status_code == 200
        assert response.json()["message"] == "Key deleted: greeting"
        assert client.delete("/api/redis/del/greeting").status_code == 404

    def test_keys(self, client):
        client.post("/api/redis/set", params={"key": "b", "value": "2"})
        client.post("/api/redis/set", params={"key": "a", "value": "1"})

        response = client.get("/api/redis/keys")

        assert response.status_code == 200
        assert response.json() == {"keys": ["a", "b"], "count": 2}

    def test_expire_sets_ttl(self, client, clock):
        client.post("/api/redis/set", params={"key": "greeting", "value": "hi"})

        response = client.post("/api/redis/expire/greeting", params={"seconds": 60})

        assert response.status_code == 200
        assert response.json()["message"] == "TTL set for key: greeting (60s)"
        assert client.get("/api/redis/get/greeting").json()["ttlSeconds"] == 60

        clock.advance(60)
        assert client.get("/api/redis/get/greeting").status_code == 404

    @pytest.mark.parametrize("seconds", [0, 31536001])
    def test_expire_out_of_range_is_400(self, client, seconds):
        client.post("/api/redis/set", params={"key": "greeting", "value": "hi"})

        response = client.post("/api/redis/expire/greeting", params={"seconds": seconds})

        assert response.status_code == 400
        assert response.json()["message"] == "TTL must be between 1 and 31536000 seconds"

    def test_expire_missing_key_is_404(self, client):
        response = client.post("/api/redis/expire/ghost", params={"seconds": 60})

        assert response.status_code == 404
