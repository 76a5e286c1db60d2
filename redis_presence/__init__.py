"""
Redis 기반 사용자 프레즌스/세션 추적 서비스

주요 구성요소:
    - presence.PresenceTracker: TTL 마커 기반 온라인 상태 추적
    - sessions.SessionService: 사용자 로스터와 결합한 세션 관리
    - sessions.TokenSessionService: 자격 증명 로그인 기반 토큰 세션
    - server.app: FastAPI HTTP 서버
"""

__version__ = "1.0.0"
