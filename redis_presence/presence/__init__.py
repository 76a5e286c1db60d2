"""
프레즌스 추적 모듈

PresenceTracker: TTL 마커 + 멤버십 Set 기반 온라인 상태 추적
"""

from .tracker import ONLINE_USERS_SET, PresenceTracker

__all__ = ["PresenceTracker", "ONLINE_USERS_SET"]
