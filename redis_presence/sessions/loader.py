"""
로스터 시드 로더

JSON 배열 형태의 사용자 목록을 읽어 로스터를 초기화합니다.
is_online이 true인 사용자는 트래커로 로그인시켜 마커가 실제로 존재하도록 하고,
나머지 사용자는 로그아웃시켜 이전 실행의 마커가 남지 않도록 합니다.

파일 형식 (users.json):
    [
        {"user_id": "user001", "username": "alice", "email": "alice@example.com",
         "role": "admin", "last_login": "2024-01-30T09:00:00Z", "is_online": true},
        ...
    ]
"""

from pathlib import Path
from typing import Optional, Union

import structlog
from pydantic import TypeAdapter

from ..models import User
from ..presence import PresenceTracker
from ..repositories import UserRepository

logger = structlog.get_logger(__name__)

DEFAULT_USERS_FILE = Path(__file__).resolve().parent.parent / "data" / "users.json"

_users_adapter = TypeAdapter(list[User])


class UserDataLoader:
    """시드 파일에서 로스터와 온라인 상태를 복원"""

    def __init__(self, user_repository: UserRepository, tracker: PresenceTracker):
        self.users = user_repository
        self.tracker = tracker

    async def load(self, path: Optional[Union[str, Path]] = None) -> int:
        """
        시드 파일 로드

        기존 로스터와 멤버십 Set을 비운 뒤 파일의 사용자를 저장합니다.

        Args:
            path: JSON 파일 경로 (기본값: 패키지 내장 users.json)

        Returns:
            저장된 사용자 수 (파일이 없으면 0)
        """
        seed_path = Path(path) if path else DEFAULT_USERS_FILE
        if not seed_path.is_file():
            logger.warning("Seed file not found, skipping", path=str(seed_path))
            return 0

        users = _users_adapter.validate_json(seed_path.read_bytes())

        await self.tracker.clear_membership()
        await self.users.delete_all()
        saved = await self.users.save_all(users)

        online = 0
        for user in users:
            if user.is_online:
                await self.tracker.login(user.user_id)
                online += 1
            else:
                # 이전 실행에서 남은 마커 제거
                await self.tracker.logout(user.user_id)

        logger.info(
            "Seed users loaded",
            path=str(seed_path),
            total=saved,
            online=online,
            offline=saved - online,
        )
        return saved
