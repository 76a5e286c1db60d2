"""
토큰 세션 로그인용 계정 저장소

자격 증명 검증만 담당하는 메모리 기반 저장소입니다.
비밀번호는 passlib CryptContext로 해시하여 보관합니다.

기본 계정 (개발/테스트용):
    - admin / admin123 (ADMIN, USER)
    - john_doe / password123 (USER)
    - jane_smith / password456 (USER, MANAGER)
    - disabled_user / password789 (USER, 비활성)
"""

from typing import Iterable, Optional

import structlog
from passlib.context import CryptContext

from ..models import Account

logger = structlog.get_logger(__name__)

# pbkdf2_sha256: 추가 네이티브 의존성 없이 passlib만으로 동작
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


DEMO_ACCOUNTS = (
    (1, "admin", "admin123", "admin@example.com", ["ADMIN", "USER"], True),
    (2, "john_doe", "password123", "john@example.com", ["USER"], True),
    (3, "jane_smith", "password456", "jane@example.com", ["USER", "MANAGER"], True),
    (4, "disabled_user", "password789", "disabled@example.com", ["USER"], False),
)


class InMemoryAccountRepository:
    """
    메모리 기반 계정 저장소

    데이터 구조:
        - _accounts: {id -> Account}
        - _by_username: {username -> id} 보조 인덱스
    """

    def __init__(self, accounts: Optional[Iterable[Account]] = None) -> None:
        self._accounts: dict[int, Account] = {}
        self._by_username: dict[str, int] = {}

        if accounts is None:
            accounts = [
                Account(
                    id=account_id,
                    username=username,
                    hashed_password=hash_password(password),
                    email=email,
                    roles=roles,
                    active=active,
                )
                for account_id, username, password, email, roles, active in DEMO_ACCOUNTS
            ]

        for account in accounts:
            self.add(account)

    def add(self, account: Account) -> None:
        self._accounts[account.id] = account
        self._by_username[account.username] = account.id

    def find_by_username(self, username: str) -> Optional[Account]:
        account_id = self._by_username.get(username)
        return self._accounts.get(account_id) if account_id is not None else None

    def find_by_id(self, account_id: int) -> Optional[Account]:
        return self._accounts.get(account_id)

    def validate_credentials(self, username: str, password: str) -> bool:
        """
        자격 증명 검증

        비활성 계정은 비밀번호가 맞아도 거부합니다.
        """
        account = self.find_by_username(username)
        if account is None or not account.active:
            return False

        if not pwd_context.verify(password, account.hashed_password):
            logger.info("Credential check failed", username=username)
            return False

        return True
