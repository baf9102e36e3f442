from dataclasses import dataclass, field
from typing import Protocol, Optional, Dict, Any, List


@dataclass
class IdentityUserDto:
    id: str
    email: str
    phone: str
    user_metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SessionTokens:
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "bearer"


class IdentityProvider(Protocol):
    def find_user_by_email(self, email: str) -> Optional[IdentityUserDto]:
        ...

    def list_users(self, page: int = 1, per_page: int = 50) -> List[IdentityUserDto]:
        ...

    def create_user(self, email: str, phone: str, user_metadata: Dict[str, Any]) -> IdentityUserDto:
        ...

    def issue_session(self, user_id: str) -> SessionTokens:
        ...
