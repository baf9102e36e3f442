from dataclasses import dataclass
from typing import Protocol, Optional


@dataclass
class ProfileDto:
    id: str
    phone: str
    full_name: str
    role: str


class AccountRepository(Protocol):
    def get_by_phone(self, phone: str) -> Optional[ProfileDto]:
        ...

    def create_account(self, user_id: str, phone: str, full_name: str, role: str) -> ProfileDto:
        """Create the profile and its role record; safe to call again for the same user."""
        ...
