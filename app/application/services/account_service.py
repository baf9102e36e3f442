import logging
from dataclasses import dataclass
from typing import Optional

from ..ports.account_repo import AccountRepository
from ..ports.identity_provider import IdentityProvider, SessionTokens
from ...utils import mask_phone

logger = logging.getLogger(__name__)

DEFAULT_EMAIL_DOMAIN = "albocarride.com"


@dataclass
class ResolvedAccount:
    user_id: str
    role: str
    email: str
    is_new_user: bool
    session: SessionTokens


@dataclass
class AccountService:
    account_repo: AccountRepository
    identity: IdentityProvider
    email_domain: str = DEFAULT_EMAIL_DOMAIN

    def account_email(self, phone: str) -> str:
        return f"{phone}@{self.email_domain}"

    def resolve(self, phone: str, full_name: Optional[str], role: str) -> ResolvedAccount:
        """Sign in the owner of ``phone``, creating their account on first use.

        Every step is get-or-create keyed by the phone number, so repeating the
        call after a failure part-way through converges on one account.
        """
        email = self.account_email(phone)
        profile = self.account_repo.get_by_phone(phone)
        if profile:
            session = self.identity.issue_session(profile.id)
            logger.info(f"Returning user {profile.id} signed in via OTP")
            return ResolvedAccount(user_id=profile.id, role=profile.role, email=email, is_new_user=False, session=session)

        user = self.identity.find_user_by_email(email)
        if user is None:
            user = self.identity.create_user(
                email=email,
                phone=phone,
                user_metadata={"phone": phone, "full_name": full_name or "", "role": role},
            )
        else:
            logger.info(f"Reusing identity user {user.id} for {mask_phone(phone)}")

        self.account_repo.create_account(user.id, phone, full_name or "", role)
        session = self.identity.issue_session(user.id)
        logger.info(f"Created {role} account {user.id} for {mask_phone(phone)}")
        return ResolvedAccount(user_id=user.id, role=role, email=email, is_new_user=True, session=session)
