import copy
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List

import pytest

from app.application.ports.otp_repo import OTPRepository, OTPRecordDto
from app.application.ports.account_repo import AccountRepository, ProfileDto
from app.application.ports.identity_provider import IdentityProvider, IdentityUserDto, SessionTokens
from app.application.ports.sms_gateway import SMSGateway, SMSDeliveryError
from app.application.services.otp_issuer import OTPIssuer
from app.application.services.otp_verifier import OTPVerifier
from app.application.services.account_service import AccountService
from app.infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter

PHONE = "+15551234567"


class FrozenClock:
    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeOTPRepo(OTPRepository):
    def __init__(self):
        self.records: Dict[str, OTPRecordDto] = {}

    def get(self, phone_number: str) -> Optional[OTPRecordDto]:
        rec = self.records.get(phone_number)
        return replace(rec) if rec else None

    def upsert(self, record: OTPRecordDto) -> None:
        self.records[record.phone_number] = replace(record)

    def _matching(self, phone_number: str, issue_id: str, expected_attempts: int) -> Optional[OTPRecordDto]:
        rec = self.records.get(phone_number)
        if rec and rec.issue_id == issue_id and not rec.verified and rec.attempts == expected_attempts:
            return rec
        return None

    def record_failed_attempt(self, phone_number: str, issue_id: str, expected_attempts: int) -> bool:
        rec = self._matching(phone_number, issue_id, expected_attempts)
        if rec is None:
            return False
        rec.attempts += 1
        return True

    def mark_verified(self, phone_number: str, issue_id: str, expected_attempts: int, now: datetime) -> bool:
        rec = self._matching(phone_number, issue_id, expected_attempts)
        if rec is None or rec.expires_at < now:
            return False
        rec.verified = True
        rec.updated_at = now
        return True

    def discard(self, phone_number: str, issue_id: str) -> bool:
        rec = self.records.get(phone_number)
        if rec and rec.issue_id == issue_id:
            del self.records[phone_number]
            return True
        return False

    def delete_stale(self, cutoff: datetime) -> int:
        stale = [
            phone for phone, rec in self.records.items()
            if rec.expires_at < cutoff or (rec.verified and rec.updated_at and rec.updated_at < cutoff)
        ]
        for phone in stale:
            del self.records[phone]
        return len(stale)

    def snapshot(self):
        return copy.deepcopy(self.records)

    def restore(self, state) -> None:
        self.records = copy.deepcopy(state)


class FakeAccountRepo(AccountRepository):
    def __init__(self):
        self.profiles: Dict[str, ProfileDto] = {}
        self.drivers: Dict[str, Dict[str, Any]] = {}
        self.customers: Dict[str, Dict[str, Any]] = {}
        self.fail_on_create = False

    def get_by_phone(self, phone: str) -> Optional[ProfileDto]:
        for profile in self.profiles.values():
            if profile.phone == phone:
                return profile
        return None

    def create_account(self, user_id: str, phone: str, full_name: str, role: str) -> ProfileDto:
        if self.fail_on_create:
            raise RuntimeError("profiles table unavailable")
        profile = ProfileDto(id=user_id, phone=phone, full_name=full_name, role=role)
        self.profiles[user_id] = profile
        if role == "driver":
            self.drivers.setdefault(user_id, {"is_approved": False, "is_online": False, "rating": 0.0, "total_rides": 0})
        else:
            self.customers.setdefault(user_id, {"preferred_payment_method": "cash", "rating": 0.0, "total_rides": 0})
        return profile

    def snapshot(self):
        return copy.deepcopy((self.profiles, self.drivers, self.customers))

    def restore(self, state) -> None:
        self.profiles, self.drivers, self.customers = copy.deepcopy(state)


class FakeIdentity(IdentityProvider):
    def __init__(self):
        self.users: Dict[str, IdentityUserDto] = {}
        self.sessions: List[str] = []

    def find_user_by_email(self, email: str) -> Optional[IdentityUserDto]:
        for user in self.users.values():
            if user.email == email:
                return user
        return None

    def list_users(self, page: int = 1, per_page: int = 50) -> List[IdentityUserDto]:
        users = list(self.users.values())
        return users[(page - 1) * per_page: page * per_page]

    def create_user(self, email: str, phone: str, user_metadata: Dict[str, Any]) -> IdentityUserDto:
        user = IdentityUserDto(id=f"user-{len(self.users) + 1}", email=email, phone=phone, user_metadata=dict(user_metadata))
        self.users[user.id] = user
        return user

    def issue_session(self, user_id: str) -> SessionTokens:
        self.sessions.append(user_id)
        n = len(self.sessions)
        return SessionTokens(access_token=f"access-{n}", refresh_token=f"refresh-{n}", expires_in=3600)

    def snapshot(self):
        return copy.deepcopy((self.users, self.sessions))

    def restore(self, state) -> None:
        self.users, self.sessions = copy.deepcopy(state)


class FakeUnitOfWork:
    """Commits checkpoint every store; rollback returns them to the last checkpoint."""

    def __init__(self, *stores):
        self.stores = stores
        self.commits = 0
        self.rollbacks = 0
        self._checkpoint = [s.snapshot() for s in stores]

    def commit(self) -> None:
        self.commits += 1
        self._checkpoint = [s.snapshot() for s in self.stores]

    def rollback(self) -> None:
        self.rollbacks += 1
        for store, state in zip(self.stores, self._checkpoint):
            store.restore(state)


class FakeSMS(SMSGateway):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send(self, to: str, body: str) -> str:
        if self.fail:
            raise SMSDeliveryError("gateway down")
        self.sent.append((to, body))
        return f"SM{len(self.sent)}"


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def otp_repo():
    return FakeOTPRepo()


@pytest.fixture
def account_repo():
    return FakeAccountRepo()


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
def uow(otp_repo, account_repo, identity):
    return FakeUnitOfWork(otp_repo, account_repo, identity)


@pytest.fixture
def sms():
    return FakeSMS()


@pytest.fixture
def issuer(otp_repo, sms, uow, clock):
    return OTPIssuer(
        otp_repo=otp_repo,
        sms_gateway=sms,
        uow=uow,
        rate_limiter=InMemoryRateLimiter(),
        code_generator=lambda length: "123456",
        clock=clock,
    )


@pytest.fixture
def accounts(account_repo, identity):
    return AccountService(account_repo=account_repo, identity=identity)


@pytest.fixture
def verifier(otp_repo, accounts, uow, clock):
    return OTPVerifier(otp_repo=otp_repo, accounts=accounts, uow=uow, clock=clock)
