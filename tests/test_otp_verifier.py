import pytest

from app.application.services.otp_verifier import OTPVerifier
from app.exceptions import ValidationError, NotFoundError, StateError, MismatchError, DependencyError
from conftest import PHONE, FakeOTPRepo, FakeUnitOfWork


def test_wrong_then_right_then_reused(issuer, verifier, otp_repo, account_repo):
    issuer.issue(PHONE)

    with pytest.raises(MismatchError) as exc:
        verifier.verify(PHONE, "111111")
    assert exc.value.attempts_remaining == 4
    assert exc.value.status_code == 400
    assert otp_repo.get(PHONE).attempts == 1

    account = verifier.verify(PHONE, "123456")
    assert account.is_new_user is True
    assert account.role == "customer"
    assert account.email == f"{PHONE}@albocarride.com"
    assert account.session.access_token
    assert account_repo.profiles[account.user_id].role == "customer"
    assert account.user_id in account_repo.customers
    assert otp_repo.get(PHONE).verified is True

    with pytest.raises(StateError) as exc:
        verifier.verify(PHONE, "123456")
    assert exc.value.reason == StateError.ALREADY_USED


def test_unknown_phone_is_not_found(verifier):
    with pytest.raises(NotFoundError) as exc:
        verifier.verify(PHONE, "123456")
    assert exc.value.status_code == 404


@pytest.mark.parametrize("phone,otp", [(None, "123456"), (PHONE, None), ("", ""), (PHONE, "  ")])
def test_missing_fields_rejected(verifier, phone, otp):
    with pytest.raises(ValidationError):
        verifier.verify(phone, otp)


def test_unknown_role_rejected_before_any_write(issuer, verifier, otp_repo):
    issuer.issue(PHONE)
    with pytest.raises(ValidationError):
        verifier.verify(PHONE, "111111", role="admin")
    assert otp_repo.get(PHONE).attempts == 0


def test_expired_code_rejected_even_if_correct(issuer, verifier, clock):
    issuer.issue(PHONE)
    clock.advance(minutes=10, seconds=1)

    with pytest.raises(StateError) as exc:
        verifier.verify(PHONE, "123456")
    assert exc.value.reason == StateError.EXPIRED


def test_code_still_valid_at_exact_expiry(issuer, verifier, clock):
    issuer.issue(PHONE)
    clock.advance(minutes=10)
    assert verifier.verify(PHONE, "123456").is_new_user is True


def test_attempts_remaining_counts_down_to_lockout(issuer, verifier, otp_repo):
    issuer.issue(PHONE)

    remaining = []
    for _ in range(5):
        with pytest.raises(MismatchError) as exc:
            verifier.verify(PHONE, "000000")
        remaining.append(exc.value.attempts_remaining)
    assert remaining == [4, 3, 2, 1, 0]
    assert otp_repo.get(PHONE).attempts == 5

    with pytest.raises(StateError) as exc:
        verifier.verify(PHONE, "123456")
    assert exc.value.reason == StateError.MAX_ATTEMPTS_EXCEEDED
    assert otp_repo.get(PHONE).attempts == 5


def test_reissue_lifts_lockout(issuer, verifier):
    issuer.issue(PHONE)
    for _ in range(5):
        with pytest.raises(MismatchError):
            verifier.verify(PHONE, "000000")

    issuer.issue(PHONE)
    assert verifier.verify(PHONE, "123456").user_id


def test_state_checks_run_in_order(issuer, verifier, otp_repo, clock):
    issuer.issue(PHONE)
    rec = otp_repo.records[PHONE]
    rec.verified = True
    rec.attempts = 5
    clock.advance(hours=1)

    with pytest.raises(StateError) as exc:
        verifier.verify(PHONE, "123456")
    assert exc.value.reason == StateError.ALREADY_USED

    rec.verified = False
    with pytest.raises(StateError) as exc:
        verifier.verify(PHONE, "123456")
    assert exc.value.reason == StateError.EXPIRED


def test_driver_role_creates_driver_record(issuer, verifier, account_repo):
    issuer.issue(PHONE)
    account = verifier.verify(PHONE, "123456", full_name="Dana Driver", role="driver")

    assert account.role == "driver"
    assert account_repo.drivers[account.user_id] == {
        "is_approved": False, "is_online": False, "rating": 0.0, "total_rides": 0,
    }
    assert account.user_id not in account_repo.customers
    assert account_repo.profiles[account.user_id].full_name == "Dana Driver"


def test_returning_user_gets_new_session_without_duplicate_account(issuer, verifier, account_repo, identity):
    issuer.issue(PHONE)
    first = verifier.verify(PHONE, "123456", role="driver")

    issuer.issue(PHONE)
    second = verifier.verify(PHONE, "123456", role="customer")

    assert second.is_new_user is False
    assert second.user_id == first.user_id
    assert second.role == "driver"
    assert second.session.access_token != first.session.access_token
    assert len(account_repo.profiles) == 1
    assert len(identity.users) == 1


def test_provisioning_failure_leaves_code_unused_and_retryable(issuer, verifier, otp_repo, account_repo, identity):
    issuer.issue(PHONE)
    account_repo.fail_on_create = True

    with pytest.raises(DependencyError) as exc:
        verifier.verify(PHONE, "123456")
    assert exc.value.message == "Failed to create user account"
    assert otp_repo.get(PHONE).verified is False
    assert identity.users == {}

    account_repo.fail_on_create = False
    account = verifier.verify(PHONE, "123456")
    assert account.is_new_user is True
    assert otp_repo.get(PHONE).verified is True


class ReissueDuringAttemptRepo(FakeOTPRepo):
    """Simulates a new issuance landing between the read and the conditional write."""

    def record_failed_attempt(self, phone_number, issue_id, expected_attempts):
        self.records[phone_number].issue_id = "reissued"
        self.records[phone_number].otp_code = "999999"
        return super().record_failed_attempt(phone_number, issue_id, expected_attempts)

    def mark_verified(self, phone_number, issue_id, expected_attempts, now):
        self.records[phone_number].issue_id = "reissued"
        return super().mark_verified(phone_number, issue_id, expected_attempts, now)


@pytest.mark.parametrize("submitted", ["111111", "123456"])
def test_reissue_during_verification_supersedes_request(issuer, accounts, clock, submitted):
    repo = ReissueDuringAttemptRepo()
    issuer.otp_repo = repo
    issuer.uow = FakeUnitOfWork(repo)
    issuer.issue(PHONE)
    verifier = OTPVerifier(otp_repo=repo, accounts=accounts, uow=FakeUnitOfWork(), clock=clock)

    with pytest.raises(StateError) as exc:
        verifier.verify(PHONE, submitted)
    assert exc.value.reason == StateError.SUPERSEDED
    assert exc.value.status_code == 409
    assert repo.get(PHONE).attempts == 0


class ConcurrentAttemptRepo(FakeOTPRepo):
    """Another request records a failed attempt just before ours, once."""

    def __init__(self):
        super().__init__()
        self.raced = False

    def record_failed_attempt(self, phone_number, issue_id, expected_attempts):
        if not self.raced:
            self.raced = True
            self.records[phone_number].attempts += 1
        return super().record_failed_attempt(phone_number, issue_id, expected_attempts)


def test_lost_attempt_race_is_reevaluated(issuer, accounts, clock):
    repo = ConcurrentAttemptRepo()
    issuer.otp_repo = repo
    issuer.uow = FakeUnitOfWork(repo)
    issuer.issue(PHONE)
    repo.records[PHONE].attempts = 3
    verifier = OTPVerifier(otp_repo=repo, accounts=accounts, uow=FakeUnitOfWork(), clock=clock)

    with pytest.raises(MismatchError) as exc:
        verifier.verify(PHONE, "111111")

    # Both failures counted; the limit is never overshot
    assert exc.value.attempts_remaining == 0
    assert repo.get(PHONE).attempts == 5


@pytest.mark.parametrize("submitted", ["１２３４５６", "12345é"])
def test_non_ascii_code_is_a_counted_mismatch(issuer, verifier, otp_repo, submitted):
    issuer.issue(PHONE)

    with pytest.raises(MismatchError) as exc:
        verifier.verify(PHONE, submitted)
    assert exc.value.attempts_remaining == 4
    assert otp_repo.get(PHONE).attempts == 1


@pytest.mark.parametrize("submitted", [" 123456", "123456\n", " 123456\n"])
def test_code_must_match_exactly(issuer, verifier, otp_repo, submitted):
    issuer.issue(PHONE)

    with pytest.raises(MismatchError):
        verifier.verify(PHONE, submitted)
    assert otp_repo.get(PHONE).verified is False


class RecordingAudit:
    def __init__(self):
        self.actions = []

    def log(self, action, phone, user_id=None, request_id=None, success=True, details=None):
        self.actions.append(action)


class CommitFailsUnitOfWork(FakeUnitOfWork):
    def commit(self) -> None:
        raise RuntimeError("database went away")


def test_account_created_audited_after_commit(issuer, otp_repo, accounts, uow, clock):
    audit = RecordingAudit()
    issuer.issue(PHONE)
    verifier = OTPVerifier(otp_repo=otp_repo, accounts=accounts, uow=uow, audit=audit, clock=clock)

    verifier.verify(PHONE, "123456")

    assert audit.actions == ["account_created", "otp_verified"]


def test_failed_commit_writes_no_account_created_audit(issuer, otp_repo, account_repo, identity, accounts, clock):
    audit = RecordingAudit()
    issuer.issue(PHONE)
    uow = CommitFailsUnitOfWork(otp_repo, account_repo, identity)
    verifier = OTPVerifier(otp_repo=otp_repo, accounts=accounts, uow=uow, audit=audit, clock=clock)

    with pytest.raises(DependencyError):
        verifier.verify(PHONE, "123456")

    assert "account_created" not in audit.actions
    assert "otp_verified" not in audit.actions
    assert otp_repo.get(PHONE).verified is False
    assert account_repo.profiles == {}
