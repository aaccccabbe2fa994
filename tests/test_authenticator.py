"""
Tests for the password + one-time-code login pipeline.
"""

import pytest

from conftest import PASSWORD, FailingNotifier
from leaveguard.access import Role
from leaveguard.auth import Authenticator
from leaveguard.errors import (
    AccountLocked,
    AuthenticationFailure,
    IdentifierTaken,
    InvalidOrExpiredOtp,
    UserNotFound,
)


EMAIL = "alice@example.com"


def fail_times(authenticator, count):
    for _ in range(count):
        with pytest.raises(AuthenticationFailure):
            authenticator.authenticate(EMAIL, "wrong-password")


class TestAuthenticate:
    """Test the password step."""

    def test_success_sends_code(self, authenticator, notifier, alice, clock):
        pending = authenticator.authenticate(EMAIL, PASSWORD)

        assert pending.identifier == EMAIL
        assert (pending.expires_at - clock()).total_seconds() == 180
        code = notifier.last_code()
        assert notifier.sent[-1][0] == EMAIL
        assert authenticator.db.get_credential_by_identifier(EMAIL).otp_code == code

    def test_unknown_identifier_looks_like_wrong_password(self, authenticator, alice):
        with pytest.raises(AuthenticationFailure) as unknown:
            authenticator.authenticate("nobody@example.com", PASSWORD)
        with pytest.raises(AuthenticationFailure) as wrong:
            authenticator.authenticate(EMAIL, "nope")
        assert str(unknown.value) == str(wrong.value)

    def test_inactive_account(self, authenticator, db, alice):
        db.set_active(alice.user_id, False)
        with pytest.raises(AuthenticationFailure):
            authenticator.authenticate(EMAIL, PASSWORD)

    def test_wrong_password_counts(self, authenticator, db, alice):
        fail_times(authenticator, 2)
        assert db.get_credential_by_identifier(EMAIL).failed_attempt_count == 2

    def test_success_resets_counter(self, authenticator, db, alice):
        fail_times(authenticator, 3)
        authenticator.authenticate(EMAIL, PASSWORD)
        assert db.get_credential_by_identifier(EMAIL).failed_attempt_count == 0

    def test_delivery_failure_still_reports_success(self, db, tokens, clock, alice):
        notifier = FailingNotifier(max_workers=1)
        authenticator = Authenticator(db, tokens, notifier, clock=clock)
        try:
            pending = authenticator.authenticate(EMAIL, PASSWORD)
            assert pending.identifier == EMAIL
        finally:
            notifier.shutdown()


class TestLockout:
    """Test progressive lockout and unlock."""

    def test_fifth_failure_locks(self, authenticator, db, alice):
        """Four failures, then a fifth wrong password raises AccountLocked."""
        fail_times(authenticator, 4)

        with pytest.raises(AccountLocked):
            authenticator.authenticate(EMAIL, "wrong-password")

        record = db.get_credential_by_identifier(EMAIL)
        assert record.lockout_flag
        assert record.failed_attempt_count == 5

    def test_correct_password_while_locked(self, authenticator, notifier, alice):
        fail_times(authenticator, 4)
        with pytest.raises(AccountLocked):
            authenticator.authenticate(EMAIL, "wrong-password")

        with pytest.raises(AccountLocked):
            authenticator.authenticate(EMAIL, PASSWORD)
        notifier.wait()
        assert notifier.sent == []

    def test_unlock_then_login(self, authenticator, db, alice):
        fail_times(authenticator, 4)
        with pytest.raises(AccountLocked):
            authenticator.authenticate(EMAIL, "wrong-password")

        authenticator.unlock(alice.user_id)

        record = db.get_credential_by_identifier(EMAIL)
        assert not record.lockout_flag
        assert record.failed_attempt_count == 0
        assert authenticator.authenticate(EMAIL, PASSWORD).identifier == EMAIL

    def test_unlock_is_idempotent(self, authenticator, alice):
        authenticator.unlock(alice.user_id)
        authenticator.unlock(alice.user_id)

    def test_unlock_unknown_user(self, authenticator):
        with pytest.raises(UserNotFound):
            authenticator.unlock("missing")

    def test_custom_threshold(self, db, tokens, notifier, clock, alice):
        authenticator = Authenticator(db, tokens, notifier, lockout_threshold=2, clock=clock)
        fail_times(authenticator, 1)
        with pytest.raises(AccountLocked):
            authenticator.authenticate(EMAIL, "wrong-password")


class TestVerifyOtp:
    """Test the one-time-code step."""

    def test_code_issues_session(self, authenticator, notifier, alice):
        authenticator.authenticate(EMAIL, PASSWORD)
        grant = authenticator.verify_otp(EMAIL, notifier.last_code())

        assert grant.actor_id == alice.user_id
        assert grant.role == Role.EMPLOYEE
        assert grant.expires_in == 3600
        assert authenticator.resolve_actor(grant.token).id == alice.user_id

    def test_code_is_single_use(self, authenticator, notifier, alice):
        authenticator.authenticate(EMAIL, PASSWORD)
        code = notifier.last_code()
        authenticator.verify_otp(EMAIL, code)

        with pytest.raises(InvalidOrExpiredOtp):
            authenticator.verify_otp(EMAIL, code)

    def test_wrong_code(self, authenticator, notifier, alice):
        authenticator.authenticate(EMAIL, PASSWORD)
        code = notifier.last_code()
        wrong = "000000" if code != "000000" else "111111"

        with pytest.raises(InvalidOrExpiredOtp):
            authenticator.verify_otp(EMAIL, wrong)
        # The right code still works afterwards
        assert authenticator.verify_otp(EMAIL, code).actor_id == alice.user_id

    def test_expired_code(self, authenticator, notifier, clock, alice):
        authenticator.authenticate(EMAIL, PASSWORD)
        code = notifier.last_code()
        clock.advance(minutes=3, seconds=1)

        with pytest.raises(InvalidOrExpiredOtp):
            authenticator.verify_otp(EMAIL, code)

    def test_code_valid_until_expiry(self, authenticator, notifier, clock, alice):
        authenticator.authenticate(EMAIL, PASSWORD)
        code = notifier.last_code()
        clock.advance(minutes=3)
        assert authenticator.verify_otp(EMAIL, code)

    def test_no_pending_code(self, authenticator, alice):
        with pytest.raises(InvalidOrExpiredOtp):
            authenticator.verify_otp(EMAIL, "123456")

    def test_unknown_identifier(self, authenticator):
        with pytest.raises(InvalidOrExpiredOtp):
            authenticator.verify_otp("nobody@example.com", "123456")

    @pytest.mark.parametrize("code", ["12345é", "١٢٣٤٥٦", "ＡＢＣＤＥＦ"])
    def test_non_ascii_code_is_rejected(self, authenticator, notifier, alice, code):
        authenticator.authenticate(EMAIL, PASSWORD)
        with pytest.raises(InvalidOrExpiredOtp):
            authenticator.verify_otp(EMAIL, code)
        assert authenticator.verify_otp(EMAIL, notifier.last_code()).actor_id == alice.user_id

    def test_lockout_discards_pending_code(self, authenticator, db, notifier, alice):
        """A code issued before the account locked cannot be redeemed."""
        authenticator.authenticate(EMAIL, PASSWORD)
        code = notifier.last_code()
        fail_times(authenticator, 4)
        with pytest.raises(AccountLocked):
            authenticator.authenticate(EMAIL, "wrong-password")

        record = db.get_credential_by_identifier(EMAIL)
        assert record.otp_code is None
        assert record.otp_expiry is None
        with pytest.raises(InvalidOrExpiredOtp):
            authenticator.verify_otp(EMAIL, code)

    def test_locked_record_with_code_is_rejected(self, authenticator, db, notifier, alice):
        authenticator.authenticate(EMAIL, PASSWORD)
        code = notifier.last_code()
        record = db.get_credential_by_identifier(EMAIL)
        record.lockout_flag = True
        db.save_credential(record)

        with pytest.raises(InvalidOrExpiredOtp):
            authenticator.verify_otp(EMAIL, code)

    def test_deactivated_account_cannot_redeem(self, authenticator, db, notifier, alice):
        authenticator.authenticate(EMAIL, PASSWORD)
        code = notifier.last_code()
        db.set_active(alice.user_id, False)

        with pytest.raises(InvalidOrExpiredOtp):
            authenticator.verify_otp(EMAIL, code)

        # Reactivated, the still pending code works again
        db.set_active(alice.user_id, True)
        assert authenticator.verify_otp(EMAIL, code).actor_id == alice.user_id

    def test_otp_failures_do_not_lock(self, authenticator, db, notifier, alice):
        authenticator.authenticate(EMAIL, PASSWORD)
        for _ in range(10):
            with pytest.raises(InvalidOrExpiredOtp):
                authenticator.verify_otp(EMAIL, "not-it")

        record = db.get_credential_by_identifier(EMAIL)
        assert not record.lockout_flag
        assert record.failed_attempt_count == 0


class TestRegisterAndResolve:
    def test_register(self, authenticator):
        account = authenticator.register("Bob", "bob@example.com", "pw", department="Sales")
        assert account.role == Role.EMPLOYEE
        with pytest.raises(IdentifierTaken):
            authenticator.register("Bob", "bob@example.com", "pw")

    def test_register_employment_status(self, authenticator, db):
        account = authenticator.register("Cara", "cara@example.com", "pw", employment_status="Contract")
        assert account.employment_status == "Contract"
        assert db.get_actor(account.user_id).employment_status == "Contract"

    def test_resolve_rejects_bad_token(self, authenticator):
        with pytest.raises(AuthenticationFailure):
            authenticator.resolve_actor("garbage")

    def test_resolve_rejects_deleted_user(self, authenticator, db, alice):
        token = authenticator.tokens.create_session_token(alice.user_id, Role.EMPLOYEE)
        db.delete_user(alice.user_id)
        with pytest.raises(AuthenticationFailure):
            authenticator.resolve_actor(token)
