"""
Unit tests for LoginOrchestrator
"""

from datetime import datetime, timedelta

import pyotp
import pytest

from account_service.core.exceptions import (
    AccountInactive,
    AccountLocked,
    AccountNotVerified,
    InvalidCredentials,
    InvalidRequest,
    InvalidSecondFactor,
)
from account_service.models import AccountStatus
from account_service.services.device_fingerprint import ClientMetadata
from account_service.services.login_orchestrator import (
    AuthenticatedSession,
    LoginFailed,
    SecondFactorRequired,
)
from tests.unit.conftest import TEST_PASSWORD, invalid_code_for


OTHER_BROWSER = ClientMetadata(
    user_agent="Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0.0.0 Safari/537.36",
    ip_address="198.51.100.20"
)


class TestPasswordLogin:
    """Test login without a second factor"""

    def test_success_issues_tokens(self, login_orchestrator, account, client_metadata, mock_event_service):
        result = login_orchestrator.login("alice@example.com", TEST_PASSWORD, client=client_metadata)

        assert isinstance(result, AuthenticatedSession)
        assert result.account.account_id == account.account_id
        assert result.second_factor_method is None
        assert account.last_login_at is not None
        assert account.login_events[-1].success is True
        mock_event_service.publish_login_success.assert_called_once()

    def test_identifier_is_case_insensitive(self, login_orchestrator, account):
        result = login_orchestrator.login("ALICE@example.com", TEST_PASSWORD)

        assert isinstance(result, AuthenticatedSession)

    def test_wrong_password(self, login_orchestrator, account, mock_event_service):
        result = login_orchestrator.login("alice@example.com", "wrong-password")

        assert isinstance(result, LoginFailed)
        assert isinstance(result.error, InvalidCredentials)
        assert account.failed_login_attempts == 1
        assert account.login_events[-1].failure_reason == "invalid_password"
        mock_event_service.publish_login_failed.assert_called_once()

    def test_unknown_identifier_indistinguishable(self, login_orchestrator, account):
        unknown = login_orchestrator.login("nobody@example.com", TEST_PASSWORD)
        wrong = login_orchestrator.login("alice@example.com", "wrong-password")

        assert type(unknown.error) is type(wrong.error)
        assert unknown.error.to_dict() == wrong.error.to_dict()

    def test_success_resets_failure_count(self, login_orchestrator, account):
        login_orchestrator.login("alice@example.com", "wrong-password")
        login_orchestrator.login("alice@example.com", "wrong-password")

        login_orchestrator.login("alice@example.com", TEST_PASSWORD)

        assert account.failed_login_attempts == 0

    def test_unverified_account(self, login_orchestrator, store, account):
        with store.lock(account.account_id) as locked:
            locked.is_verified = False
            locked.status = AccountStatus.PENDING

        result = login_orchestrator.login("alice@example.com", TEST_PASSWORD)

        assert isinstance(result.error, AccountNotVerified)

    @pytest.mark.parametrize("status", [AccountStatus.SUSPENDED, AccountStatus.BANNED])
    def test_inactive_account(self, login_orchestrator, store, account, status):
        with store.lock(account.account_id) as locked:
            locked.status = status

        result = login_orchestrator.login("alice@example.com", TEST_PASSWORD)

        assert isinstance(result.error, AccountInactive)

    def test_both_codes_rejected(self, login_orchestrator, account):
        result = login_orchestrator.login(
            "alice@example.com", TEST_PASSWORD, second_factor_code="123456", recovery_code="ABCD-EFGH"
        )

        assert isinstance(result.error, InvalidRequest)


class TestAccountLockout:
    """Test lockout after consecutive password failures"""

    def test_locks_after_five_failures(self, login_orchestrator, account, mock_event_service):
        before = datetime.utcnow()
        for _ in range(5):
            result = login_orchestrator.login("alice@example.com", "wrong-password")
            assert isinstance(result.error, InvalidCredentials)

        assert account.failed_login_attempts == 5
        assert account.login_locked_until >= before + timedelta(minutes=29)
        mock_event_service.publish_account_locked.assert_called_once()

        result = login_orchestrator.login("alice@example.com", TEST_PASSWORD)

        assert isinstance(result.error, AccountLocked)
        assert result.error.scope == "account"
        assert 0 < result.error.retry_after <= 30 * 60

    def test_expired_lock_allows_login(self, login_orchestrator, store, account):
        with store.lock(account.account_id) as locked:
            locked.failed_login_attempts = 5
            locked.login_locked_until = datetime.utcnow() - timedelta(minutes=1)

        result = login_orchestrator.login("alice@example.com", TEST_PASSWORD)

        assert isinstance(result, AuthenticatedSession)
        assert account.failed_login_attempts == 0
        assert account.login_locked_until is None


class TestSecondFactorLogin:
    """Test login for accounts with the second factor enabled"""

    def test_password_only_requires_second_factor(self, login_orchestrator, enrolled, fake_redis):
        account, _, _ = enrolled

        result = login_orchestrator.login("alice@example.com", TEST_PASSWORD)

        assert isinstance(result, SecondFactorRequired)
        assert result.email_hint == "a***e@example.com"
        assert fake_redis.get_pending_second_factor(result.pending_reference) == account.account_id
        assert account.failed_login_attempts == 0
        assert account.second_factor.failed_attempts == 0
        assert not account.refresh_tokens

    def test_totp_code_in_one_step(self, login_orchestrator, enrolled):
        account, secret, _ = enrolled

        result = login_orchestrator.login(
            "alice@example.com", TEST_PASSWORD, second_factor_code=pyotp.TOTP(secret).now()
        )

        assert isinstance(result, AuthenticatedSession)
        assert result.second_factor_method == "totp"
        assert account.second_factor.usage_count == 1
        assert account.second_factor.last_used_at is not None

    def test_totp_code_cannot_be_replayed(self, login_orchestrator, enrolled, mock_event_service):
        account, secret, _ = enrolled
        code = pyotp.TOTP(secret).now()

        first = login_orchestrator.login("alice@example.com", TEST_PASSWORD, second_factor_code=code)
        replay = login_orchestrator.login("alice@example.com", TEST_PASSWORD, second_factor_code=code)

        assert isinstance(first, AuthenticatedSession)
        assert isinstance(replay.error, InvalidSecondFactor)
        assert account.second_factor.usage_count == 1
        assert account.second_factor.failed_attempts == 1
        mock_event_service.publish_second_factor_failed.assert_called_once()

    def test_complete_with_pending_reference(self, login_orchestrator, enrolled, fake_redis):
        _, secret, _ = enrolled
        pending = login_orchestrator.login("alice@example.com", TEST_PASSWORD)

        result = login_orchestrator.complete_second_factor(
            pending.pending_reference, second_factor_code=pyotp.TOTP(secret).now()
        )

        assert isinstance(result, AuthenticatedSession)
        assert fake_redis.get_pending_second_factor(pending.pending_reference) is None

    def test_wrong_code_keeps_pending_reference(self, login_orchestrator, enrolled, fake_redis):
        account, secret, _ = enrolled
        pending = login_orchestrator.login("alice@example.com", TEST_PASSWORD)

        result = login_orchestrator.complete_second_factor(
            pending.pending_reference, second_factor_code=invalid_code_for(secret)
        )

        assert isinstance(result.error, InvalidSecondFactor)
        assert account.second_factor.failed_attempts == 1
        assert fake_redis.get_pending_second_factor(pending.pending_reference) == account.account_id

    def test_unknown_pending_reference(self, login_orchestrator, enrolled):
        result = login_orchestrator.complete_second_factor("no-such-reference", second_factor_code="123456")

        assert isinstance(result.error, InvalidRequest)

    def test_complete_requires_a_code(self, login_orchestrator, enrolled):
        pending = login_orchestrator.login("alice@example.com", TEST_PASSWORD)

        result = login_orchestrator.complete_second_factor(pending.pending_reference)

        assert isinstance(result.error, InvalidRequest)

    def test_second_factor_lockout(self, login_orchestrator, enrolled, mock_event_service):
        account, secret, _ = enrolled
        wrong = invalid_code_for(secret)
        for _ in range(5):
            result = login_orchestrator.login("alice@example.com", TEST_PASSWORD, second_factor_code=wrong)
            assert isinstance(result.error, InvalidSecondFactor)

        result = login_orchestrator.login(
            "alice@example.com", TEST_PASSWORD, second_factor_code=pyotp.TOTP(secret).now()
        )

        assert isinstance(result.error, AccountLocked)
        assert result.error.scope == "second_factor"
        assert 0 < result.error.retry_after <= 15 * 60
        assert account.failed_login_attempts == 0
        mock_event_service.publish_account_locked.assert_called_once()
        assert mock_event_service.publish_second_factor_failed.call_count == 5

    def test_wrong_password_never_reaches_second_factor(self, login_orchestrator, enrolled):
        account, secret, _ = enrolled

        result = login_orchestrator.login(
            "alice@example.com", "wrong-password", second_factor_code=pyotp.TOTP(secret).now()
        )

        assert isinstance(result.error, InvalidCredentials)
        assert account.second_factor.usage_count == 0


class TestRecoveryCodes:
    """Test single-use recovery codes"""

    def test_recovery_code_is_single_use(self, login_orchestrator, enrolled, mock_event_service):
        account, _, recovery_codes = enrolled

        first = login_orchestrator.login("alice@example.com", TEST_PASSWORD, recovery_code=recovery_codes[0])
        replay = login_orchestrator.login("alice@example.com", TEST_PASSWORD, recovery_code=recovery_codes[0])
        sibling = login_orchestrator.login("alice@example.com", TEST_PASSWORD, recovery_code=recovery_codes[1])

        assert isinstance(first, AuthenticatedSession)
        assert first.second_factor_method == "recovery_code"
        assert isinstance(replay.error, InvalidSecondFactor)
        assert isinstance(sibling, AuthenticatedSession)
        assert sum(1 for rc in account.second_factor.recovery_codes if rc.used) == 2
        mock_event_service.publish_recovery_code_used.assert_any_call(account.account_id, 9)

    def test_recovery_code_format_is_lenient(self, login_orchestrator, enrolled):
        _, _, recovery_codes = enrolled

        result = login_orchestrator.login(
            "alice@example.com", TEST_PASSWORD, recovery_code=recovery_codes[2].lower().replace("-", "")
        )

        assert isinstance(result, AuthenticatedSession)


class TestTrustedDevices:
    """Test the trusted-device bypass"""

    def test_trusted_device_skips_second_factor(self, login_orchestrator, enrolled, client_metadata, mock_event_service):
        account, secret, _ = enrolled

        first = login_orchestrator.login(
            "alice@example.com",
            TEST_PASSWORD,
            second_factor_code=pyotp.TOTP(secret).now(),
            trust_device=True,
            client=client_metadata,
        )
        second = login_orchestrator.login("alice@example.com", TEST_PASSWORD, client=client_metadata)

        assert isinstance(first, AuthenticatedSession)
        assert len(account.trusted_devices) == 1
        assert account.trusted_devices[0].display_name == "Firefox on Linux"
        assert isinstance(second, AuthenticatedSession)
        assert second.second_factor_method == "trusted_device"
        mock_event_service.publish_trusted_device_added.assert_called_once_with(account.account_id, "Firefox on Linux")

    def test_other_device_still_challenged(self, login_orchestrator, enrolled, client_metadata):
        _, secret, _ = enrolled
        login_orchestrator.login(
            "alice@example.com",
            TEST_PASSWORD,
            second_factor_code=pyotp.TOTP(secret).now(),
            trust_device=True,
            client=client_metadata,
        )

        result = login_orchestrator.login("alice@example.com", TEST_PASSWORD, client=OTHER_BROWSER)

        assert isinstance(result, SecondFactorRequired)

    def test_trusted_device_does_not_bypass_password(self, login_orchestrator, enrolled, client_metadata):
        _, secret, _ = enrolled
        login_orchestrator.login(
            "alice@example.com",
            TEST_PASSWORD,
            second_factor_code=pyotp.TOTP(secret).now(),
            trust_device=True,
            client=client_metadata,
        )

        result = login_orchestrator.login("alice@example.com", "wrong-password", client=client_metadata)

        assert isinstance(result.error, InvalidCredentials)

    def test_trust_requested_without_code_is_ignored(self, login_orchestrator, enrolled, client_metadata):
        account, _, _ = enrolled

        result = login_orchestrator.login(
            "alice@example.com", TEST_PASSWORD, trust_device=True, client=client_metadata
        )

        assert isinstance(result, SecondFactorRequired)
        assert not account.trusted_devices
