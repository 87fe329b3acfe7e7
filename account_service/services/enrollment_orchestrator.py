"""
Enrollment Orchestrator - second factor setup, confirmation, disable and recovery codes

Implements the TOTP lifecycle (RFC 6238 codes via TotpEngine):
start -> pending secret + recovery codes, confirm -> enabled,
disable -> everything wiped, regenerate -> whole recovery set replaced.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from account_service import metrics
from account_service.core.config import Settings
from account_service.core.exceptions import (
    AccountLocked,
    AlreadyEnabled,
    EnrollmentExpired,
    EnrollmentNotInProgress,
    InvalidCredentials,
    InvalidSecondFactor,
    NotEnabled,
    NotFound,
)
from account_service.models import Account, RecoveryCode, SecondFactorConfig
from account_service.services.account_store import AccountStore
from account_service.services.event_service import EventService
from account_service.services.lockout_policy import second_factor_policy
from account_service.services.secret_codec import SecretCodec
from account_service.services.totp_engine import TotpEngine
from account_service.utils.security import generate_recovery_codes, verify_password

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnrollmentStart:
    provisioning_uri: str
    qr_code_data_uri: str
    manual_key: str
    recovery_codes: List[str]
    expires_in: int


@dataclass(frozen=True)
class SecondFactorStatus:
    enabled: bool
    setup_in_progress: bool
    enrolled_at: Optional[datetime]
    last_used_at: Optional[datetime]
    usage_count: int
    recovery_codes_total: int
    recovery_codes_unused: int
    recovery_codes_used: int
    trusted_devices_total: int
    trusted_devices_active: int
    failed_attempts: int
    locked: bool
    locked_until: Optional[datetime]


class EnrollmentOrchestrator:
    """Service for second factor enrollment operations"""

    def __init__(
        self,
        settings: Settings,
        store: AccountStore,
        totp: TotpEngine,
        codec: SecretCodec,
        event_service: EventService
    ):
        self.store = store
        self.totp = totp
        self.codec = codec
        self.event_service = event_service
        self.recovery_code_count = settings.RECOVERY_CODE_COUNT
        self.enrollment_window = timedelta(minutes=settings.ENROLLMENT_WINDOW_MINUTES)
        self.valid_window = settings.TOTP_VALID_WINDOW
        self.second_factor_policy = second_factor_policy(settings)

    def start_enrollment(self, account_id: int) -> EnrollmentStart:
        """
        Begin TOTP enrollment

        Generates a new secret, QR code, and recovery codes. Any enrollment
        already pending is discarded. Nothing is enabled until confirmation.

        Raises:
            AlreadyEnabled: If the second factor is already on
        """
        with self.store.lock(account_id) as account:
            config = self.store.second_factor_config(account)
            if config.enabled:
                raise AlreadyEnabled("Two-factor authentication is already enabled. Disable it first to re-enroll.")

            generated = self.totp.generate_secret(account.email)
            recovery_codes = generate_recovery_codes(count=self.recovery_code_count)

            config.pending_secret_encrypted = self.codec.encrypt(generated.secret)
            config.pending_started_at = datetime.utcnow()
            self._replace_recovery_codes(config, recovery_codes)

        metrics.auth_enrollment_operations_total.labels(operation="start", status="success").inc()
        logger.info(f"Second factor enrollment started for account {account_id}")

        return EnrollmentStart(
            provisioning_uri=generated.provisioning_uri,
            qr_code_data_uri=self.totp.render_qr_code(generated.provisioning_uri),
            manual_key=generated.secret,
            recovery_codes=recovery_codes,
            expires_in=int(self.enrollment_window.total_seconds()),
        )

    def confirm_enrollment(self, account_id: int, code: str) -> int:
        """
        Confirm enrollment with a code from the authenticator app

        Only the pending secret is checked; an expired enrollment is cleared.

        Returns:
            Number of recovery codes issued with this enrollment

        Raises:
            AlreadyEnabled, EnrollmentNotInProgress, EnrollmentExpired, InvalidSecondFactor
        """
        with self.store.lock(account_id) as account:
            config = account.second_factor
            if config is not None and config.enabled:
                raise AlreadyEnabled()
            if config is None or not config.pending_secret_encrypted or config.pending_started_at is None:
                raise EnrollmentNotInProgress()

            now = datetime.utcnow()
            if now - config.pending_started_at > self.enrollment_window:
                self._clear_pending(config)
                metrics.auth_enrollment_operations_total.labels(operation="confirm", status="expired").inc()
                logger.info(f"Second factor enrollment expired for account {account_id}")
                raise EnrollmentExpired()

            if not self.totp.verify(code, config.pending_secret_encrypted, window_steps=self.valid_window):
                metrics.auth_enrollment_operations_total.labels(operation="confirm", status="invalid_code").inc()
                raise InvalidSecondFactor("Invalid verification code")

            config.enabled = True
            config.secret_encrypted = config.pending_secret_encrypted
            config.pending_secret_encrypted = None
            config.pending_started_at = None
            config.enrolled_at = now
            config.last_used_at = None
            config.last_used_step = None
            config.usage_count = 0
            config.failed_attempts = 0
            config.locked_until = None
            recovery_codes_count = len(config.recovery_codes)

        metrics.auth_enrollment_operations_total.labels(operation="confirm", status="success").inc()
        logger.info(f"Second factor enabled for account {account_id}")
        self.event_service.publish_second_factor_enabled(account_id, recovery_codes_count)
        return recovery_codes_count

    def disable(self, account_id: int, password: str, code: Optional[str] = None) -> None:
        """
        Disable the second factor and wipe all of its state

        Removes the secret, recovery codes, trusted devices and counters.
        A later enrollment starts from zero.

        Args:
            account_id: Account ID
            password: Current password (re-verified)
            code: Optional TOTP code, verified when supplied

        Raises:
            NotEnabled, InvalidCredentials, AccountLocked, InvalidSecondFactor
        """
        with self.store.lock(account_id) as account:
            config = account.second_factor
            if config is None or not config.enabled:
                raise NotEnabled()

            self._check_password(account, password)

            if code:
                self._verify_code(config, code)

            self._wipe(account, config)

        metrics.auth_enrollment_operations_total.labels(operation="disable", status="success").inc()
        logger.warning(f"Second factor disabled for account {account_id}")
        self.event_service.publish_second_factor_disabled(account_id)

    def regenerate_recovery_codes(self, account_id: int, password: str) -> List[str]:
        """
        Replace every recovery code with a fresh set

        Returns:
            New plaintext recovery codes (shown once)

        Raises:
            NotEnabled, InvalidCredentials
        """
        with self.store.lock(account_id) as account:
            config = account.second_factor
            if config is None or not config.enabled:
                raise NotEnabled()

            self._check_password(account, password)

            recovery_codes = generate_recovery_codes(count=self.recovery_code_count)
            self._replace_recovery_codes(config, recovery_codes)

        metrics.auth_enrollment_operations_total.labels(operation="regenerate", status="success").inc()
        logger.info(f"Recovery codes regenerated for account {account_id}")
        self.event_service.publish_recovery_codes_regenerated(account_id, len(recovery_codes))
        return recovery_codes

    def get_status(self, account_id: int) -> SecondFactorStatus:
        """Summarize second factor state for the security overview"""
        account = self.store.get(account_id)
        if account is None:
            raise NotFound("Account not found")

        config = account.second_factor
        devices = account.trusted_devices
        now = datetime.utcnow()

        if config is None:
            return SecondFactorStatus(
                enabled=False,
                setup_in_progress=False,
                enrolled_at=None,
                last_used_at=None,
                usage_count=0,
                recovery_codes_total=0,
                recovery_codes_unused=0,
                recovery_codes_used=0,
                trusted_devices_total=len(devices),
                trusted_devices_active=sum(1 for d in devices if d.is_active),
                failed_attempts=0,
                locked=False,
                locked_until=None,
            )

        state = self.store.second_factor_counter(config)
        locked = self.second_factor_policy.is_locked(state, now)
        used = sum(1 for rc in config.recovery_codes if rc.used)
        setup_in_progress = (
            not config.enabled
            and config.pending_secret_encrypted is not None
            and config.pending_started_at is not None
            and now - config.pending_started_at <= self.enrollment_window
        )

        return SecondFactorStatus(
            enabled=config.enabled,
            setup_in_progress=setup_in_progress,
            enrolled_at=config.enrolled_at,
            last_used_at=config.last_used_at,
            usage_count=config.usage_count or 0,
            recovery_codes_total=len(config.recovery_codes),
            recovery_codes_unused=len(config.recovery_codes) - used,
            recovery_codes_used=used,
            trusted_devices_total=len(devices),
            trusted_devices_active=sum(1 for d in devices if d.is_active),
            failed_attempts=state.failed_attempts,
            locked=locked,
            locked_until=state.locked_until if locked else None,
        )

    # Helpers
    @staticmethod
    def _check_password(account: Account, password: str) -> None:
        if not verify_password(password, account.password_hash):
            raise InvalidCredentials("Invalid password")

    def _verify_code(self, config: SecondFactorConfig, code: str) -> None:
        now = datetime.utcnow()
        state = self.store.second_factor_counter(config)
        if self.second_factor_policy.is_locked(state, now):
            raise AccountLocked(self.second_factor_policy.remaining(state, now), scope="second_factor")

        if not self.totp.verify(code, config.secret_encrypted, window_steps=self.valid_window):
            self.store.set_second_factor_counter(config, self.second_factor_policy.record_failure(state, now))
            raise InvalidSecondFactor()

    def _replace_recovery_codes(self, config: SecondFactorConfig, codes: List[str]) -> None:
        config.recovery_codes.clear()
        for position, code in enumerate(codes):
            config.recovery_codes.append(
                RecoveryCode(position=position, code_hash=self.codec.hash_code(code), used=False)
            )

    @staticmethod
    def _clear_pending(config: SecondFactorConfig) -> None:
        config.pending_secret_encrypted = None
        config.pending_started_at = None
        config.recovery_codes.clear()

    @staticmethod
    def _wipe(account: Account, config: SecondFactorConfig) -> None:
        config.enabled = False
        config.secret_encrypted = None
        config.pending_secret_encrypted = None
        config.pending_started_at = None
        config.enrolled_at = None
        config.last_used_at = None
        config.last_used_step = None
        config.usage_count = 0
        config.failed_attempts = 0
        config.locked_until = None
        config.recovery_codes.clear()
        account.trusted_devices.clear()
