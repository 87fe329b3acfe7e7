"""
Registration Service - sign-up, email verification and password reset

Handles account creation with emailed one-time codes and the secure
password reset flow. One-time codes and reset tokens are stored only as
SHA-256 digests with an expiry.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from account_service import metrics
from account_service.core.config import Settings
from account_service.core.exceptions import (
    EmailAlreadyRegistered,
    InvalidOneTimeCode,
    InvalidRequest,
    WeakPassword,
)
from account_service.models import Account, AccountStatus
from account_service.services.account_store import AccountStore
from account_service.services.device_fingerprint import ClientMetadata
from account_service.services.email_service import EmailService
from account_service.services.event_service import EventService
from account_service.services.login_orchestrator import AccountSummary, AuthenticatedSession
from account_service.services.token_issuer import TokenIssuer
from account_service.utils.security import (
    constant_time_compare,
    generate_numeric_code,
    generate_random_token,
    hash_password,
    hash_token,
    mask_email,
    validate_password_strength,
)

logger = logging.getLogger(__name__)


class RegistrationService:
    """Service for account registration and credential recovery"""

    def __init__(
        self,
        settings: Settings,
        store: AccountStore,
        tokens: TokenIssuer,
        email_service: EmailService,
        event_service: EventService
    ):
        self.settings = settings
        self.store = store
        self.tokens = tokens
        self.email_service = email_service
        self.event_service = event_service
        self.otp_ttl = timedelta(minutes=settings.EMAIL_OTP_TTL_MINUTES)
        self.reset_ttl = timedelta(minutes=settings.PASSWORD_RESET_TOKEN_TTL_MINUTES)

    def _validate_password(self, password: str, email: str, name: Optional[str]) -> None:
        result = validate_password_strength(
            password,
            min_length=self.settings.PASSWORD_MIN_LENGTH,
            min_score=self.settings.PASSWORD_MIN_STRENGTH_SCORE,
            user_inputs=[email, name or ""]
        )
        if not result['valid']:
            raise WeakPassword(f"Password validation failed: {' '.join(result['errors'])}")

    def _issue_otp(self, account: Account) -> str:
        otp = generate_numeric_code(6)
        account.email_otp_hash = hash_token(otp)
        account.email_otp_expires_at = datetime.utcnow() + self.otp_ttl
        return otp

    def register(self, email: str, password: str, name: str) -> Account:
        """
        Register a new account and email a verification code

        Registering again with an unverified email re-sends the code instead
        of failing.

        Raises:
            EmailAlreadyRegistered: If a verified account uses this email
            WeakPassword: If the password fails strength validation
        """
        email = email.strip().lower()
        existing = self.store.get_by_email(email)

        if existing is not None:
            if existing.is_verified:
                metrics.account_registrations_total.labels(status="email_exists").inc()
                raise EmailAlreadyRegistered()

            with self.store.lock(existing.account_id) as account:
                otp = self._issue_otp(account)
            self.email_service.send_otp(account.email, otp, account.name)
            metrics.account_registrations_total.labels(status="resent").inc()
            logger.info(f"Verification code re-sent to unverified account {account.account_id}")
            return account

        try:
            self._validate_password(password, email, name)
        except WeakPassword:
            metrics.account_registrations_total.labels(status="weak_password").inc()
            raise

        account = Account(
            email=email,
            password_hash=hash_password(password, rounds=self.settings.PASSWORD_BCRYPT_COST),
            name=name,
            is_verified=False,
            status=AccountStatus.PENDING,
            password_changed_at=datetime.utcnow(),
        )
        otp = self._issue_otp(account)
        account = self.store.add(account)

        self.email_service.send_otp(account.email, otp, account.name)
        self.event_service.publish_account_registered(account.account_id, account.email)
        metrics.account_registrations_total.labels(status="success").inc()
        logger.info(f"Account {account.account_id} registered ({mask_email(email)})")
        return account

    def verify_email(self, email: str, otp: str, client: Optional[ClientMetadata] = None) -> AuthenticatedSession:
        """
        Verify the emailed code, activate the account and sign it in

        Raises:
            InvalidOneTimeCode: If the code is wrong, expired, or the email is unknown
            InvalidRequest: If the account is already verified
        """
        client = client or ClientMetadata()
        candidate = self.store.get_by_email(email)
        if candidate is None:
            raise InvalidOneTimeCode()

        with self.store.lock(candidate.account_id) as account:
            if account.is_verified:
                raise InvalidRequest("Account already verified")

            now = datetime.utcnow()
            if not account.email_otp_hash or not constant_time_compare(hash_token((otp or "").strip()), account.email_otp_hash):
                metrics.account_email_verifications_total.labels(status="invalid_code").inc()
                raise InvalidOneTimeCode("Invalid verification code")
            if account.email_otp_expires_at is None or account.email_otp_expires_at < now:
                metrics.account_email_verifications_total.labels(status="expired_code").inc()
                raise InvalidOneTimeCode("Verification code has expired. Please request a new one.")

            account.is_verified = True
            account.status = AccountStatus.ACTIVE
            account.email_otp_hash = None
            account.email_otp_expires_at = None

            pair = self.tokens.issue(account)
            self.store.append_login_event(account, client, True, now)
            account.last_login_at = now
            summary = AccountSummary.from_account(account)

        metrics.account_email_verifications_total.labels(status="success").inc()
        self.event_service.publish_account_verified(summary.account_id)
        self.email_service.send_welcome(summary.email, summary.name)
        logger.info(f"Account {summary.account_id} verified")

        return AuthenticatedSession(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=pair.expires_in,
            account=summary,
        )

    def resend_otp(self, email: str) -> None:
        """
        Send a fresh verification code

        Unknown emails are ignored silently so the response does not reveal
        which addresses are registered.

        Raises:
            InvalidRequest: If the account is already verified
        """
        candidate = self.store.get_by_email(email)
        if candidate is None:
            logger.info(f"Verification code requested for unknown email {mask_email(email or '')}")
            return

        with self.store.lock(candidate.account_id) as account:
            if account.is_verified:
                raise InvalidRequest("Account already verified")
            otp = self._issue_otp(account)

        self.email_service.send_otp(account.email, otp, account.name)

    def request_password_reset(self, email: str, ip: Optional[str] = None) -> Optional[str]:
        """
        Start a password reset

        Returns:
            Reset token if the account exists, None otherwise (callers always
            report success so the response does not reveal registered emails)
        """
        candidate = self.store.get_by_email(email)
        if candidate is None or not candidate.password_hash:
            metrics.account_password_resets_total.labels(operation="request", status="unknown_email").inc()
            return None

        reset_token = generate_random_token(32)
        with self.store.lock(candidate.account_id) as account:
            account.password_reset_token_hash = hash_token(reset_token)
            account.password_reset_expires_at = datetime.utcnow() + self.reset_ttl

        self.email_service.send_password_reset(account.email, reset_token, account.name)
        self.event_service.publish_password_reset(account.account_id, completed=False)
        metrics.account_password_resets_total.labels(operation="request", status="success").inc()
        logger.info(f"Password reset requested for account {account.account_id}")
        return reset_token

    def reset_password(self, token: str, new_password: str) -> Account:
        """
        Complete a password reset

        Single use. Revokes every refresh token, and access tokens issued
        before the change stop being accepted.

        Raises:
            InvalidOneTimeCode: If the token is unknown or expired
            WeakPassword: If the new password fails strength validation
        """
        candidate = self.store.get_by_reset_token_hash(hash_token(token or ""))
        if candidate is None:
            metrics.account_password_resets_total.labels(operation="complete", status="invalid_token").inc()
            raise InvalidOneTimeCode("Invalid or expired reset token")

        with self.store.lock(candidate.account_id) as account:
            now = datetime.utcnow()
            if account.password_reset_expires_at is None or account.password_reset_expires_at < now:
                account.password_reset_token_hash = None
                account.password_reset_expires_at = None
                metrics.account_password_resets_total.labels(operation="complete", status="expired_token").inc()
                raise InvalidOneTimeCode("Invalid or expired reset token")

            self._validate_password(new_password, account.email, account.name)

            account.password_hash = hash_password(new_password, rounds=self.settings.PASSWORD_BCRYPT_COST)
            account.password_changed_at = now
            account.password_reset_token_hash = None
            account.password_reset_expires_at = None
            revoked = self.store.clear_refresh_tokens(account)

        self.email_service.send_password_changed(account.email, account.name)
        self.event_service.publish_password_reset(account.account_id, completed=True)
        metrics.account_password_resets_total.labels(operation="complete", status="success").inc()
        metrics.auth_token_operations_total.labels(operation="revoke_all", status="success").inc()
        logger.info(f"Password reset for account {account.account_id}, {revoked} refresh tokens revoked")
        return account
