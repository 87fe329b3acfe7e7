"""
Login Orchestrator - password login with second factor and trusted-device bypass

Every attempt ends in exactly one of three results:

- AuthenticatedSession: tokens issued
- SecondFactorRequired: password accepted, a code is needed to finish
- LoginFailed: a typed AuthError describing the coarse failure category

All counter, history and token mutations for the account happen inside one
``AccountStore.lock`` block, so two concurrent attempts cannot both act on
the same stale failure count.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from account_service import metrics
from account_service.core.config import Settings
from account_service.core.exceptions import (
    AuthError,
    AccountInactive,
    AccountLocked,
    AccountNotVerified,
    InvalidCredentials,
    InvalidRequest,
    InvalidSecondFactor,
)
from account_service.core.redis_client import RedisClient
from account_service.models import Account, AccountStatus, RecoveryCode, SecondFactorConfig
from account_service.services.account_store import AccountStore
from account_service.services.device_fingerprint import ClientMetadata, compute_fingerprint
from account_service.services.event_service import EventService
from account_service.services.lockout_policy import account_policy, second_factor_policy
from account_service.services.secret_codec import SecretCodec
from account_service.services.token_issuer import TokenIssuer
from account_service.services.totp_engine import TotpEngine
from account_service.utils.security import (
    dummy_password_hash,
    generate_random_token,
    mask_email,
    mask_ip,
    verify_password,
)

logger = logging.getLogger(__name__)

INACTIVE_STATUSES = (AccountStatus.SUSPENDED, AccountStatus.BANNED)


@dataclass(frozen=True)
class AccountSummary:
    account_id: int
    email: str
    name: Optional[str]
    role: str
    is_verified: bool
    second_factor_enabled: bool

    @classmethod
    def from_account(cls, account: Account) -> "AccountSummary":
        return cls(
            account_id=account.account_id,
            email=account.email,
            name=account.name,
            role=account.role.value,
            is_verified=account.is_verified,
            second_factor_enabled=account.second_factor_enabled,
        )


@dataclass(frozen=True)
class AuthenticatedSession:
    access_token: str
    refresh_token: str
    expires_in: int
    account: AccountSummary
    second_factor_method: Optional[str] = None  # totp, recovery_code, trusted_device


@dataclass(frozen=True)
class SecondFactorRequired:
    pending_reference: str
    email_hint: str


@dataclass(frozen=True)
class LoginFailed:
    error: AuthError


LoginResult = Union[AuthenticatedSession, SecondFactorRequired, LoginFailed]


class LoginOrchestrator:
    """Drives one login attempt from credentials to tokens"""

    def __init__(
        self,
        settings: Settings,
        store: AccountStore,
        totp: TotpEngine,
        codec: SecretCodec,
        tokens: TokenIssuer,
        redis: RedisClient,
        event_service: EventService
    ):
        self.settings = settings
        self.store = store
        self.totp = totp
        self.codec = codec
        self.tokens = tokens
        self.redis = redis
        self.event_service = event_service
        self.account_policy = account_policy(settings)
        self.second_factor_policy = second_factor_policy(settings)

    def login(
        self,
        identifier: str,
        password: str,
        second_factor_code: Optional[str] = None,
        recovery_code: Optional[str] = None,
        trust_device: bool = False,
        client: Optional[ClientMetadata] = None
    ) -> LoginResult:
        """
        Authenticate with email and password

        Args:
            identifier: Account email (case-insensitive)
            password: Plain text password
            second_factor_code: Optional 6-digit TOTP code
            recovery_code: Optional single-use recovery code
            trust_device: Trust this device after a successful second factor
            client: Connection metadata used for fingerprinting and history

        Returns:
            AuthenticatedSession, SecondFactorRequired or LoginFailed
        """
        client = client or ClientMetadata()

        try:
            self._reject_ambiguous_codes(second_factor_code, recovery_code)

            candidate = self.store.get_by_email(identifier)
            if candidate is None or not candidate.password_hash:
                # Same bcrypt cost as a real comparison
                verify_password(password, dummy_password_hash(self.settings.PASSWORD_BCRYPT_COST))
                logger.info(f"Login failed for unknown identifier {mask_email(identifier or '')}")
                raise InvalidCredentials()

            with self.store.lock(candidate.account_id) as account:
                now = datetime.utcnow()
                self._check_password(account, password, client, now)
                self._check_status(account)
                session = self._second_factor_step(
                    account, second_factor_code, recovery_code, trust_device, client, now
                )
                email = account.email
                account_id = account.account_id

        except AuthError as e:
            metrics.auth_login_attempts_total.labels(status=e.code).inc()
            return LoginFailed(e)

        if session is None:
            return self._require_second_factor(account_id, email)

        self._record_success(session, client)
        return session

    def complete_second_factor(
        self,
        pending_reference: str,
        second_factor_code: Optional[str] = None,
        recovery_code: Optional[str] = None,
        trust_device: bool = False,
        client: Optional[ClientMetadata] = None
    ) -> LoginResult:
        """
        Finish a login that returned SecondFactorRequired

        The reference is consumed on success; a failed code leaves it valid
        until it expires so the user can retry (bounded by the lockout).
        """
        client = client or ClientMetadata()

        try:
            self._reject_ambiguous_codes(second_factor_code, recovery_code)
            if not second_factor_code and not recovery_code:
                raise InvalidRequest("A two-factor code or recovery code is required")

            account_id = self.redis.get_pending_second_factor(pending_reference) if pending_reference else None
            if account_id is None or self.store.get(account_id) is None:
                raise InvalidRequest("Login session expired. Please sign in again.")

            with self.store.lock(account_id) as account:
                now = datetime.utcnow()
                self._check_status(account)
                session = self._second_factor_step(
                    account, second_factor_code, recovery_code, trust_device, client, now
                )

        except AuthError as e:
            metrics.auth_login_attempts_total.labels(status=e.code).inc()
            return LoginFailed(e)

        self.redis.delete_pending_second_factor(pending_reference)
        self._record_success(session, client)
        return session

    # Steps
    @staticmethod
    def _reject_ambiguous_codes(second_factor_code: Optional[str], recovery_code: Optional[str]) -> None:
        if second_factor_code and recovery_code:
            raise InvalidRequest("Provide either a two-factor code or a recovery code, not both")

    def _check_password(self, account: Account, password: str, client: ClientMetadata, now: datetime) -> None:
        state = self.store.login_counter(account)
        if self.account_policy.is_locked(state, now):
            logger.warning(f"Login attempt on locked account {account.account_id}")
            raise AccountLocked(self.account_policy.remaining(state, now), scope="account")

        if verify_password(password, account.password_hash):
            return

        next_state = self.account_policy.record_failure(state, now)
        self.store.set_login_counter(account, next_state)
        self.store.append_login_event(account, client, False, now, failure_reason="invalid_password")
        logger.info(
            f"Invalid password for account {account.account_id} from {mask_ip(client.ip_address)} "
            f"({next_state.failed_attempts} consecutive failures)"
        )
        self.event_service.publish_login_failed(account.account_id, "invalid_credentials", client.ip_address)

        if self.account_policy.is_locked(next_state, now):
            logger.warning(f"Account {account.account_id} locked until {next_state.locked_until.isoformat()}")
            metrics.auth_lockouts_total.labels(scope="account").inc()
            self.event_service.publish_account_locked(account.account_id, "account", next_state.locked_until)
        raise InvalidCredentials()

    @staticmethod
    def _check_status(account: Account) -> None:
        if not account.is_verified or account.status == AccountStatus.PENDING:
            raise AccountNotVerified()
        if account.status in INACTIVE_STATUSES:
            raise AccountInactive(f"Account is {account.status.value}")

    def _second_factor_step(
        self,
        account: Account,
        second_factor_code: Optional[str],
        recovery_code: Optional[str],
        trust_device: bool,
        client: ClientMetadata,
        now: datetime
    ) -> Optional[AuthenticatedSession]:
        """
        Apply the second factor (if enabled) and issue tokens.

        Returns None when a code is needed but none was supplied.
        """
        method = None
        config = account.second_factor

        if config is not None and config.enabled:
            fingerprint = compute_fingerprint(client)
            device = self.store.find_active_device(account, fingerprint)

            if device is not None:
                device.last_used_at = now
                method = "trusted_device"
                metrics.auth_second_factor_verifications_total.labels(method=method, status="success").inc()
            elif not second_factor_code and not recovery_code:
                self.store.append_login_event(account, client, False, now, failure_reason="second_factor_required")
                return None
            else:
                method = self._verify_second_factor(account, config, second_factor_code, recovery_code, client, now)
                if trust_device:
                    device = self.store.upsert_trusted_device(account, fingerprint, client, now)
                    logger.info(f"Trusted device added for account {account.account_id}")
                    self.event_service.publish_trusted_device_added(account.account_id, device.display_name)

        return self._issue_session(account, client, now, method)

    def _verify_second_factor(
        self,
        account: Account,
        config: SecondFactorConfig,
        second_factor_code: Optional[str],
        recovery_code: Optional[str],
        client: ClientMetadata,
        now: datetime
    ) -> str:
        state = self.store.second_factor_counter(config)
        if self.second_factor_policy.is_locked(state, now):
            raise AccountLocked(self.second_factor_policy.remaining(state, now), scope="second_factor")

        matched_code = None
        matched_step = None
        if second_factor_code:
            method = "totp"
            matched_step = self.totp.matched_step(
                second_factor_code,
                config.secret_encrypted,
                window_steps=self.settings.TOTP_VALID_WINDOW
            )
            # A step at or before the last accepted one is a replay
            verified = matched_step is not None and (
                config.last_used_step is None or matched_step > config.last_used_step
            )
        else:
            method = "recovery_code"
            matched_code = self._match_recovery_code(config, recovery_code)
            verified = matched_code is not None

        if not verified:
            next_state = self.second_factor_policy.record_failure(state, now)
            self.store.set_second_factor_counter(config, next_state)
            self.store.append_login_event(account, client, False, now, failure_reason="invalid_second_factor")
            metrics.auth_second_factor_verifications_total.labels(method=method, status="failure").inc()
            logger.info(
                f"Invalid {method} for account {account.account_id} "
                f"({next_state.failed_attempts} consecutive failures)"
            )
            self.event_service.publish_second_factor_failed(account.account_id, method, next_state.failed_attempts)
            if self.second_factor_policy.is_locked(next_state, now):
                metrics.auth_lockouts_total.labels(scope="second_factor").inc()
                self.event_service.publish_account_locked(account.account_id, "second_factor", next_state.locked_until)
            raise InvalidSecondFactor()

        self.store.set_second_factor_counter(config, self.second_factor_policy.reset(state))
        config.last_used_at = now
        config.usage_count = (config.usage_count or 0) + 1
        if matched_step is not None:
            config.last_used_step = matched_step

        if matched_code is not None:
            matched_code.used = True
            matched_code.used_at = now
            remaining = sum(1 for rc in config.recovery_codes if not rc.used)
            logger.warning(f"Recovery code used for account {account.account_id}, {remaining} remaining")
            self.event_service.publish_recovery_code_used(account.account_id, remaining)

        metrics.auth_second_factor_verifications_total.labels(method=method, status="success").inc()
        return method

    def _match_recovery_code(self, config: SecondFactorConfig, recovery_code: Optional[str]) -> Optional[RecoveryCode]:
        if not recovery_code or not self.codec.normalize_code(recovery_code):
            return None

        matched = None
        for candidate in config.recovery_codes:
            if candidate.used:
                continue
            if self.codec.matches(recovery_code, candidate.code_hash) and matched is None:
                matched = candidate
        return matched

    def _issue_session(
        self,
        account: Account,
        client: ClientMetadata,
        now: datetime,
        method: Optional[str]
    ) -> AuthenticatedSession:
        pair = self.tokens.issue(account)
        self.store.append_login_event(account, client, True, now)
        self.store.set_login_counter(account, self.account_policy.reset(self.store.login_counter(account)))
        account.last_login_at = now

        return AuthenticatedSession(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=pair.expires_in,
            account=AccountSummary.from_account(account),
            second_factor_method=method,
        )

    # Outcomes (after commit)
    def _require_second_factor(self, account_id: int, email: str) -> SecondFactorRequired:
        reference = generate_random_token(32)
        self.redis.set_pending_second_factor(
            reference,
            account_id,
            ttl=self.settings.PENDING_SECOND_FACTOR_TTL_MINUTES * 60
        )
        metrics.auth_login_attempts_total.labels(status="second_factor_required").inc()
        logger.info(f"Second factor required for account {account_id}")
        return SecondFactorRequired(pending_reference=reference, email_hint=mask_email(email))

    def _record_success(self, session: AuthenticatedSession, client: ClientMetadata) -> None:
        metrics.auth_login_attempts_total.labels(status="success").inc()
        metrics.auth_token_operations_total.labels(operation="issue", status="success").inc()
        logger.info(
            f"Login succeeded for account {session.account.account_id} from {mask_ip(client.ip_address)}"
        )
        self.event_service.publish_login_success(
            account_id=session.account.account_id,
            second_factor_used=session.second_factor_method in ("totp", "recovery_code"),
            trusted_device=session.second_factor_method == "trusted_device",
            ip=client.ip_address
        )
