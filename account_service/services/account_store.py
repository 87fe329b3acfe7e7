"""
Credential Store - persisted account state and its bounded collections

All security-sensitive mutations go through ``AccountStore.lock``, which
re-reads the account row with ``SELECT ... FOR UPDATE`` so decisions are
never made from a stale snapshot and concurrent attempts on the same
account are serialized.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from sqlalchemy.orm import Session

from account_service.core.exceptions import AuthError, NotFound
from account_service.models import (
    Account,
    SecondFactorConfig,
    TrustedDevice,
    LoginEvent,
    RefreshToken,
)
from account_service.services.device_fingerprint import ClientMetadata, describe_device
from account_service.services.lockout_policy import CounterState

logger = logging.getLogger(__name__)


class AccountStore:
    """Repository for Account aggregates"""

    def __init__(self, db: Session, login_history_limit: int = 20, refresh_token_limit: int = 5):
        self.db = db
        self.login_history_limit = login_history_limit
        self.refresh_token_limit = refresh_token_limit

    # Lookups
    def get(self, account_id: int) -> Optional[Account]:
        return self.db.query(Account).filter(Account.account_id == account_id).first()

    def get_by_email(self, email: str) -> Optional[Account]:
        """Case-insensitive lookup (emails are stored lowercased)"""
        if not email:
            return None
        return self.db.query(Account).filter(Account.email == email.strip().lower()).first()

    def get_by_reset_token_hash(self, token_hash: str) -> Optional[Account]:
        return self.db.query(Account).filter(Account.password_reset_token_hash == token_hash).first()

    def add(self, account: Account) -> Account:
        self.db.add(account)
        self.db.commit()
        self.db.refresh(account)
        return account

    @contextmanager
    def lock(self, account_id: int) -> Iterator[Account]:
        """
        Load the account under a row lock for one read-modify-write.

        Commits on normal exit and when an AuthError escapes (failure counters
        and login events recorded before the error are durable). Any other
        exception rolls the unit of work back.

        Raises:
            NotFound: If the account does not exist
        """
        account = (
            self.db.query(Account)
            .filter(Account.account_id == account_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if account is None:
            self.db.rollback()
            raise NotFound("Account not found")

        try:
            yield account
        except AuthError:
            self.db.commit()
            raise
        except Exception:
            self.db.rollback()
            raise
        else:
            self.db.commit()

    # Account lockout
    @staticmethod
    def login_counter(account: Account) -> CounterState:
        return CounterState(
            failed_attempts=account.failed_login_attempts or 0,
            locked_until=account.login_locked_until,
        )

    @staticmethod
    def set_login_counter(account: Account, state: CounterState) -> None:
        account.failed_login_attempts = state.failed_attempts
        account.login_locked_until = state.locked_until

    # Second factor
    def second_factor_config(self, account: Account) -> SecondFactorConfig:
        """Return the account's second factor config, creating an empty one if needed"""
        if account.second_factor is None:
            account.second_factor = SecondFactorConfig(enabled=False, usage_count=0, failed_attempts=0)
            self.db.flush()
        return account.second_factor

    @staticmethod
    def second_factor_counter(config: SecondFactorConfig) -> CounterState:
        return CounterState(
            failed_attempts=config.failed_attempts or 0,
            locked_until=config.locked_until,
        )

    @staticmethod
    def set_second_factor_counter(config: SecondFactorConfig, state: CounterState) -> None:
        config.failed_attempts = state.failed_attempts
        config.locked_until = state.locked_until

    # Trusted devices
    @staticmethod
    def find_active_device(account: Account, fingerprint: str) -> Optional[TrustedDevice]:
        for device in account.trusted_devices:
            if device.is_active and device.fingerprint == fingerprint:
                return device
        return None

    def upsert_trusted_device(
        self,
        account: Account,
        fingerprint: str,
        client: ClientMetadata,
        now: datetime
    ) -> TrustedDevice:
        """Trust a fingerprint, refreshing last-used instead of duplicating"""
        for device in account.trusted_devices:
            if device.fingerprint == fingerprint:
                device.last_used_at = now
                device.is_active = True
                return device

        device = TrustedDevice(
            fingerprint=fingerprint,
            display_name=describe_device(client),
            user_agent=client.user_agent,
            ip_address=client.ip_address,
            trusted_at=now,
            last_used_at=now,
            is_active=True,
        )
        account.trusted_devices.append(device)
        return device

    # Login history
    def append_login_event(
        self,
        account: Account,
        client: ClientMetadata,
        success: bool,
        now: datetime,
        failure_reason: Optional[str] = None,
        location: str = "Unknown"
    ) -> LoginEvent:
        """Append a login event, evicting the oldest beyond the history limit"""
        event = LoginEvent(
            timestamp=now,
            success=success,
            failure_reason=failure_reason,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
            device_name=describe_device(client),
            location=location,
        )
        account.login_events.append(event)

        overflow = len(account.login_events) - self.login_history_limit
        if overflow > 0:
            del account.login_events[:overflow]
        return event

    # Refresh tokens
    def add_refresh_token(self, account: Account, token_hash: str, jti: str, now: datetime) -> RefreshToken:
        """Add a refresh token to the active set, evicting the oldest beyond the cap"""
        record = RefreshToken(token_hash=token_hash, jti=jti, issued_at=now)
        account.refresh_tokens.append(record)

        overflow = len(account.refresh_tokens) - self.refresh_token_limit
        if overflow > 0:
            del account.refresh_tokens[:overflow]
        return record

    @staticmethod
    def has_refresh_token(account: Account, token_hash: str) -> bool:
        return any(record.token_hash == token_hash for record in account.refresh_tokens)

    @staticmethod
    def remove_refresh_token(account: Account, token_hash: str) -> bool:
        for record in list(account.refresh_tokens):
            if record.token_hash == token_hash:
                account.refresh_tokens.remove(record)
                return True
        return False

    @staticmethod
    def clear_refresh_tokens(account: Account) -> int:
        count = len(account.refresh_tokens)
        account.refresh_tokens.clear()
        return count
