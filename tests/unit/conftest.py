"""
Pytest configuration for unit tests.
"""

import time
from typing import Dict, List, Optional, Tuple
from unittest.mock import Mock

import pyotp
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from account_service import models  # noqa: F401
from account_service.core.config import Settings
from account_service.core.database import Base
from account_service.core.redis_client import RedisClient
from account_service.models import Account, AccountStatus
from account_service.services.account_store import AccountStore
from account_service.services.device_fingerprint import ClientMetadata
from account_service.services.email_service import EmailService
from account_service.services.enrollment_orchestrator import EnrollmentOrchestrator
from account_service.services.event_service import EventService
from account_service.services.login_orchestrator import LoginOrchestrator
from account_service.services.registration_service import RegistrationService
from account_service.services.secret_codec import SecretCodec
from account_service.services.security_service import SecurityService
from account_service.services.token_issuer import TokenIssuer
from account_service.services.totp_engine import TotpEngine
from account_service.utils.security import hash_password


TEST_ENCRYPTION_KEY = "0123456789abcdef" * 4
TEST_PASSWORD = "p@ss1234"
FIREFOX_ON_LINUX = "Mozilla/5.0 (X11; Linux x86_64; rv:120.0) Gecko/20100101 Firefox/120.0"


class FakeRedis(RedisClient):
    """In-memory stand-in for the Redis wrapper (TTL honoured on read)"""

    def __init__(self):
        self.store: Dict[str, Tuple[str, Optional[float]]] = {}
        self.published: List[Tuple[str, str]] = []

    def get(self, key: str) -> Optional[str]:
        entry = self.store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= time.time():
            del self.store[key]
            return None
        return value

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        self.store[key] = (str(value), time.time() + ttl if ttl else None)
        return True

    def delete(self, key: str) -> int:
        return 1 if self.store.pop(key, None) is not None else 0

    def incr(self, key: str) -> int:
        value, expires_at = self.store.get(key, ("0", None))
        self.store[key] = (str(int(value) + 1), expires_at)
        return int(value) + 1

    def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 1

    def ping(self) -> bool:
        return True

    def close(self):
        pass


def build_settings(**overrides) -> Settings:
    values = dict(
        ENVIRONMENT="test",
        DATABASE_URL="sqlite://",
        SECOND_FACTOR_ENCRYPTION_KEY=TEST_ENCRYPTION_KEY,
        JWT_ACCESS_SECRET="access-secret-for-unit-tests-0123456789",
        JWT_REFRESH_SECRET="refresh-secret-for-unit-tests-0123456789",
        PASSWORD_BCRYPT_COST=4,
        LOG_LEVEL="WARNING",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def invalid_code_for(secret: str) -> str:
    """A 6-digit code outside the accepted window for this secret"""
    totp = pyotp.TOTP(secret)
    now = time.time()
    accepted = {totp.at(now + offset) for offset in (-60, -30, 0, 30, 60)}
    for candidate in ("000000", "111111", "222222", "333333"):
        if candidate not in accepted:
            return candidate
    raise AssertionError("unreachable")


@pytest.fixture
def settings() -> Settings:
    return build_settings()


@pytest.fixture
def db_engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    session = Session(bind=db_engine, autoflush=False, expire_on_commit=False)
    yield session
    session.close()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def mock_event_service():
    """Mock EventService (fire-and-forget publisher)"""
    return Mock(spec=EventService)


@pytest.fixture
def mock_email_service():
    return Mock(spec=EmailService)


@pytest.fixture
def store(db_session, settings) -> AccountStore:
    return AccountStore(
        db_session,
        login_history_limit=settings.LOGIN_HISTORY_LIMIT,
        refresh_token_limit=settings.REFRESH_TOKENS_PER_ACCOUNT
    )


@pytest.fixture
def codec(settings) -> SecretCodec:
    return SecretCodec.from_settings(settings)


@pytest.fixture
def totp_engine(settings, codec) -> TotpEngine:
    return TotpEngine.from_settings(settings, codec)


@pytest.fixture
def token_issuer(settings, store) -> TokenIssuer:
    return TokenIssuer(settings, store)


@pytest.fixture
def login_orchestrator(settings, store, totp_engine, codec, token_issuer, fake_redis, mock_event_service):
    return LoginOrchestrator(settings, store, totp_engine, codec, token_issuer, fake_redis, mock_event_service)


@pytest.fixture
def enrollment_orchestrator(settings, store, totp_engine, codec, mock_event_service):
    return EnrollmentOrchestrator(settings, store, totp_engine, codec, mock_event_service)


@pytest.fixture
def registration_service(settings, store, token_issuer, mock_email_service, mock_event_service):
    return RegistrationService(settings, store, token_issuer, mock_email_service, mock_event_service)


@pytest.fixture
def security_service(store, enrollment_orchestrator, mock_event_service):
    return SecurityService(store, enrollment_orchestrator, mock_event_service)


@pytest.fixture
def client_metadata() -> ClientMetadata:
    return ClientMetadata(user_agent=FIREFOX_ON_LINUX, ip_address="203.0.113.7")


@pytest.fixture
def account(store) -> Account:
    """Verified, active account with password p@ss1234 and no second factor"""
    return store.add(
        Account(
            email="alice@example.com",
            password_hash=hash_password(TEST_PASSWORD, rounds=4),
            name="Alice Example",
            is_verified=True,
            status=AccountStatus.ACTIVE,
        )
    )


@pytest.fixture
def enrolled(account, enrollment_orchestrator):
    """
    Account with the second factor enabled.

    Returns (account, base32 secret, plaintext recovery codes).
    """
    started = enrollment_orchestrator.start_enrollment(account.account_id)
    enrollment_orchestrator.confirm_enrollment(account.account_id, pyotp.TOTP(started.manual_key).now())
    return account, started.manual_key, started.recovery_codes
