"""
API dependencies for authentication and service wiring

Process-wide components (settings, secret codec, Redis) are built once by
the app factory and kept on ``app.state``; services are built per request
around the request's database session.
"""

import calendar
from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from account_service.core.config import Settings
from account_service.core.database import get_db
from account_service.core.exceptions import AccountInactive, TokenInvalid
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


# Security scheme (missing credentials are reported as token_invalid)
security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_secret_codec(request: Request) -> SecretCodec:
    return request.app.state.secret_codec


def get_redis(request: Request) -> RedisClient:
    return request.app.state.redis


def get_account_store(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
) -> AccountStore:
    return AccountStore(
        db,
        login_history_limit=settings.LOGIN_HISTORY_LIMIT,
        refresh_token_limit=settings.REFRESH_TOKENS_PER_ACCOUNT
    )


def get_event_service(redis: RedisClient = Depends(get_redis)) -> EventService:
    return EventService(redis)


def get_email_service(
    event_service: EventService = Depends(get_event_service),
    settings: Settings = Depends(get_settings)
) -> EmailService:
    return EmailService(event_service, otp_ttl_minutes=settings.EMAIL_OTP_TTL_MINUTES)


def get_totp_engine(
    settings: Settings = Depends(get_settings),
    codec: SecretCodec = Depends(get_secret_codec)
) -> TotpEngine:
    return TotpEngine.from_settings(settings, codec)


def get_token_issuer(
    settings: Settings = Depends(get_settings),
    store: AccountStore = Depends(get_account_store)
) -> TokenIssuer:
    return TokenIssuer(settings, store)


def get_login_orchestrator(
    settings: Settings = Depends(get_settings),
    store: AccountStore = Depends(get_account_store),
    totp: TotpEngine = Depends(get_totp_engine),
    codec: SecretCodec = Depends(get_secret_codec),
    tokens: TokenIssuer = Depends(get_token_issuer),
    redis: RedisClient = Depends(get_redis),
    event_service: EventService = Depends(get_event_service)
) -> LoginOrchestrator:
    return LoginOrchestrator(settings, store, totp, codec, tokens, redis, event_service)


def get_enrollment_orchestrator(
    settings: Settings = Depends(get_settings),
    store: AccountStore = Depends(get_account_store),
    totp: TotpEngine = Depends(get_totp_engine),
    codec: SecretCodec = Depends(get_secret_codec),
    event_service: EventService = Depends(get_event_service)
) -> EnrollmentOrchestrator:
    return EnrollmentOrchestrator(settings, store, totp, codec, event_service)


def get_registration_service(
    settings: Settings = Depends(get_settings),
    store: AccountStore = Depends(get_account_store),
    tokens: TokenIssuer = Depends(get_token_issuer),
    email_service: EmailService = Depends(get_email_service),
    event_service: EventService = Depends(get_event_service)
) -> RegistrationService:
    return RegistrationService(settings, store, tokens, email_service, event_service)


def get_security_service(
    store: AccountStore = Depends(get_account_store),
    enrollment: EnrollmentOrchestrator = Depends(get_enrollment_orchestrator),
    event_service: EventService = Depends(get_event_service)
) -> SecurityService:
    return SecurityService(store, enrollment, event_service)


async def get_current_account_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> str:
    """
    Extract bearer token from Authorization header

    Raises:
        TokenInvalid: If the header is missing
    """
    if not credentials or not credentials.credentials:
        raise TokenInvalid("Missing authentication credentials")
    return credentials.credentials


def get_current_account(
    token: str = Depends(get_current_account_token),
    tokens: TokenIssuer = Depends(get_token_issuer),
    store: AccountStore = Depends(get_account_store)
) -> Account:
    """
    Get current authenticated account from access token

    Tokens issued before the last password change are rejected.

    Raises:
        TokenExpired, TokenInvalid: If the token fails validation
        AccountInactive: If the account is suspended or banned
    """
    payload = tokens.verify_access(token)

    account = store.get(int(payload["sub"]))
    if account is None:
        raise TokenInvalid()

    if account.password_changed_at is not None:
        changed_at = calendar.timegm(account.password_changed_at.utctimetuple())
        if int(payload.get("iat", 0)) < changed_at:
            raise TokenInvalid("Token issued before password change. Please sign in again.")

    if account.status in (AccountStatus.SUSPENDED, AccountStatus.BANNED):
        raise AccountInactive(f"Account is {account.status.value}")

    return account


async def get_client_ip(request: Request) -> str:
    """
    Get client IP address from request

    X-Forwarded-For is applied by ProxyHeadersMiddleware only when the
    direct peer is in TRUSTED_PROXIES; otherwise the socket address is used.

    Args:
        request: FastAPI request object

    Returns:
        Client IP address
    """
    return request.client.host if request.client else "unknown"


async def get_client_metadata(
    request: Request,
    client_ip: str = Depends(get_client_ip)
) -> ClientMetadata:
    """User agent and IP used for fingerprinting and login history"""
    return ClientMetadata(
        user_agent=request.headers.get("User-Agent"),
        ip_address=client_ip
    )
