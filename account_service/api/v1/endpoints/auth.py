"""
Authentication endpoints
"""

from typing import Union
from fastapi import APIRouter, Depends, status

from account_service import metrics
from account_service.api.dependencies import (
    get_client_ip,
    get_client_metadata,
    get_current_account,
    get_event_service,
    get_login_orchestrator,
    get_redis,
    get_registration_service,
    get_settings,
    get_token_issuer,
)
from account_service.core.config import Settings
from account_service.core.exceptions import AuthError, RateLimited
from account_service.core.redis_client import RedisClient
from account_service.models import Account
from account_service.schemas.auth import (
    AccountResponse,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    LogoutResponse,
    MessageResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    PasswordResetResponse,
    RefreshTokenRequest,
    RegisterRequest,
    RegisterResponse,
    ResendOtpRequest,
    SecondFactorLoginRequest,
    SecondFactorRequiredResponse,
    TokenRefreshResponse,
    VerifyOtpRequest,
)
from account_service.services.device_fingerprint import ClientMetadata
from account_service.services.event_service import EventService
from account_service.services.login_orchestrator import (
    AccountSummary,
    AuthenticatedSession,
    LoginFailed,
    LoginOrchestrator,
    LoginResult,
)
from account_service.services.registration_service import RegistrationService
from account_service.services.token_issuer import TokenIssuer

router = APIRouter()


def _session_response(session: AuthenticatedSession) -> LoginResponse:
    return LoginResponse(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_in=session.expires_in,
        account=AccountResponse.model_validate(session.account, from_attributes=True),
    )


def _render_login_result(result: LoginResult) -> Union[LoginResponse, SecondFactorRequiredResponse]:
    if isinstance(result, LoginFailed):
        raise result.error
    if isinstance(result, AuthenticatedSession):
        return _session_response(result)
    return SecondFactorRequiredResponse(
        pending_reference=result.pending_reference,
        email_hint=result.email_hint,
    )


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(
    request_data: RegisterRequest,
    registration: RegistrationService = Depends(get_registration_service)
):
    """
    Register a new account

    Sends a 6-digit verification code by email. Registering again with an
    unverified email re-sends the code.

    **Errors:**
    - 409: Email already registered
    - 400: Password too weak
    """
    account = registration.register(request_data.email, request_data.password, request_data.name)
    return RegisterResponse(account_id=account.account_id, email=account.email)


@router.post("/verify-otp", response_model=LoginResponse)
def verify_otp(
    request_data: VerifyOtpRequest,
    registration: RegistrationService = Depends(get_registration_service),
    client: ClientMetadata = Depends(get_client_metadata)
):
    """Verify the emailed code; signs the account in on success"""
    session = registration.verify_email(request_data.email, request_data.otp, client)
    return _session_response(session)


@router.post("/resend-otp", response_model=MessageResponse)
def resend_otp(
    request_data: ResendOtpRequest,
    registration: RegistrationService = Depends(get_registration_service)
):
    registration.resend_otp(request_data.email)
    return MessageResponse(message="If this email is awaiting verification, a new code has been sent.")


@router.post("/login", response_model=Union[LoginResponse, SecondFactorRequiredResponse])
def login(
    request_data: LoginRequest,
    orchestrator: LoginOrchestrator = Depends(get_login_orchestrator),
    client: ClientMetadata = Depends(get_client_metadata),
    client_ip: str = Depends(get_client_ip),
    redis: RedisClient = Depends(get_redis),
    settings: Settings = Depends(get_settings)
):
    """
    Authenticate with email and password

    **Returns:**
    - Tokens, when no second factor is needed (or the device is trusted)
    - `second_factor_required` with a pending reference, when a code is needed

    Supply `second_factor_code` or `recovery_code` (not both) to finish in
    one request. `trust_device` skips the code on this device next time.

    **Errors:**
    - 401: Invalid credentials or second factor
    - 403: Account not verified or inactive
    - 423: Locked after repeated failures (`retry_after` seconds)
    - 429: Too many attempts from this address
    """
    allowed, _ = redis.check_rate_limit(
        f"ratelimit:login:{client_ip}",
        settings.RATELIMIT_LOGIN_ATTEMPTS,
        settings.RATELIMIT_LOGIN_WINDOW_MINUTES * 60
    )
    if not allowed:
        metrics.auth_login_attempts_total.labels(status="rate_limited").inc()
        raise RateLimited()

    result = orchestrator.login(
        request_data.email,
        request_data.password,
        second_factor_code=request_data.second_factor_code,
        recovery_code=request_data.recovery_code,
        trust_device=request_data.trust_device,
        client=client,
    )
    return _render_login_result(result)


@router.post("/verify-2fa", response_model=LoginResponse)
def verify_second_factor(
    request_data: SecondFactorLoginRequest,
    orchestrator: LoginOrchestrator = Depends(get_login_orchestrator),
    client: ClientMetadata = Depends(get_client_metadata)
):
    """Finish a login that returned `second_factor_required`"""
    result = orchestrator.complete_second_factor(
        request_data.pending_reference,
        second_factor_code=request_data.second_factor_code,
        recovery_code=request_data.recovery_code,
        trust_device=request_data.trust_device,
        client=client,
    )
    return _render_login_result(result)


@router.post("/refresh-token", response_model=TokenRefreshResponse)
def refresh_token(
    request_data: RefreshTokenRequest,
    tokens: TokenIssuer = Depends(get_token_issuer)
):
    """
    Mint a new access token

    The refresh token must still be in the account's active set.
    """
    try:
        access_token = tokens.rotate(request_data.refresh_token)
    except AuthError:
        metrics.auth_token_operations_total.labels(operation="refresh", status="failure").inc()
        raise
    metrics.auth_token_operations_total.labels(operation="refresh", status="success").inc()
    return TokenRefreshResponse(
        access_token=access_token,
        expires_in=int(tokens.access_token_ttl.total_seconds())
    )


@router.post("/logout", response_model=LogoutResponse)
def logout(
    request_data: LogoutRequest,
    tokens: TokenIssuer = Depends(get_token_issuer)
):
    """Revoke one refresh token (always succeeds)"""
    revoked = 0
    if request_data.refresh_token:
        revoked = 1 if tokens.revoke(request_data.refresh_token) else 0
    metrics.auth_token_operations_total.labels(operation="revoke", status="success").inc()
    return LogoutResponse(message="Logged out successfully", sessions_revoked=revoked)


@router.post("/logout-all", response_model=LogoutResponse)
def logout_all(
    current_account: Account = Depends(get_current_account),
    tokens: TokenIssuer = Depends(get_token_issuer),
    event_service: EventService = Depends(get_event_service)
):
    """Revoke every refresh token of the current account"""
    revoked = tokens.revoke_all(current_account.account_id)
    metrics.auth_token_operations_total.labels(operation="revoke_all", status="success").inc()
    event_service.publish_logout(current_account.account_id, all_sessions=True)
    return LogoutResponse(message="Logged out from all devices", sessions_revoked=revoked)


@router.get("/me", response_model=AccountResponse)
def me(current_account: Account = Depends(get_current_account)):
    return AccountResponse.model_validate(AccountSummary.from_account(current_account), from_attributes=True)


@router.post("/forgot-password", response_model=PasswordResetResponse)
def forgot_password(
    request_data: PasswordResetRequest,
    registration: RegistrationService = Depends(get_registration_service),
    client_ip: str = Depends(get_client_ip)
):
    """
    Request a password reset email

    Always returns the same message so the response does not reveal whether
    the email is registered.
    """
    registration.request_password_reset(request_data.email, ip=client_ip)
    return PasswordResetResponse()


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    request_data: PasswordResetConfirm,
    registration: RegistrationService = Depends(get_registration_service)
):
    """Set a new password with a reset token; signs out every session"""
    registration.reset_password(request_data.token, request_data.new_password)
    return MessageResponse(message="Password reset successfully. Please sign in with your new password.")
