"""
Second factor (TOTP) endpoints
"""

from dataclasses import asdict
from fastapi import APIRouter, Depends

from account_service.api.dependencies import get_current_account, get_enrollment_orchestrator
from account_service.models import Account
from account_service.schemas.auth import MessageResponse
from account_service.schemas.second_factor import (
    RecoveryCodesRegenerateRequest,
    RecoveryCodesResponse,
    SecondFactorConfirmRequest,
    SecondFactorConfirmResponse,
    SecondFactorDisableRequest,
    SecondFactorSetupResponse,
    SecondFactorStatusResponse,
)
from account_service.services.enrollment_orchestrator import EnrollmentOrchestrator


router = APIRouter()


@router.post("/setup", response_model=SecondFactorSetupResponse)
def setup(
    current_account: Account = Depends(get_current_account),
    enrollment: EnrollmentOrchestrator = Depends(get_enrollment_orchestrator)
):
    """
    Start TOTP enrollment

    Scan the QR code with an authenticator app, then call `/2fa/verify-setup`
    with the 6-digit code within 10 minutes. Starting again discards any
    setup still pending.

    **Recovery Codes:**
    - Shown only in this response
    - Each code can only be used once

    **Errors:**
    - 409: Already enabled (disable it first to re-enroll)
    """
    started = enrollment.start_enrollment(current_account.account_id)
    return SecondFactorSetupResponse(**asdict(started))


@router.post("/verify-setup", response_model=SecondFactorConfirmResponse)
def verify_setup(
    request_data: SecondFactorConfirmRequest,
    current_account: Account = Depends(get_current_account),
    enrollment: EnrollmentOrchestrator = Depends(get_enrollment_orchestrator)
):
    """
    Confirm enrollment and turn the second factor on

    **Errors:**
    - 400: No setup in progress, setup expired
    - 401: Invalid code
    """
    remaining = enrollment.confirm_enrollment(current_account.account_id, request_data.code)
    return SecondFactorConfirmResponse(recovery_codes_remaining=remaining)


@router.post("/disable", response_model=MessageResponse)
def disable(
    request_data: SecondFactorDisableRequest,
    current_account: Account = Depends(get_current_account),
    enrollment: EnrollmentOrchestrator = Depends(get_enrollment_orchestrator)
):
    """
    Disable the second factor

    Requires the current password. Removes the secret, recovery codes and
    all trusted devices.
    """
    enrollment.disable(current_account.account_id, request_data.password, request_data.code)
    return MessageResponse(message="Two-factor authentication disabled successfully")


@router.post("/recovery-codes/regenerate", response_model=RecoveryCodesResponse)
def regenerate_recovery_codes(
    request_data: RecoveryCodesRegenerateRequest,
    current_account: Account = Depends(get_current_account),
    enrollment: EnrollmentOrchestrator = Depends(get_enrollment_orchestrator)
):
    codes = enrollment.regenerate_recovery_codes(current_account.account_id, request_data.password)
    return RecoveryCodesResponse(recovery_codes=codes)


@router.get("/status", response_model=SecondFactorStatusResponse)
def get_status(
    current_account: Account = Depends(get_current_account),
    enrollment: EnrollmentOrchestrator = Depends(get_enrollment_orchestrator)
):
    status = enrollment.get_status(current_account.account_id)
    return SecondFactorStatusResponse(**asdict(status))
