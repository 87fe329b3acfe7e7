"""
Security overview endpoints - trusted devices and login history
"""

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query

from account_service.api.dependencies import get_current_account, get_security_service
from account_service.models import Account
from account_service.schemas.auth import MessageResponse
from account_service.schemas.security import (
    LoginEventResponse,
    LoginHistoryResponse,
    RemoveTrustedDeviceRequest,
    SecurityOverviewResponse,
    TrustedDeviceResponse,
    TrustedDevicesResponse,
)
from account_service.services.security_service import SecurityService


router = APIRouter()


@router.get("/trusted-devices", response_model=TrustedDevicesResponse)
def list_trusted_devices(
    current_account: Account = Depends(get_current_account),
    security: SecurityService = Depends(get_security_service)
):
    devices = security.list_trusted_devices(current_account.account_id)
    return TrustedDevicesResponse(
        devices=[TrustedDeviceResponse.model_validate(d) for d in devices],
        total=len(devices)
    )


@router.delete("/trusted-devices/{device_id}", response_model=MessageResponse)
def remove_trusted_device(
    device_id: int,
    request_data: RemoveTrustedDeviceRequest,
    current_account: Account = Depends(get_current_account),
    security: SecurityService = Depends(get_security_service)
):
    """
    Stop trusting a device

    The device will need a two-factor code on its next login.

    **Errors:**
    - 401: Invalid password
    - 404: Device not found
    """
    security.remove_trusted_device(current_account.account_id, device_id, request_data.password)
    return MessageResponse(message="Trusted device removed")


@router.get("/overview", response_model=SecurityOverviewResponse)
def security_overview(
    current_account: Account = Depends(get_current_account),
    security: SecurityService = Depends(get_security_service)
):
    """
    Security score (0-100) with grade, recommendations, second factor state,
    active trusted devices and recent failed sign-ins
    """
    overview = security.security_overview(current_account.account_id)
    return SecurityOverviewResponse(**asdict(overview))


@router.get("/login-history", response_model=LoginHistoryResponse)
def login_history(
    success: Optional[bool] = Query(None, description="Only successful or only failed attempts"),
    days: int = Query(30, ge=1, le=365, description="Only attempts within the last N days"),
    current_account: Account = Depends(get_current_account),
    security: SecurityService = Depends(get_security_service)
):
    """Most recent login attempts (bounded), newest first"""
    events = security.login_history(current_account.account_id, success=success, days=days)
    return LoginHistoryResponse(
        events=[LoginEventResponse.model_validate(e) for e in events],
        total=len(events)
    )
