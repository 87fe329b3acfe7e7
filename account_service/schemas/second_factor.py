"""
Pydantic schemas for second factor (TOTP) endpoints
"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field


# Enrollment

class SecondFactorSetupResponse(BaseModel):
    """
    Enrollment started

    Contains the TOTP secret, QR code and recovery codes. Recovery codes are
    shown only once.
    """
    provisioning_uri: str = Field(..., description="otpauth:// URI for authenticator apps")
    qr_code_data_uri: str = Field(..., description="QR code as data URI (can be embedded in <img> tag)")
    manual_key: str = Field(..., description="Base32-encoded TOTP secret for manual entry")
    recovery_codes: List[str] = Field(..., description="Single-use recovery codes")
    expires_in: int = Field(..., description="Seconds left to confirm the setup")
    message: str = Field(
        default="Scan QR code with authenticator app (Google Authenticator, Authy, etc.)"
    )


class SecondFactorConfirmRequest(BaseModel):
    """Confirms enrollment with a code from the authenticator app"""
    code: str = Field(..., max_length=16, description="6-digit TOTP code")


class SecondFactorConfirmResponse(BaseModel):
    enabled: bool = True
    message: str = "Two-factor authentication enabled successfully"
    recovery_codes_remaining: int


class SecondFactorDisableRequest(BaseModel):
    password: str = Field(..., max_length=128)
    code: Optional[str] = Field(None, max_length=16)


class RecoveryCodesRegenerateRequest(BaseModel):
    password: str = Field(..., max_length=128)


class RecoveryCodesResponse(BaseModel):
    recovery_codes: List[str]
    message: str = "New recovery codes generated. Previous codes no longer work."


# Status

class SecondFactorStatusResponse(BaseModel):
    """Second factor status summary"""
    enabled: bool
    setup_in_progress: bool
    enrolled_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    usage_count: int
    recovery_codes_total: int
    recovery_codes_unused: int
    recovery_codes_used: int
    trusted_devices_total: int
    trusted_devices_active: int
    failed_attempts: int
    locked: bool
    locked_until: Optional[datetime] = None
