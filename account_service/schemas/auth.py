"""
Pydantic schemas for authentication endpoints
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field


# Request schemas

class RegisterRequest(BaseModel):
    """Account registration request"""
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=255)


class VerifyOtpRequest(BaseModel):
    """Email verification request"""
    email: EmailStr
    otp: str = Field(..., min_length=6, max_length=6)


class ResendOtpRequest(BaseModel):
    email: EmailStr


class LoginRequest(BaseModel):
    """
    Login request

    second_factor_code and recovery_code are mutually exclusive.
    """
    email: EmailStr
    password: str = Field(..., max_length=128)
    second_factor_code: Optional[str] = Field(None, max_length=16)
    recovery_code: Optional[str] = Field(None, max_length=32)
    trust_device: bool = Field(default=False)


class SecondFactorLoginRequest(BaseModel):
    """Completes a login that returned second_factor_required"""
    pending_reference: str = Field(..., max_length=128)
    second_factor_code: Optional[str] = Field(None, max_length=16)
    recovery_code: Optional[str] = Field(None, max_length=32)
    trust_device: bool = Field(default=False)


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class PasswordResetRequest(BaseModel):
    """Password reset request"""
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    """Password reset confirmation"""
    token: str
    new_password: str = Field(..., min_length=8, max_length=128)


# Response schemas

class AccountResponse(BaseModel):
    """Account information in response"""
    model_config = ConfigDict(from_attributes=True)

    account_id: int
    email: str
    name: Optional[str] = None
    role: str
    is_verified: bool
    second_factor_enabled: bool


class LoginResponse(BaseModel):
    """Login response with tokens"""
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    account: AccountResponse


class SecondFactorRequiredResponse(BaseModel):
    """Password accepted, second factor needed"""
    status: str = "second_factor_required"
    pending_reference: str
    email_hint: str
    message: str = "Two-factor verification required"


class TokenRefreshResponse(BaseModel):
    """Token refresh response"""
    access_token: str
    token_type: str = "Bearer"
    expires_in: int


class RegisterResponse(BaseModel):
    """Registration response"""
    account_id: int
    email: str
    verification_email_sent: bool = True
    message: str = "Registration successful. Please check your email for the verification code."


class MessageResponse(BaseModel):
    message: str


class LogoutResponse(BaseModel):
    """Logout response"""
    message: str
    sessions_revoked: int


class PasswordResetResponse(BaseModel):
    """Password reset request response"""
    message: str = "If this email is registered, you will receive a password reset link."
