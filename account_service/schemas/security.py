"""
Pydantic schemas for the security overview endpoints
"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field

from account_service.schemas.second_factor import SecondFactorStatusResponse


class TrustedDeviceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    device_id: int
    display_name: str
    ip_address: Optional[str] = None
    trusted_at: datetime
    last_used_at: datetime


class TrustedDevicesResponse(BaseModel):
    devices: List[TrustedDeviceResponse]
    total: int


class RemoveTrustedDeviceRequest(BaseModel):
    password: str = Field(..., max_length=128)


class LoginEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime
    success: bool
    failure_reason: Optional[str] = None
    ip_address: Optional[str] = None
    device_name: Optional[str] = None
    location: Optional[str] = None


class LoginHistoryResponse(BaseModel):
    events: List[LoginEventResponse]
    total: int


class ScoreFactorResponse(BaseModel):
    name: str
    points: int
    max_points: int


class RecommendationResponse(BaseModel):
    priority: str
    category: str
    title: str
    description: str


class DeviceSummaryResponse(BaseModel):
    device_id: int
    display_name: str
    device_type: str
    ip_address: Optional[str] = None
    trusted_at: datetime
    last_used_at: datetime
    is_stale: bool


class SecurityOverviewResponse(BaseModel):
    """Security score with recommendations, second factor state and devices"""
    score: int
    max_score: int
    grade: str
    message: str
    factors: List[ScoreFactorResponse]
    recommendations: List[RecommendationResponse]
    second_factor: SecondFactorStatusResponse
    trusted_devices: List[DeviceSummaryResponse]
    recent_failed_logins: int
    is_verified: bool
    account_locked: bool
    password_changed_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime
