"""
Database models
"""

from account_service.models.account import Account, AccountStatus, AccountRole
from account_service.models.second_factor import SecondFactorConfig, RecoveryCode
from account_service.models.trusted_device import TrustedDevice
from account_service.models.login_event import LoginEvent
from account_service.models.refresh_token import RefreshToken

__all__ = [
    "Account",
    "AccountStatus",
    "AccountRole",
    "SecondFactorConfig",
    "RecoveryCode",
    "TrustedDevice",
    "LoginEvent",
    "RefreshToken",
]
