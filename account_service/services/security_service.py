"""
Security overview - score, recommendations, trusted devices and login history
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from account_service.core.exceptions import InvalidCredentials, NotFound
from account_service.models import Account, LoginEvent, TrustedDevice
from account_service.services.account_store import AccountStore
from account_service.services.enrollment_orchestrator import EnrollmentOrchestrator, SecondFactorStatus
from account_service.services.event_service import EventService
from account_service.utils.device import parse_device_type
from account_service.utils.security import verify_password

logger = logging.getLogger(__name__)

PASSWORD_MAX_AGE = timedelta(days=90)
RECENT_ACTIVITY = timedelta(days=30)
STALE_DEVICE_AGE = timedelta(days=30)
RECENT_FAILURES_WINDOW = timedelta(days=7)
MIN_RECOVERY_CODES = 3

# (minimum score, grade, message), highest first
GRADES = [
    (90, "A+", "Excellent security setup"),
    (80, "A", "Very good security setup"),
    (70, "B", "Good security, minor improvements possible"),
    (60, "C", "Moderate security, improvements recommended"),
    (50, "D", "Poor security, immediate action needed"),
    (0, "F", "Critical security issues need attention"),
]


@dataclass(frozen=True)
class ScoreFactor:
    name: str
    points: int
    max_points: int


@dataclass(frozen=True)
class Recommendation:
    priority: str  # high, medium, low
    category: str
    title: str
    description: str


@dataclass(frozen=True)
class DeviceSummary:
    device_id: int
    display_name: str
    device_type: str
    ip_address: Optional[str]
    trusted_at: datetime
    last_used_at: datetime
    is_stale: bool


@dataclass(frozen=True)
class SecurityOverview:
    score: int
    max_score: int
    grade: str
    message: str
    factors: List[ScoreFactor]
    recommendations: List[Recommendation]
    second_factor: SecondFactorStatus
    trusted_devices: List[DeviceSummary]
    recent_failed_logins: int
    is_verified: bool
    account_locked: bool
    password_changed_at: Optional[datetime]
    last_login_at: Optional[datetime]
    created_at: datetime


class SecurityService:
    """Read and prune the security-relevant collections of an account"""

    def __init__(self, store: AccountStore, enrollment: EnrollmentOrchestrator, event_service: EventService):
        self.store = store
        self.enrollment = enrollment
        self.event_service = event_service

    def _get(self, account_id: int) -> Account:
        account = self.store.get(account_id)
        if account is None:
            raise NotFound("Account not found")
        return account

    def list_trusted_devices(self, account_id: int) -> List[TrustedDevice]:
        """Active trusted devices, most recently used first"""
        account = self._get(account_id)
        devices = [d for d in account.trusted_devices if d.is_active]
        return sorted(devices, key=lambda d: d.last_used_at, reverse=True)

    def remove_trusted_device(self, account_id: int, device_id: int, password: str) -> None:
        """
        Stop trusting a device (password required)

        Raises:
            InvalidCredentials: If the password is wrong
            NotFound: If the device does not belong to the account or is already removed
        """
        with self.store.lock(account_id) as account:
            if not verify_password(password, account.password_hash):
                raise InvalidCredentials("Invalid password")

            device = next(
                (d for d in account.trusted_devices if d.device_id == device_id and d.is_active), None
            )
            if device is None:
                raise NotFound("Device not found")
            # Row is kept for the overview; the next login from it is challenged again
            device.is_active = False
            device.last_used_at = datetime.utcnow()

        logger.info(f"Trusted device {device_id} removed for account {account_id}")
        self.event_service.publish_trusted_device_removed(account_id, device_id)

    def login_history(
        self,
        account_id: int,
        success: Optional[bool] = None,
        days: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> List[LoginEvent]:
        """
        Recent login events, newest first

        Args:
            account_id: Account ID
            success: Only successful (True) or failed (False) attempts
            days: Only attempts within the last N days
        """
        account = self._get(account_id)
        events = list(reversed(account.login_events))

        if success is not None:
            events = [e for e in events if e.success == success]
        if days is not None:
            since = (now or datetime.utcnow()) - timedelta(days=days)
            events = [e for e in events if e.timestamp >= since]
        return events

    def security_overview(self, account_id: int, now: Optional[datetime] = None) -> SecurityOverview:
        """
        Score the account's security posture out of 100 and list what would raise it

        Weights: second factor 40, verified email 20, password younger than
        90 days 15, not locked 10, signed in within 30 days 10, at least 3
        unused recovery codes 5.
        """
        now = now or datetime.utcnow()
        account = self._get(account_id)
        status = self.enrollment.get_status(account_id)

        password_age = now - (account.password_changed_at or account.created_at)
        locked = account.login_locked_until is not None and account.login_locked_until > now
        recently_active = account.last_login_at is not None and now - account.last_login_at < RECENT_ACTIVITY
        enough_codes = status.enabled and status.recovery_codes_unused >= MIN_RECOVERY_CODES

        factors = [
            ScoreFactor("Two-Factor Authentication", 40 if status.enabled else 0, 40),
            ScoreFactor("Email Verification", 20 if account.is_verified else 0, 20),
            ScoreFactor("Recent Password Change", 15 if password_age < PASSWORD_MAX_AGE else 0, 15),
            ScoreFactor("Account Not Locked", 0 if locked else 10, 10),
            ScoreFactor("Recent Activity", 10 if recently_active else 0, 10),
            ScoreFactor("Recovery Codes Available", 5 if enough_codes else 0, 5),
        ]
        score = sum(f.points for f in factors)
        grade, message = next((g, m) for minimum, g, m in GRADES if score >= minimum)

        devices = [
            DeviceSummary(
                device_id=d.device_id,
                display_name=d.display_name,
                device_type=parse_device_type(d.user_agent),
                ip_address=d.ip_address,
                trusted_at=d.trusted_at,
                last_used_at=d.last_used_at,
                is_stale=now - d.last_used_at > STALE_DEVICE_AGE,
            )
            for d in self.list_trusted_devices(account_id)
        ]
        recent_failed_logins = len(
            self.login_history(account_id, success=False, days=RECENT_FAILURES_WINDOW.days, now=now)
        )

        return SecurityOverview(
            score=score,
            max_score=sum(f.max_points for f in factors),
            grade=grade,
            message=message,
            factors=factors,
            recommendations=self._recommendations(account, status, password_age, devices, recent_failed_logins),
            second_factor=status,
            trusted_devices=devices,
            recent_failed_logins=recent_failed_logins,
            is_verified=account.is_verified,
            account_locked=locked,
            password_changed_at=account.password_changed_at,
            last_login_at=account.last_login_at,
            created_at=account.created_at,
        )

    @staticmethod
    def _recommendations(
        account: Account,
        status: SecondFactorStatus,
        password_age: timedelta,
        devices: List[DeviceSummary],
        recent_failed_logins: int
    ) -> List[Recommendation]:
        recommendations = []

        if not status.enabled:
            recommendations.append(Recommendation(
                "high", "authentication", "Enable Two-Factor Authentication",
                "Add an extra layer of security to your account"
            ))
        if not account.is_verified:
            recommendations.append(Recommendation(
                "high", "verification", "Verify Your Email",
                "Confirm your email address to secure your account"
            ))
        if recent_failed_logins:
            recommendations.append(Recommendation(
                "high", "activity", "Review Failed Sign-ins",
                f"{recent_failed_logins} failed sign-in attempt(s) in the last {RECENT_FAILURES_WINDOW.days} days"
            ))
        if password_age > PASSWORD_MAX_AGE:
            recommendations.append(Recommendation(
                "medium", "password", "Update Your Password",
                f"Your password is {password_age.days} days old"
            ))
        if status.enabled and status.recovery_codes_unused < MIN_RECOVERY_CODES:
            recommendations.append(Recommendation(
                "medium", "recovery", "Regenerate Recovery Codes",
                f"You have only {status.recovery_codes_unused} recovery codes left"
            ))
        stale = sum(1 for d in devices if d.is_stale)
        if stale:
            recommendations.append(Recommendation(
                "low", "devices", "Review Trusted Devices",
                f"{stale} trusted device(s) haven't been used recently"
            ))
        return recommendations
