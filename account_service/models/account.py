"""
Account model - identity and credential root
"""

from datetime import datetime
from sqlalchemy import Column, BigInteger, Integer, String, Boolean, DateTime, Enum, CheckConstraint
from sqlalchemy.orm import relationship
import enum

from account_service.core.database import Base


class AccountStatus(str, enum.Enum):
    """Account status"""
    ACTIVE = "active"
    SUSPENDED = "suspended"
    BANNED = "banned"
    PENDING = "pending"


class AccountRole(str, enum.Enum):
    """Account role"""
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


class Account(Base):
    """Account model - email/password identity with embedded lockout counters"""
    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint(
            "password_hash IS NOT NULL OR oauth_subject IS NOT NULL",
            name="ck_accounts_has_credential"
        ),
    )

    account_id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)  # Stored lowercased
    password_hash = Column(String(255), nullable=True)  # NULL for federated-only accounts
    name = Column(String(255), nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    role = Column(Enum(AccountRole), default=AccountRole.USER, nullable=False)
    status = Column(Enum(AccountStatus), default=AccountStatus.ACTIVE, nullable=False, index=True)
    oauth_provider = Column(String(50), nullable=True)  # 'google', NULL
    oauth_subject = Column(String(255), nullable=True)  # External provider user ID
    password_changed_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Email verification
    email_otp_hash = Column(String(64), nullable=True)
    email_otp_expires_at = Column(DateTime, nullable=True)

    # Password reset
    password_reset_token_hash = Column(String(64), nullable=True, index=True)
    password_reset_expires_at = Column(DateTime, nullable=True)

    # Account lockout (password failures)
    failed_login_attempts = Column(Integer, default=0, nullable=False)
    login_locked_until = Column(DateTime, nullable=True)

    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    second_factor = relationship(
        "SecondFactorConfig", back_populates="account", uselist=False, cascade="all, delete-orphan"
    )
    trusted_devices = relationship(
        "TrustedDevice", back_populates="account", cascade="all, delete-orphan",
        order_by="TrustedDevice.trusted_at"
    )
    login_events = relationship(
        "LoginEvent", back_populates="account", cascade="all, delete-orphan",
        order_by="LoginEvent.event_id"
    )
    refresh_tokens = relationship(
        "RefreshToken", back_populates="account", cascade="all, delete-orphan",
        order_by="RefreshToken.refresh_token_id"
    )

    @property
    def second_factor_enabled(self) -> bool:
        return bool(self.second_factor and self.second_factor.enabled)

    def __repr__(self):
        return f"<Account(account_id={self.account_id}, email='{self.email}', status='{self.status}')>"
