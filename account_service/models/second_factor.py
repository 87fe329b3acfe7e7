"""
Second factor (TOTP) models
"""

from sqlalchemy import Column, BigInteger, Integer, Text, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from account_service.core.database import Base


class SecondFactorConfig(Base):
    """Second factor configuration - one per account"""
    __tablename__ = "second_factor_configs"
    __table_args__ = (
        UniqueConstraint('account_id', name='uq_second_factor_configs_account'),
    )

    config_id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, index=True, autoincrement=True)
    account_id = Column(BigInteger, ForeignKey("accounts.account_id", ondelete="CASCADE"), nullable=False)
    enabled = Column(Boolean, default=False, nullable=False, index=True)
    secret_encrypted = Column(Text, nullable=True)  # Set only once enabled
    pending_secret_encrypted = Column(Text, nullable=True)  # Set only during enrollment
    pending_started_at = Column(DateTime, nullable=True)
    enrolled_at = Column(DateTime, nullable=True)
    last_used_at = Column(DateTime, nullable=True)
    usage_count = Column(Integer, default=0, nullable=False)
    last_used_step = Column(BigInteger, nullable=True)  # Newest accepted TOTP time step
    failed_attempts = Column(Integer, default=0, nullable=False)
    locked_until = Column(DateTime, nullable=True)

    # Relationships
    account = relationship("Account", back_populates="second_factor")
    recovery_codes = relationship(
        "RecoveryCode", back_populates="config", cascade="all, delete-orphan",
        order_by="RecoveryCode.position"
    )

    def __repr__(self):
        return f"<SecondFactorConfig(account_id={self.account_id}, enabled={self.enabled})>"


class RecoveryCode(Base):
    """Single-use recovery code, stored as a one-way hash"""
    __tablename__ = "recovery_codes"

    recovery_code_id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, index=True, autoincrement=True)
    config_id = Column(BigInteger, ForeignKey("second_factor_configs.config_id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    code_hash = Column(String(64), nullable=False)
    used = Column(Boolean, default=False, nullable=False)
    used_at = Column(DateTime, nullable=True)

    config = relationship("SecondFactorConfig", back_populates="recovery_codes")

    def __repr__(self):
        return f"<RecoveryCode(config_id={self.config_id}, position={self.position}, used={self.used})>"
