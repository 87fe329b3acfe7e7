"""
Trusted device model
"""

from datetime import datetime
from sqlalchemy import Column, BigInteger, Integer, String, Text, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from account_service.core.database import Base


class TrustedDevice(Base):
    """Client fingerprint allowed to skip the second factor"""
    __tablename__ = "trusted_devices"
    __table_args__ = (
        Index('idx_trusted_devices_account_fingerprint', 'account_id', 'fingerprint'),
    )

    device_id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, index=True, autoincrement=True)
    account_id = Column(BigInteger, ForeignKey("accounts.account_id", ondelete="CASCADE"), nullable=False)
    fingerprint = Column(String(64), nullable=False)
    display_name = Column(String(255), nullable=False)
    user_agent = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)
    trusted_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_used_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    account = relationship("Account", back_populates="trusted_devices")

    def __repr__(self):
        return f"<TrustedDevice(account_id={self.account_id}, name='{self.display_name}', active={self.is_active})>"
