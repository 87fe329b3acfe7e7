"""
Login event model - bounded per-account login history
"""

from datetime import datetime
from sqlalchemy import Column, BigInteger, Integer, String, Text, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from account_service.core.database import Base


class LoginEvent(Base):
    """Append-only login attempt record"""
    __tablename__ = "login_events"
    __table_args__ = (
        Index('idx_login_events_account_timestamp', 'account_id', 'timestamp'),
    )

    event_id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, index=True, autoincrement=True)
    account_id = Column(BigInteger, ForeignKey("accounts.account_id", ondelete="CASCADE"), nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    success = Column(Boolean, default=True, nullable=False)
    failure_reason = Column(String(100), nullable=True)  # 'invalid_credentials', 'second_factor_required', ...
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    device_name = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)

    account = relationship("Account", back_populates="login_events")

    def __repr__(self):
        return f"<LoginEvent(account_id={self.account_id}, success={self.success}, reason='{self.failure_reason}')>"
