"""
Refresh token model - active refresh set per account
"""

from datetime import datetime
from sqlalchemy import Column, BigInteger, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from account_service.core.database import Base


class RefreshToken(Base):
    """Refresh token membership record (token stored as SHA-256 digest)"""
    __tablename__ = "refresh_tokens"

    refresh_token_id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, index=True, autoincrement=True)
    account_id = Column(BigInteger, ForeignKey("accounts.account_id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    jti = Column(String(64), nullable=False)
    issued_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    account = relationship("Account", back_populates="refresh_tokens")

    def __repr__(self):
        return f"<RefreshToken(account_id={self.account_id}, jti='{self.jti}')>"
