from sqlalchemy import Column, String, Boolean, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime

from app.core.database import Base
from app.core.types import GUID, generate_uuid


class RefreshToken(Base):
    """
    Server-side record of an issued refresh token.

    The raw token is never stored, only its SHA-256 hash. Every token
    issued by rotation shares the family_id of the login that started the
    chain, so presenting a revoked token can revoke the whole chain.
    """
    __tablename__ = "refresh_tokens"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    family_id = Column(GUID, nullable=False, index=True)

    # Client metadata
    device_id = Column(String(255), nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    # Admin sessions remember whether the second factor was passed
    mfa_verified = Column(Boolean, default=False, nullable=False)

    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    replaced_by_id = Column(GUID, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="refresh_tokens")

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def is_expired(self, now: datetime = None) -> bool:
        return (now or datetime.utcnow()) >= self.expires_at

    def __repr__(self):
        return f"<RefreshToken {self.id} user={self.user_id} family={self.family_id}>"
