from sqlalchemy import Column, String, DateTime, Text, ForeignKey, JSON
from sqlalchemy.orm import relationship
from datetime import datetime

from app.core.database import Base
from app.core.types import GUID, generate_uuid


class AuditLog(Base):
    """Audit trail of admin and repair-center actions"""
    __tablename__ = "audit_logs"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id"), nullable=False, index=True)  # actor

    # Action details
    action = Column(String(100), nullable=False, index=True)  # e.g. 'user_updated', 'kyc_approved', 'repair_accepted'
    target_type = Column(String(50), nullable=False)  # e.g. 'user', 'repair_request', 'kyc'
    target_id = Column(GUID, nullable=True, index=True)

    # State of the target before and after the action
    before_snapshot = Column(JSON, nullable=True)
    after_snapshot = Column(JSON, nullable=True)

    # Request metadata
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    actor = relationship("User", foreign_keys=[user_id])

    def __repr__(self):
        return f"<AuditLog {self.action} by {self.user_id}>"
