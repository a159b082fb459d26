from sqlalchemy import Column, String, Boolean, DateTime, Enum as SQLEnum, Integer, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.core.database import Base
from app.core.types import GUID, Money, generate_uuid


class RepairStatus(str, enum.Enum):
    """Repair request lifecycle"""
    PENDING = "pending"
    QUOTED = "quoted"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    AWAITING_PARTS = "awaiting_parts"
    REPAIRED = "repaired"
    QUALITY_CHECK = "quality_check"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class QuoteStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class RepairRequest(Base):
    """A buyer's request to have a device repaired by a repair center"""
    __tablename__ = "repair_requests"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    repair_center_id = Column(GUID, ForeignKey("repair_center_profiles.id"), nullable=True, index=True)

    # Device
    device_type = Column(String(100), nullable=False)
    brand = Column(String(100), nullable=True)
    model = Column(String(100), nullable=True)
    issue_description = Column(Text, nullable=False)

    status = Column(SQLEnum(RepairStatus), default=RepairStatus.PENDING, nullable=False, index=True)

    # Logistics
    pickup_required = Column(Boolean, default=False, nullable=False)
    pickup_address = Column(Text, nullable=True)
    scheduled_date = Column(DateTime, nullable=True)
    completed_date = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", foreign_keys=[user_id])
    repair_center = relationship("RepairCenterProfile", back_populates="repair_requests")
    quotes = relationship(
        "RepairQuote", back_populates="repair_request",
        cascade="all, delete-orphan", order_by="RepairQuote.created_at"
    )
    logs = relationship(
        "RepairLog", back_populates="repair_request",
        cascade="all, delete-orphan", order_by="RepairLog.created_at"
    )

    def __repr__(self):
        return f"<RepairRequest {self.id} {self.status.value if self.status else '-'}>"


class RepairQuote(Base):
    """Priced estimate (labor + parts + tax) issued by a repair center"""
    __tablename__ = "repair_quotes"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    repair_request_id = Column(GUID, ForeignKey("repair_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    repair_center_id = Column(GUID, ForeignKey("repair_center_profiles.id"), nullable=False, index=True)

    labor_cost = Column(Money, nullable=False)
    parts_cost = Column(Money, nullable=False)
    tax_amount = Column(Money, nullable=False, default=0)
    total_cost = Column(Money, nullable=False)
    estimated_days = Column(Integer, nullable=True)
    valid_until = Column(DateTime, nullable=False)

    status = Column(SQLEnum(QuoteStatus), default=QuoteStatus.PENDING, nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    repair_request = relationship("RepairRequest", back_populates="quotes")

    def is_expired(self, now: datetime = None) -> bool:
        return (now or datetime.utcnow()) > self.valid_until

    def __repr__(self):
        return f"<RepairQuote {self.id} {self.total_cost}>"


class RepairLog(Base):
    """One row per status change of a repair request"""
    __tablename__ = "repair_logs"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    repair_request_id = Column(GUID, ForeignKey("repair_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(GUID, ForeignKey("users.id"), nullable=True)

    from_status = Column(SQLEnum(RepairStatus), nullable=True)
    status = Column(SQLEnum(RepairStatus), nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    repair_request = relationship("RepairRequest", back_populates="logs")

    def __repr__(self):
        return f"<RepairLog {self.repair_request_id} -> {self.status.value if self.status else '-'}>"
