from sqlalchemy import Column, String, DateTime, Enum as SQLEnum, Text, Float, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.core.database import Base
from app.core.types import GUID, generate_uuid


class KycStatus(str, enum.Enum):
    """Business verification state of a seller or repair center"""
    NOT_SUBMITTED = "not_submitted"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class DocumentType(str, enum.Enum):
    ID_CARD = "id_card"
    BUSINESS_LICENSE = "business_license"
    TAX_CERTIFICATE = "tax_certificate"
    PROOF_OF_ADDRESS = "proof_of_address"
    OTHER = "other"


class SellerProfile(Base):
    """Business details of a seller account"""
    __tablename__ = "seller_profiles"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    business_name = Column(String(255), nullable=False)
    business_address = Column(Text, nullable=True)
    tax_id = Column(String(100), nullable=True)
    contact_phone = Column(String(20), nullable=True)

    kyc_status = Column(SQLEnum(KycStatus), default=KycStatus.NOT_SUBMITTED, nullable=False, index=True)
    kyc_submitted_at = Column(DateTime, nullable=True)
    kyc_reviewed_by = Column(GUID, ForeignKey("users.id"), nullable=True)
    kyc_reviewed_at = Column(DateTime, nullable=True)
    kyc_rejection_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="seller_profile", foreign_keys=[user_id])

    def __repr__(self):
        return f"<SellerProfile {self.business_name}>"


class RepairCenterProfile(Base):
    """Business details of a repair center account"""
    __tablename__ = "repair_center_profiles"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    business_name = Column(String(255), nullable=False)
    business_address = Column(Text, nullable=True)
    tax_id = Column(String(100), nullable=True)
    contact_phone = Column(String(20), nullable=True)
    service_radius = Column(Float, nullable=True)  # km

    kyc_status = Column(SQLEnum(KycStatus), default=KycStatus.NOT_SUBMITTED, nullable=False, index=True)
    kyc_submitted_at = Column(DateTime, nullable=True)
    kyc_reviewed_by = Column(GUID, ForeignKey("users.id"), nullable=True)
    kyc_reviewed_at = Column(DateTime, nullable=True)
    kyc_rejection_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="repair_center_profile", foreign_keys=[user_id])
    repair_requests = relationship("RepairRequest", back_populates="repair_center")

    def __repr__(self):
        return f"<RepairCenterProfile {self.business_name}>"


class KycDocument(Base):
    """A document uploaded as part of a KYC application"""
    __tablename__ = "kyc_documents"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    document_type = Column(SQLEnum(DocumentType), nullable=False)
    document_url = Column(Text, nullable=False)
    status = Column(SQLEnum(KycStatus), default=KycStatus.PENDING, nullable=False)

    reviewed_by = Column(GUID, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<KycDocument {self.document_type.value if self.document_type else '-'} {self.user_id}>"
