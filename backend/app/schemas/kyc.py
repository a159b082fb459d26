from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from app.models.business_profile import KycStatus, DocumentType
from app.models.user import UserRole
from app.schemas.auth import APIResponse
from app.utils.pagination import PaginationMeta


class KycDocumentIn(BaseModel):
    document_type: DocumentType
    document_url: str = Field(..., min_length=1, max_length=2048)


class KycSubmitRequest(BaseModel):
    """Business details (optional updates) plus at least one supporting document"""
    business_name: Optional[str] = Field(None, min_length=1, max_length=255)
    business_address: Optional[str] = None
    tax_id: Optional[str] = Field(None, max_length=100)
    contact_phone: Optional[str] = Field(None, max_length=20)
    service_radius: Optional[float] = Field(None, ge=0)
    documents: List[KycDocumentIn] = Field(..., min_length=1)


class KycRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class KycDocumentResponse(BaseModel):
    id: str
    document_type: DocumentType
    document_url: str
    status: KycStatus
    reviewed_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class KycStatusResponse(APIResponse):
    kyc_status: KycStatus
    business_name: str
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    documents: List[KycDocumentResponse] = []


class KycApplication(BaseModel):
    """A seller or repair center application as seen by admins"""
    user_id: str
    name: str
    email: str
    role: UserRole
    business_name: str
    business_address: Optional[str] = None
    tax_id: Optional[str] = None
    kyc_status: KycStatus
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    documents: List[KycDocumentResponse] = []


class KycApplicationResponse(APIResponse):
    application: KycApplication


class KycApplicationListResponse(APIResponse):
    applications: List[KycApplication]
    pagination: PaginationMeta
