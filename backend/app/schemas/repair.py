from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from app.models.repair import RepairStatus, QuoteStatus
from app.schemas.auth import APIResponse
from app.utils.pagination import PaginationMeta


# ==================== Requests ====================

class RepairRequestCreate(BaseModel):
    repair_center_id: str
    device_type: str = Field(..., min_length=1, max_length=100)
    brand: Optional[str] = Field(None, max_length=100)
    model: Optional[str] = Field(None, max_length=100)
    issue_description: str = Field(..., min_length=1)
    pickup_required: bool = False
    pickup_address: Optional[str] = None
    scheduled_date: Optional[datetime] = None


class QuoteCreate(BaseModel):
    """Body of a repair center accepting a request: the quote it issues"""
    labor_cost: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    parts_cost: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    tax_amount: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    estimated_days: int = Field(..., ge=1, le=365)
    notes: Optional[str] = None


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class StatusUpdateRequest(BaseModel):
    status: RepairStatus
    notes: Optional[str] = None


class CompleteRequest(BaseModel):
    notes: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


# ==================== Responses ====================

class QuoteResponse(BaseModel):
    id: str
    repair_request_id: str
    repair_center_id: str
    labor_cost: Decimal
    parts_cost: Decimal
    tax_amount: Decimal
    total_cost: Decimal
    estimated_days: Optional[int] = None
    valid_until: datetime
    status: QuoteStatus
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class RepairLogResponse(BaseModel):
    id: str
    user_id: Optional[str] = None
    from_status: Optional[RepairStatus] = None
    status: RepairStatus
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class RepairRequestSummary(BaseModel):
    id: str
    user_id: str
    repair_center_id: Optional[str] = None
    device_type: str
    brand: Optional[str] = None
    model: Optional[str] = None
    issue_description: str
    status: RepairStatus
    pickup_required: bool
    pickup_address: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RepairRequestDetail(RepairRequestSummary):
    quotes: List[QuoteResponse] = []
    logs: List[RepairLogResponse] = []


class RepairRequestResponse(APIResponse):
    repair_request: RepairRequestDetail


class RepairRequestListResponse(APIResponse):
    repair_requests: List[RepairRequestSummary]
    pagination: PaginationMeta


class QuoteIssuedResponse(APIResponse):
    repair_request: RepairRequestSummary
    quote: QuoteResponse
