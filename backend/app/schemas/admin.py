from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from app.core.config import settings
from app.models.user import UserRole, UserStatus, AdminLevel
from app.models.business_profile import KycStatus
from app.schemas.auth import APIResponse, NormalizedEmail, UserResponse
from app.utils.pagination import PaginationMeta


# ==================== User Management Schemas ====================

class AdminUserResponse(UserResponse):
    """User as listed for admins, with the business name and KYC state where relevant"""
    business_name: Optional[str] = None
    kyc_status: Optional[KycStatus] = None
    admin_level: Optional[AdminLevel] = None


class AdminUserCreate(BaseModel):
    """Create a user of any role. Admin-created accounts skip email verification."""
    name: str = Field(..., min_length=1, max_length=255)
    email: NormalizedEmail
    password: str = Field(..., min_length=settings.MIN_PASSWORD_LENGTH, max_length=128)
    role: UserRole
    phone: Optional[str] = Field(None, max_length=20)
    status: UserStatus = UserStatus.ACTIVE
    business_name: Optional[str] = Field(None, min_length=1, max_length=255)
    admin_level: AdminLevel = AdminLevel.ADMIN


class AdminUserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[NormalizedEmail] = None
    phone: Optional[str] = Field(None, max_length=20)
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None


class AdminPasswordReset(BaseModel):
    new_password: str = Field(..., min_length=settings.MIN_PASSWORD_LENGTH, max_length=128)


class AdminUserDetailResponse(APIResponse):
    user: AdminUserResponse


class AdminUserListResponse(APIResponse):
    users: List[AdminUserResponse]
    pagination: PaginationMeta


# ==================== Audit Log Schemas ====================

class AuditLogResponse(BaseModel):
    id: str
    user_id: str
    actor_email: Optional[str] = None
    actor_name: Optional[str] = None
    action: str
    target_type: str
    target_id: Optional[str] = None
    before_snapshot: Optional[Dict[str, Any]] = None
    after_snapshot: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime


class AuditLogListResponse(APIResponse):
    logs: List[AuditLogResponse]
    pagination: PaginationMeta


class AuditActionsResponse(APIResponse):
    actions: List[str]
    target_types: List[str]
