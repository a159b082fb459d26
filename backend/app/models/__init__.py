# Re-export all models for convenient imports
from app.models.user import User, UserRole, UserStatus, AdminProfile, AdminLevel
from app.models.business_profile import (
    SellerProfile,
    RepairCenterProfile,
    KycDocument,
    KycStatus,
    DocumentType,
)
from app.models.refresh_token import RefreshToken
from app.models.repair import RepairRequest, RepairQuote, RepairLog, RepairStatus, QuoteStatus
from app.models.audit_log import AuditLog

__all__ = [
    # User
    "User",
    "UserRole",
    "UserStatus",
    "AdminProfile",
    "AdminLevel",
    # Business / KYC
    "SellerProfile",
    "RepairCenterProfile",
    "KycDocument",
    "KycStatus",
    "DocumentType",
    # Auth
    "RefreshToken",
    # Repairs
    "RepairRequest",
    "RepairQuote",
    "RepairLog",
    "RepairStatus",
    "QuoteStatus",
    # Admin
    "AuditLog",
]
