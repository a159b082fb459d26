# Pydantic schemas
from app.schemas.auth import (
    APIResponse,
    RegisterRequest,
    LoginRequest,
    VerifyMfaRequest,
    RefreshRequest,
    LogoutRequest,
    EmailRequest,
    ResetPasswordRequest,
    MfaCodeRequest,
    UserResponse,
    TokenResponse,
    MfaChallengeResponse,
    MfaSetupResponse,
)
from app.schemas.kyc import KycSubmitRequest, KycRejectRequest, KycStatusResponse
from app.schemas.repair import (
    RepairRequestCreate,
    QuoteCreate,
    StatusUpdateRequest,
    RepairRequestDetail,
    QuoteResponse,
)
from app.schemas.admin import AdminUserCreate, AdminUserUpdate, AuditLogResponse
