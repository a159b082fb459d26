from pydantic import AfterValidator, BaseModel, EmailStr, Field, field_validator
from typing import Annotated, Optional, Dict, Any
from datetime import datetime

from app.core.config import settings
from app.models.user import UserRole, UserStatus


def _normalize_email(value: str) -> str:
    return value.strip().lower()


# Emails are stored and looked up lowercased
NormalizedEmail = Annotated[EmailStr, AfterValidator(_normalize_email)]


class APIResponse(BaseModel):
    """Success envelope shared by every endpoint"""
    error: bool = False
    message: Optional[str] = None


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: NormalizedEmail
    password: str = Field(..., min_length=settings.MIN_PASSWORD_LENGTH, max_length=128)
    phone: Optional[str] = Field(None, max_length=20)

    # Seller / repair center business details
    business_name: Optional[str] = Field(None, max_length=255)
    business_address: Optional[str] = None
    tax_id: Optional[str] = Field(None, max_length=100)
    contact_phone: Optional[str] = Field(None, max_length=20)
    service_radius: Optional[float] = Field(None, ge=0)

    @field_validator('name', 'business_name')
    @classmethod
    def strip_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class LoginRequest(BaseModel):
    email: NormalizedEmail
    password: str = Field(..., min_length=1)
    device_id: Optional[str] = Field(None, max_length=255)


class VerifyMfaRequest(BaseModel):
    mfa_token: str
    code: str = Field(..., min_length=6, max_length=8)
    device_id: Optional[str] = Field(None, max_length=255)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)
    device_id: Optional[str] = Field(None, max_length=255)


class LogoutRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class EmailRequest(BaseModel):
    """Body of resend-verification and forgot-password"""
    email: NormalizedEmail


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=settings.MIN_PASSWORD_LENGTH, max_length=128)


class MfaCodeRequest(BaseModel):
    code: str = Field(..., min_length=6, max_length=8)


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    role: UserRole
    status: UserStatus
    email_verified_at: Optional[datetime] = None
    last_login: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class RegisterResponse(APIResponse):
    user: UserResponse


class TokenResponse(APIResponse):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class MfaChallengeResponse(APIResponse):
    """Returned by admin login when a TOTP code is still required"""
    require_mfa: bool = True
    mfa_token: str


class MfaSetupResponse(APIResponse):
    secret: str
    otpauth_url: str
    qr_code: str


class MeResponse(APIResponse):
    user: UserResponse
    profile: Optional[Dict[str, Any]] = None
