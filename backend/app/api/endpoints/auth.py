"""
Authentication endpoints, one router per role.

    /api/buyer/auth, /api/seller/auth, /api/repair-center/auth, /api/admin/auth

All four share the same handlers; the role decides which accounts may
log in on the router, whether self-registration exists (not for admins)
and whether the MFA endpoints are mounted (admins only).
"""
from datetime import datetime
from typing import Optional, Union

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import ValidationError
from app.core.logging_config import logger
from app.core.middleware import get_client_ip
from app.core.security import create_mfa_challenge_token
from app.models.user import User, UserRole
from app.modules.auth.dependencies import get_admin_user, get_current_admin, require_role
from app.schemas.auth import (
    APIResponse,
    EmailRequest,
    LoginRequest,
    LogoutRequest,
    MeResponse,
    MfaChallengeResponse,
    MfaCodeRequest,
    MfaSetupResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    TokenResponse,
    UserResponse,
    VerifyMfaRequest,
)
from app.services import auth_service, kyc_service
from app.services.auth_service import ClientInfo, TokenPair
from app.services.email_service import email_service

FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, a password reset link has been sent"
RESEND_VERIFICATION_MESSAGE = "If the account exists and is unverified, a new verification email has been sent"


def _client_info(request: Request, device_id: Optional[str] = None) -> ClientInfo:
    return ClientInfo(
        device_id=device_id,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


def _token_response(pair: TokenPair, user: User, message: Optional[str] = None) -> TokenResponse:
    return TokenResponse(
        message=message,
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
        user=UserResponse.model_validate(user),
    )


async def _profile_summary(db: AsyncSession, user: User) -> Optional[dict]:
    if user.role == UserRole.ADMIN:
        profile = await auth_service.get_admin_profile(db, user.id)
        return {"admin_level": profile.admin_level.value, "mfa_enabled": profile.mfa_enabled}
    if user.role in kyc_service.BUSINESS_ROLES:
        profile = await kyc_service.get_business_profile(db, user)
        summary = {
            "id": profile.id,
            "business_name": profile.business_name,
            "business_address": profile.business_address,
            "tax_id": profile.tax_id,
            "contact_phone": profile.contact_phone,
            "kyc_status": profile.kyc_status.value,
        }
        if user.role == UserRole.REPAIR_CENTER:
            summary["service_radius"] = profile.service_radius
        return summary
    return None


def build_auth_router(role: UserRole) -> APIRouter:
    """Create the auth router for one role"""
    router = APIRouter()
    current_user_dep = get_current_admin if role == UserRole.ADMIN else require_role(role)
    portal = role.portal

    if role != UserRole.ADMIN:
        @router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
        async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
            """Create an unverified account and email a verification link"""
            business = None
            if role in kyc_service.BUSINESS_ROLES:
                if not body.business_name:
                    raise ValidationError("Business name is required", field="business_name")
                business = body.model_dump(include={
                    "business_name", "business_address", "tax_id", "contact_phone", "service_radius"
                })

            user, verification_token = await auth_service.register_user(
                db, role, body.name, body.email, body.password, body.phone, business
            )
            await db.commit()

            await email_service.send_verification_email(user.email, user.name, verification_token, portal)
            return RegisterResponse(
                message="Registration successful. Please check your email to verify your account.",
                user=UserResponse.model_validate(user),
            )

    @router.post("/login", response_model=Union[MfaChallengeResponse, TokenResponse])
    async def login(request: Request, body: LoginRequest, db: AsyncSession = Depends(get_db)):
        """Exchange credentials for a token pair (or an MFA challenge for admins)"""
        user = await auth_service.authenticate(db, body.email, body.password, role)

        if role == UserRole.ADMIN:
            profile = await auth_service.get_admin_profile(db, user.id)
            if profile.mfa_enabled:
                logger.log_auth_event("login", True, user.email, "mfa_pending", role=role.value)
                return MfaChallengeResponse(
                    message="MFA verification required",
                    mfa_token=create_mfa_challenge_token(user.id),
                )

        user.last_login = datetime.utcnow()
        pair, _ = await auth_service.issue_token_pair(db, user, _client_info(request, body.device_id))
        await db.commit()

        logger.log_auth_event("login", True, user.email, role=role.value, client_ip=get_client_ip(request))
        return _token_response(pair, user)

    if role == UserRole.ADMIN:
        @router.post("/verify-mfa", response_model=TokenResponse)
        async def verify_mfa(request: Request, body: VerifyMfaRequest, db: AsyncSession = Depends(get_db)):
            """Complete an admin login with the TOTP code"""
            user = await auth_service.complete_mfa_login(db, body.mfa_token, body.code)
            user.last_login = datetime.utcnow()
            pair, _ = await auth_service.issue_token_pair(
                db, user, _client_info(request, body.device_id), mfa_verified=True
            )
            await db.commit()
            return _token_response(pair, user)

    async def refresh(request: Request, body: RefreshRequest, db: AsyncSession = Depends(get_db)):
        """Rotate a refresh token into a new token pair"""
        pair, user = await auth_service.rotate_refresh_token(
            db, body.refresh_token, role, _client_info(request, body.device_id)
        )
        await db.commit()
        return _token_response(pair, user)

    router.add_api_route("/refresh", refresh, methods=["POST"], response_model=TokenResponse)
    # Older clients call /refresh-token
    router.add_api_route("/refresh-token", refresh, methods=["POST"], response_model=TokenResponse,
                         include_in_schema=False)

    @router.post("/logout", response_model=APIResponse)
    async def logout(body: LogoutRequest, db: AsyncSession = Depends(get_db)):
        """Revoke the given refresh token"""
        revoked = await auth_service.revoke_refresh_token(db, body.refresh_token)
        await db.commit()
        logger.log_auth_event("logout", True, reason=None if revoked else "token_already_inactive", role=role.value)
        return APIResponse(message="Logged out successfully")

    @router.get("/verify-email/{token}", response_model=RegisterResponse)
    async def verify_email(token: str, db: AsyncSession = Depends(get_db)):
        user = await auth_service.verify_email(db, token)
        await db.commit()
        return RegisterResponse(message="Email verified successfully", user=UserResponse.model_validate(user))

    @router.post("/resend-verification", response_model=APIResponse)
    async def resend_verification(body: EmailRequest, db: AsyncSession = Depends(get_db)):
        result = await auth_service.resend_verification(db, body.email, role)
        if result:
            user, token = result
            await db.commit()
            await email_service.send_verification_email(user.email, user.name, token, portal)
        return APIResponse(message=RESEND_VERIFICATION_MESSAGE)

    @router.post("/forgot-password", response_model=APIResponse)
    async def forgot_password(body: EmailRequest, db: AsyncSession = Depends(get_db)):
        """Always answers the same way so account existence is not revealed"""
        result = await auth_service.issue_password_reset(db, body.email, role)
        if result:
            user, token = result
            await db.commit()
            await email_service.send_password_reset_email(user.email, user.name, token, portal)
        return APIResponse(message=FORGOT_PASSWORD_MESSAGE)

    @router.post("/reset-password", response_model=APIResponse)
    async def reset_password(body: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
        await auth_service.reset_password(db, body.token, body.password, role)
        await db.commit()
        return APIResponse(message="Password has been reset. Please log in again.")

    @router.get("/me", response_model=MeResponse)
    async def me(current_user: User = Depends(current_user_dep), db: AsyncSession = Depends(get_db)):
        return MeResponse(
            user=UserResponse.model_validate(current_user),
            profile=await _profile_summary(db, current_user),
        )

    if role == UserRole.ADMIN:
        _add_mfa_routes(router)

    return router


def _add_mfa_routes(router: APIRouter) -> None:
    @router.get("/mfa-setup", response_model=MfaSetupResponse)
    async def mfa_setup(admin: User = Depends(get_admin_user), db: AsyncSession = Depends(get_db)):
        """Generate a TOTP secret for the admin's authenticator app"""
        profile = await auth_service.get_admin_profile(db, admin.id)
        if profile.mfa_enabled:
            raise ValidationError("MFA is already enabled", code="MFA_ALREADY_ENABLED")
        setup = auth_service.start_mfa_setup(profile, admin.email)
        await db.commit()
        return MfaSetupResponse(message="Scan the QR code, then confirm with a code", **setup)

    @router.post("/mfa-enable", response_model=APIResponse)
    async def mfa_enable(body: MfaCodeRequest, admin: User = Depends(get_admin_user),
                         db: AsyncSession = Depends(get_db)):
        profile = await auth_service.get_admin_profile(db, admin.id)
        await auth_service.enable_mfa(db, profile, body.code)
        await db.commit()
        logger.log_auth_event("mfa_enable", True, admin.email)
        return APIResponse(message="MFA enabled. Please log in again.")

    @router.post("/mfa-disable", response_model=APIResponse)
    async def mfa_disable(body: MfaCodeRequest, admin: User = Depends(get_current_admin),
                          db: AsyncSession = Depends(get_db)):
        profile = await auth_service.get_admin_profile(db, admin.id)
        auth_service.disable_mfa(profile, body.code)
        await db.commit()
        logger.log_auth_event("mfa_disable", True, admin.email)
        return APIResponse(message="MFA disabled")
