from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from datetime import timezone
from typing import Any, Callable, Dict, Optional

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import (
    AccountSuspendedError,
    AdminProfileNotFoundError,
    AuthenticationError,
    AuthorizationError,
    InvalidTokenError,
    MfaRequiredError,
    RoleMismatchError,
    TokenMissingError,
)
from app.core.logging_config import logger, set_user_context
from app.core.middleware import get_client_ip
from app.core.security import decode_token
from app.models.user import AdminProfile, User, UserRole, UserStatus

# auto_error=False so a missing header is reported as TOKEN_MISSING
security = HTTPBearer(auto_error=False)


async def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Dict[str, Any]:
    """Decoded claims of the bearer access token"""
    if credentials is None or not credentials.credentials:
        raise TokenMissingError()
    return decode_token(credentials.credentials)


async def get_current_user(
    payload: Dict[str, Any] = Depends(get_token_payload),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Get current authenticated user"""
    result = await db.execute(select(User).where(User.id == payload["sub"]))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found", code="USER_NOT_FOUND")

    if user.status == UserStatus.SUSPENDED:
        raise AccountSuspendedError()

    # Access tokens issued before the last password change are void
    if user.password_changed_at is not None:
        changed_at = user.password_changed_at.replace(tzinfo=timezone.utc).timestamp()
        if float(payload.get("iat", 0)) < changed_at:
            raise InvalidTokenError("Token issued before password change")

    set_user_context(str(user.id), user.role.value)
    return user


def require_role(role: UserRole) -> Callable:
    """
    Dependency factory restricting an endpoint to one role.

    Usage:
        @router.get("/requests")
        async def list_requests(user: User = Depends(require_role(UserRole.REPAIR_CENTER))):
            ...
    """
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role != role:
            logger.warning(
                f"Role mismatch: {current_user.role.value} tried a {role.value} endpoint",
                extra={"event_type": "role_mismatch", "required_role": role.value}
            )
            raise RoleMismatchError(role.value)
        return current_user

    role_checker.__name__ = f"require_{role.value}"
    return role_checker


get_current_buyer = require_role(UserRole.BUYER)
get_current_seller = require_role(UserRole.SELLER)
get_current_repair_center = require_role(UserRole.REPAIR_CENTER)


def check_admin_ip(request: Request) -> None:
    """Enforce ADMIN_IP_ALLOWLIST outside development. An empty list allows all."""
    allowlist = settings.ADMIN_IP_ALLOWLIST
    if not allowlist or settings.is_dev_mode():
        return
    client_ip = get_client_ip(request)
    if client_ip not in allowlist:
        logger.log_security_event("admin_ip_blocked", client_ip=client_ip)
        raise AuthorizationError("Access from this IP address is not allowed", code="IP_NOT_ALLOWED")


async def get_admin_user(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Admin role with an admin profile, from an allowed IP. Does not
    require the MFA claim; used by the MFA management endpoints.
    """
    if current_user.role != UserRole.ADMIN:
        raise RoleMismatchError(UserRole.ADMIN.value)
    check_admin_ip(request)

    result = await db.execute(select(AdminProfile).where(AdminProfile.user_id == current_user.id))
    if result.scalar_one_or_none() is None:
        raise AdminProfileNotFoundError()
    return current_user


async def get_current_admin(
    payload: Dict[str, Any] = Depends(get_token_payload),
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Admin whose session passed the second factor when MFA is enabled"""
    result = await db.execute(select(AdminProfile.mfa_enabled).where(AdminProfile.user_id == admin.id))
    if result.scalar_one() and not payload.get("mfa"):
        raise MfaRequiredError()
    return admin
