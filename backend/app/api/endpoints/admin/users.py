"""
Admin User Management endpoints.
"""
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from sqlalchemy.orm import selectinload
from datetime import datetime
from typing import Dict, List, Optional

from app.core.database import get_db
from app.core.exceptions import EmailExistsError, UserNotFoundError, ValidationError
from app.core.logging_config import logger
from app.core.security import get_password_hash
from app.core.types import generate_uuid
from app.models import (
    AdminProfile, AuditLog, RepairCenterProfile, SellerProfile, User, UserRole, UserStatus
)
from app.modules.auth.dependencies import get_current_admin
from app.schemas.admin import (
    AdminPasswordReset, AdminUserCreate, AdminUserDetailResponse, AdminUserListResponse,
    AdminUserResponse, AdminUserUpdate, AuditLogListResponse,
)
from app.schemas.auth import APIResponse
from app.services import auth_service
from app.services.audit_service import record_audit, snapshot
from app.api.endpoints.admin.audit_logs import to_audit_log_response
from app.utils.pagination import paginate

router = APIRouter()

_USER_AUDIT_FIELDS = ("name", "email", "phone", "role", "status", "email_verified_at")


async def _load_extras(db: AsyncSession, user_ids: List[str]) -> Dict[str, dict]:
    """business_name / kyc_status / admin_level per user, fetched in one query per profile table"""
    extras: Dict[str, dict] = {uid: {} for uid in user_ids}
    if not user_ids:
        return extras

    for model in (SellerProfile, RepairCenterProfile):
        result = await db.execute(select(model).where(model.user_id.in_(user_ids)))
        for profile in result.scalars().all():
            extras[profile.user_id].update(business_name=profile.business_name, kyc_status=profile.kyc_status)

    result = await db.execute(select(AdminProfile).where(AdminProfile.user_id.in_(user_ids)))
    for profile in result.scalars().all():
        extras[profile.user_id]["admin_level"] = profile.admin_level

    return extras


def _to_response(user: User, extra: dict) -> AdminUserResponse:
    return AdminUserResponse.model_validate(user).model_copy(update=extra)


async def _user_response(db: AsyncSession, user: User) -> AdminUserResponse:
    extras = await _load_extras(db, [user.id])
    return _to_response(user, extras[user.id])


async def _get_user_or_404(db: AsyncSession, user_id: str) -> User:
    user = await auth_service.get_user_by_id(db, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


async def _ensure_role_profile(
    db: AsyncSession,
    user: User,
    business_name: Optional[str] = None,
    admin_level=None,
) -> None:
    """Give the user the profile row its role needs, if it does not have one yet"""
    if user.role == UserRole.ADMIN:
        existing = await db.execute(select(AdminProfile).where(AdminProfile.user_id == user.id))
        if existing.scalar_one_or_none() is None:
            profile = AdminProfile(user_id=user.id)
            if admin_level is not None:
                profile.admin_level = admin_level
            db.add(profile)
    elif user.role in (UserRole.SELLER, UserRole.REPAIR_CENTER):
        model = SellerProfile if user.role == UserRole.SELLER else RepairCenterProfile
        existing = await db.execute(select(model).where(model.user_id == user.id))
        if existing.scalar_one_or_none() is None:
            db.add(model(user_id=user.id, business_name=business_name or user.name, contact_phone=user.phone))


@router.get("", response_model=AdminUserListResponse)
async def list_users(
    page: int = Query(1),
    limit: int = Query(10),
    search: Optional[str] = None,
    role: Optional[UserRole] = None,
    status: Optional[UserStatus] = None,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_admin)
):
    """List all users with filtering and pagination"""
    query = select(User)

    if search:
        search_term = f"%{search.strip()}%"
        query = query.where(or_(
            User.email.ilike(search_term),
            User.name.ilike(search_term),
            User.phone.ilike(search_term),
        ))
    if role is not None:
        query = query.where(User.role == role)
    if status is not None:
        query = query.where(User.status == status)

    page_data = await paginate(db, query.order_by(User.created_at.desc()), page, limit)
    users: List[User] = page_data["items"]
    extras = await _load_extras(db, [u.id for u in users])

    return AdminUserListResponse(
        users=[_to_response(u, extras[u.id]) for u in users],
        pagination=page_data["pagination"],
    )


@router.get("/{user_id}", response_model=AdminUserDetailResponse)
async def get_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_admin)
):
    user = await _get_user_or_404(db, user_id)
    return AdminUserDetailResponse(user=await _user_response(db, user))


@router.post("", response_model=AdminUserDetailResponse, status_code=201)
async def create_user(
    body: AdminUserCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_admin)
):
    """Create a user of any role. The account is treated as email-verified."""
    if body.role in (UserRole.SELLER, UserRole.REPAIR_CENTER) and not body.business_name:
        raise ValidationError("Business name is required", field="business_name")
    if await auth_service.get_user_by_email(db, body.email):
        raise EmailExistsError()

    user = User(
        id=generate_uuid(),
        name=body.name,
        email=body.email,
        hashed_password=get_password_hash(body.password),
        phone=body.phone,
        role=body.role,
        status=body.status,
        email_verified_at=datetime.utcnow(),
    )
    db.add(user)
    await _ensure_role_profile(db, user, body.business_name, body.admin_level)
    await db.flush()

    await record_audit(
        db, current_admin.id, "user_created", "user", user.id,
        after=snapshot(user, _USER_AUDIT_FIELDS), request=request,
    )
    await db.commit()

    logger.info(
        f"Admin {current_admin.email} created {body.role.value} account {user.email}",
        extra={"event_type": "admin_user_created"}
    )
    return AdminUserDetailResponse(message="User created", user=await _user_response(db, user))


@router.put("/{user_id}", response_model=AdminUserDetailResponse)
async def update_user(
    user_id: str,
    body: AdminUserUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_admin)
):
    """Update user details, role or status"""
    user = await _get_user_or_404(db, user_id)
    changes = body.model_dump(exclude_unset=True, exclude_none=True)

    if user.id == current_admin.id:
        if changes.get("status") not in (None, UserStatus.ACTIVE):
            raise ValidationError("You cannot suspend your own account", code="CANNOT_MODIFY_SELF")
        if changes.get("role") not in (None, UserRole.ADMIN):
            raise ValidationError("You cannot change your own role", code="CANNOT_MODIFY_SELF")

    if "email" in changes and changes["email"] != user.email:
        if await auth_service.get_user_by_email(db, changes["email"]):
            raise EmailExistsError()

    before = snapshot(user, _USER_AUDIT_FIELDS)
    was_suspended = user.status == UserStatus.SUSPENDED

    for field, value in changes.items():
        setattr(user, field, value)
    if "role" in changes:
        await _ensure_role_profile(db, user)

    revoked = 0
    if user.status == UserStatus.SUSPENDED and not was_suspended:
        revoked = await auth_service.revoke_all_user_tokens(db, user.id)
        logger.log_security_event("user_suspended", user_id=user.id, by=current_admin.id, tokens_revoked=revoked)

    await record_audit(
        db, current_admin.id, "user_updated", "user", user.id,
        before=before, after=snapshot(user, _USER_AUDIT_FIELDS), request=request,
    )
    await db.commit()

    return AdminUserDetailResponse(message="User updated", user=await _user_response(db, user))


@router.post("/{user_id}/reset-password", response_model=APIResponse)
async def reset_user_password(
    user_id: str,
    body: AdminPasswordReset,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_admin)
):
    """Set a new password; the user's existing sessions are ended"""
    user = await _get_user_or_404(db, user_id)
    revoked = await auth_service.set_password(db, user, body.new_password)

    await record_audit(
        db, current_admin.id, "user_password_reset", "user", user.id,
        after={"sessions_revoked": revoked}, request=request,
    )
    await db.commit()
    return APIResponse(message="Password reset successfully")


@router.delete("/{user_id}", response_model=APIResponse)
async def delete_user(
    user_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_admin)
):
    """Soft delete: the account is suspended and signed out, its data kept"""
    user = await _get_user_or_404(db, user_id)
    if user.id == current_admin.id:
        raise ValidationError("You cannot delete your own account", code="CANNOT_MODIFY_SELF")

    before = snapshot(user, _USER_AUDIT_FIELDS)
    user.status = UserStatus.SUSPENDED
    revoked = await auth_service.revoke_all_user_tokens(db, user.id)

    await record_audit(
        db, current_admin.id, "user_deleted", "user", user.id,
        before=before, after={**snapshot(user, _USER_AUDIT_FIELDS), "sessions_revoked": revoked},
        request=request,
    )
    await db.commit()

    logger.log_security_event("user_deleted", user_id=user.id, by=current_admin.id, tokens_revoked=revoked)
    return APIResponse(message="User deleted")


@router.get("/{user_id}/activity-logs", response_model=AuditLogListResponse)
async def get_user_activity_logs(
    user_id: str,
    page: int = Query(1),
    limit: int = Query(10),
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_admin)
):
    """Audit entries where the user is the actor or the target"""
    user = await _get_user_or_404(db, user_id)
    query = (
        select(AuditLog)
        .options(selectinload(AuditLog.actor))
        .where(or_(AuditLog.user_id == user.id, AuditLog.target_id == user.id))
        .order_by(AuditLog.created_at.desc())
    )
    page_data = await paginate(db, query, page, limit)
    return AuditLogListResponse(
        logs=[to_audit_log_response(log) for log in page_data["items"]],
        pagination=page_data["pagination"],
    )
