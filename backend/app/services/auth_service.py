"""
Authentication service
======================

Credential checks, access/refresh token issuance, refresh token rotation,
email verification, password reset and admin TOTP management.

Refresh tokens are opaque random strings; only their SHA-256 hash is
stored. Each login starts a token family and every refresh replaces the
presented token with a new member of the same family. A revoked token
that is presented again means the token leaked (or two clients raced),
so the whole family is revoked.

Functions here flush but do not commit, except where noted: the calling
endpoint owns the transaction.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AccountSuspendedError,
    AdminProfileNotFoundError,
    EmailExistsError,
    InvalidCredentialsError,
    InvalidMfaCodeError,
    InvalidTokenError,
    InvalidVerificationTokenError,
    RefreshTokenError,
    RoleMismatchError,
    UnverifiedAccountError,
    ValidationError,
)
from app.core.logging_config import logger
from app.core.security import (
    MFA_CHALLENGE_TOKEN_TYPE,
    build_otpauth_url,
    create_access_token,
    decode_token,
    generate_mfa_qr_code,
    generate_mfa_secret,
    generate_opaque_token,
    get_password_hash,
    hash_token,
    verify_mfa_code,
    verify_password,
)
from app.core.types import generate_uuid
from app.models.business_profile import RepairCenterProfile, SellerProfile
from app.models.refresh_token import RefreshToken
from app.models.user import AdminProfile, User, UserRole, UserStatus


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int  # seconds until the access token expires


@dataclass
class ClientInfo:
    """Where a token request came from, stored on the refresh token row"""
    device_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


# ==========================================
# Lookups
# ==========================================

async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none()


async def get_user_by_id(db: AsyncSession, user_id: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == str(user_id)))
    return result.scalar_one_or_none()


async def get_admin_profile(db: AsyncSession, user_id: str) -> AdminProfile:
    result = await db.execute(select(AdminProfile).where(AdminProfile.user_id == str(user_id)))
    profile = result.scalar_one_or_none()
    if profile is None:
        raise AdminProfileNotFoundError()
    return profile


# ==========================================
# Registration and login
# ==========================================

def _set_verification_token(user: User) -> str:
    raw_token = generate_opaque_token(32)
    user.verification_token_hash = hash_token(raw_token)
    user.verification_token_expires = datetime.utcnow() + timedelta(hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS)
    return raw_token


async def register_user(
    db: AsyncSession,
    role: UserRole,
    name: str,
    email: str,
    password: str,
    phone: Optional[str] = None,
    business: Optional[dict] = None,
) -> Tuple[User, str]:
    """
    Create an unverified account for a self-registering buyer, seller or
    repair center. Sellers and repair centers get a business profile with
    KYC not yet submitted.

    Returns the user and the raw email verification token.
    """
    if await get_user_by_email(db, email):
        raise EmailExistsError()

    user = User(
        id=generate_uuid(),
        name=name,
        email=email.strip().lower(),
        hashed_password=get_password_hash(password),
        phone=phone,
        role=role,
        status=UserStatus.UNVERIFIED,
    )
    raw_token = _set_verification_token(user)
    db.add(user)

    business = business or {}
    if role == UserRole.SELLER:
        db.add(SellerProfile(
            user_id=user.id,
            business_name=business["business_name"],
            business_address=business.get("business_address"),
            tax_id=business.get("tax_id"),
            contact_phone=business.get("contact_phone") or phone,
        ))
    elif role == UserRole.REPAIR_CENTER:
        db.add(RepairCenterProfile(
            user_id=user.id,
            business_name=business["business_name"],
            business_address=business.get("business_address"),
            tax_id=business.get("tax_id"),
            contact_phone=business.get("contact_phone") or phone,
            service_radius=business.get("service_radius"),
        ))

    try:
        await db.flush()
    except IntegrityError:
        # Lost a race with a concurrent registration for the same email
        await db.rollback()
        raise EmailExistsError()

    logger.log_auth_event("register", True, user.email, role=role.value)
    return user, raw_token


async def authenticate(db: AsyncSession, email: str, password: str, role: UserRole) -> User:
    """
    Check credentials for a login on the given role's route.

    The password is verified before the account state is revealed, so
    UNVERIFIED_ACCOUNT / ACCOUNT_SUSPENDED / ROLE_MISMATCH are only
    returned to someone who knows the password.
    """
    user = await get_user_by_email(db, email)
    if user is None or not verify_password(password, user.hashed_password):
        logger.log_auth_event("login", False, email, "invalid_credentials", role=role.value)
        raise InvalidCredentialsError()

    if user.status == UserStatus.UNVERIFIED:
        logger.log_auth_event("login", False, email, "unverified", role=role.value)
        raise UnverifiedAccountError()
    if user.status == UserStatus.SUSPENDED:
        logger.log_auth_event("login", False, email, "suspended", role=role.value)
        raise AccountSuspendedError()
    if user.role != role:
        logger.log_auth_event("login", False, email, "role_mismatch", role=role.value)
        raise RoleMismatchError(role.value)

    return user


# ==========================================
# Token issuance and rotation
# ==========================================

def build_access_claims(user: User, mfa_verified: bool = False) -> dict:
    return {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role.value,
        "mfa": bool(mfa_verified),
    }


async def issue_token_pair(
    db: AsyncSession,
    user: User,
    client: Optional[ClientInfo] = None,
    mfa_verified: bool = False,
    family_id: Optional[str] = None,
) -> Tuple[TokenPair, RefreshToken]:
    """
    Create an access token and a persisted refresh token.

    A new family is started unless family_id is given (rotation).
    """
    client = client or ClientInfo()
    raw_refresh = generate_opaque_token()
    record = RefreshToken(
        id=generate_uuid(),
        user_id=user.id,
        token_hash=hash_token(raw_refresh),
        family_id=family_id or generate_uuid(),
        device_id=client.device_id,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
        mfa_verified=mfa_verified,
        expires_at=datetime.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )
    db.add(record)
    await db.flush()

    pair = TokenPair(
        access_token=create_access_token(build_access_claims(user, mfa_verified)),
        refresh_token=raw_refresh,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    return pair, record


async def revoke_token_family(db: AsyncSession, family_id: str) -> int:
    result = await db.execute(
        update(RefreshToken)
        .where(RefreshToken.family_id == family_id, RefreshToken.revoked_at.is_(None))
        .values(revoked_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def _reject_reuse(db: AsyncSession, record: RefreshToken) -> None:
    revoked = await revoke_token_family(db, record.family_id)
    # Committed here because raising makes the request's session roll back
    await db.commit()
    logger.log_security_event(
        "refresh_token_reuse",
        user_id=str(record.user_id),
        family_id=str(record.family_id),
        tokens_revoked=revoked,
    )
    raise RefreshTokenError("REFRESH_TOKEN_REUSED", "Refresh token has already been used")


async def rotate_refresh_token(
    db: AsyncSession,
    raw_token: str,
    expected_role: UserRole,
    client: Optional[ClientInfo] = None,
) -> Tuple[TokenPair, User]:
    """
    Exchange a refresh token for a new pair.

    The old row is revoked with a conditional UPDATE so that, of two
    concurrent refreshes with the same token, exactly one wins; the loser
    is treated as reuse.
    """
    result = await db.execute(select(RefreshToken).where(RefreshToken.token_hash == hash_token(raw_token)))
    record = result.scalar_one_or_none()

    if record is None:
        logger.log_auth_event("refresh", False, reason="unknown_token", role=expected_role.value)
        raise RefreshTokenError("INVALID_REFRESH_TOKEN", "Invalid refresh token")

    if record.revoked_at is not None:
        await _reject_reuse(db, record)

    if record.is_expired():
        logger.log_auth_event("refresh", False, reason="expired", role=expected_role.value)
        raise RefreshTokenError("REFRESH_TOKEN_EXPIRED", "Refresh token expired")

    user = await get_user_by_id(db, record.user_id)
    if user is None:
        raise RefreshTokenError("INVALID_REFRESH_TOKEN", "Invalid refresh token")
    if user.status == UserStatus.SUSPENDED:
        raise AccountSuspendedError()
    if user.role != expected_role:
        raise RoleMismatchError(expected_role.value)

    now = datetime.utcnow()
    claimed = await db.execute(
        update(RefreshToken)
        .where(RefreshToken.id == record.id, RefreshToken.revoked_at.is_(None))
        .values(revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        await _reject_reuse(db, record)

    pair, new_record = await issue_token_pair(
        db,
        user,
        client=client or ClientInfo(device_id=record.device_id),
        mfa_verified=record.mfa_verified,
        family_id=record.family_id,
    )
    await db.execute(
        update(RefreshToken)
        .where(RefreshToken.id == record.id)
        .values(replaced_by_id=new_record.id)
        .execution_options(synchronize_session=False)
    )

    logger.log_auth_event("refresh", True, user.email, role=expected_role.value)
    return pair, user


async def revoke_refresh_token(db: AsyncSession, raw_token: str) -> bool:
    """Revoke a single refresh token (logout). Unknown or already revoked tokens are a no-op."""
    result = await db.execute(
        update(RefreshToken)
        .where(RefreshToken.token_hash == hash_token(raw_token), RefreshToken.revoked_at.is_(None))
        .values(revoked_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    return (result.rowcount or 0) > 0


async def revoke_all_user_tokens(db: AsyncSession, user_id: str) -> int:
    """Revoke every live refresh token of a user (suspension, password reset)"""
    result = await db.execute(
        update(RefreshToken)
        .where(RefreshToken.user_id == str(user_id), RefreshToken.revoked_at.is_(None))
        .values(revoked_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


# ==========================================
# Email verification
# ==========================================

async def verify_email(db: AsyncSession, raw_token: str) -> User:
    result = await db.execute(select(User).where(User.verification_token_hash == hash_token(raw_token)))
    user = result.scalar_one_or_none()

    if user is None or user.verification_token_expires is None \
            or user.verification_token_expires < datetime.utcnow():
        raise InvalidVerificationTokenError("Invalid or expired verification token")

    user.email_verified_at = datetime.utcnow()
    user.verification_token_hash = None
    user.verification_token_expires = None
    # A suspended account stays suspended
    if user.status == UserStatus.UNVERIFIED:
        user.status = UserStatus.ACTIVE

    logger.log_auth_event("verify_email", True, user.email)
    return user


async def resend_verification(db: AsyncSession, email: str, role: UserRole) -> Optional[Tuple[User, str]]:
    """New verification token for an unverified account, None when there is nothing to send"""
    user = await get_user_by_email(db, email)
    if user is None or user.role != role or user.status != UserStatus.UNVERIFIED:
        return None
    return user, _set_verification_token(user)


# ==========================================
# Password reset
# ==========================================

async def issue_password_reset(db: AsyncSession, email: str, role: UserRole) -> Optional[Tuple[User, str]]:
    """
    Create a single-use reset token. Returns None when no account of the
    role exists; callers must answer identically in both cases.
    """
    user = await get_user_by_email(db, email)
    if user is None or user.role != role:
        logger.log_auth_event("forgot_password", False, email, "unknown_account", role=role.value)
        return None

    raw_token = generate_opaque_token(32)
    user.reset_token_hash = hash_token(raw_token)
    user.reset_token_expires = datetime.utcnow() + timedelta(hours=settings.PASSWORD_RESET_EXPIRE_HOURS)
    logger.log_auth_event("forgot_password", True, user.email, role=role.value)
    return user, raw_token


async def set_password(db: AsyncSession, user: User, new_password: str) -> int:
    """Change the password and end every existing session"""
    user.hashed_password = get_password_hash(new_password)
    user.password_changed_at = datetime.utcnow()
    return await revoke_all_user_tokens(db, user.id)


async def reset_password(db: AsyncSession, raw_token: str, new_password: str, role: UserRole) -> User:
    result = await db.execute(select(User).where(User.reset_token_hash == hash_token(raw_token)))
    user = result.scalar_one_or_none()

    if user is None or user.role != role or user.reset_token_expires is None \
            or user.reset_token_expires < datetime.utcnow():
        logger.log_auth_event("reset_password", False, reason="invalid_token", role=role.value)
        raise InvalidVerificationTokenError("Invalid or expired reset token")

    user.reset_token_hash = None
    user.reset_token_expires = None
    revoked = await set_password(db, user, new_password)

    logger.log_auth_event("reset_password", True, user.email, sessions_revoked=revoked)
    return user


# ==========================================
# Admin MFA
# ==========================================

async def complete_mfa_login(db: AsyncSession, mfa_token: str, code: str) -> User:
    """Second step of an admin login: challenge token plus TOTP code"""
    payload = decode_token(mfa_token, expected_type=MFA_CHALLENGE_TOKEN_TYPE)

    user = await get_user_by_id(db, payload["sub"])
    if user is None or user.role != UserRole.ADMIN:
        raise InvalidTokenError()
    if user.status == UserStatus.SUSPENDED:
        raise AccountSuspendedError()

    profile = await get_admin_profile(db, user.id)
    if not profile.mfa_enabled or not verify_mfa_code(code, profile.mfa_secret):
        logger.log_auth_event("verify_mfa", False, user.email, "invalid_code")
        raise InvalidMfaCodeError()

    logger.log_auth_event("verify_mfa", True, user.email)
    return user


def start_mfa_setup(profile: AdminProfile, email: str) -> dict:
    """Generate a pending secret; it only becomes active once a code is confirmed"""
    secret = generate_mfa_secret()
    profile.mfa_pending_secret = secret
    otpauth_url = build_otpauth_url(email, secret)
    return {
        "secret": secret,
        "otpauth_url": otpauth_url,
        "qr_code": generate_mfa_qr_code(otpauth_url),
    }


async def enable_mfa(db: AsyncSession, profile: AdminProfile, code: str) -> None:
    if profile.mfa_enabled:
        raise ValidationError("MFA is already enabled", code="MFA_ALREADY_ENABLED")
    if not profile.mfa_pending_secret:
        raise ValidationError("Start MFA setup first", code="MFA_SETUP_REQUIRED")
    if not verify_mfa_code(code, profile.mfa_pending_secret):
        raise InvalidMfaCodeError()

    profile.mfa_secret = profile.mfa_pending_secret
    profile.mfa_pending_secret = None
    profile.mfa_enabled = True
    # Sessions opened without the second factor end here
    await revoke_all_user_tokens(db, profile.user_id)


def disable_mfa(profile: AdminProfile, code: str) -> None:
    if not profile.mfa_enabled:
        raise ValidationError("MFA is not enabled", code="MFA_NOT_ENABLED")
    if not verify_mfa_code(code, profile.mfa_secret):
        raise InvalidMfaCodeError()

    profile.mfa_enabled = False
    profile.mfa_secret = None
    profile.mfa_pending_secret = None
