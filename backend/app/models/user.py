from sqlalchemy import Column, String, Boolean, DateTime, Enum as SQLEnum, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.core.database import Base
from app.core.types import GUID, generate_uuid


class UserRole(str, enum.Enum):
    """User roles - each role has its own URL prefix and auth router"""
    BUYER = "buyer"
    SELLER = "seller"
    REPAIR_CENTER = "repair_center"
    ADMIN = "admin"

    @property
    def portal(self) -> str:
        """URL segment of the role, e.g. 'repair-center' for /api/repair-center"""
        return self.value.replace("_", "-")


class UserStatus(str, enum.Enum):
    """Account lifecycle: unverified until the email link is used, suspended by admins"""
    UNVERIFIED = "unverified"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class AdminLevel(str, enum.Enum):
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class User(Base):
    """User model"""
    __tablename__ = "users"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)

    role = Column(SQLEnum(UserRole), nullable=False, index=True)
    status = Column(SQLEnum(UserStatus), default=UserStatus.UNVERIFIED, nullable=False, index=True)

    # Email verification
    email_verified_at = Column(DateTime, nullable=True)
    verification_token_hash = Column(String(64), nullable=True, index=True)
    verification_token_expires = Column(DateTime, nullable=True)

    # Password reset
    reset_token_hash = Column(String(64), nullable=True, index=True)
    reset_token_expires = Column(DateTime, nullable=True)
    password_changed_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    # Relationships
    admin_profile = relationship("AdminProfile", back_populates="user", uselist=False, cascade="all, delete-orphan")
    seller_profile = relationship(
        "SellerProfile", back_populates="user", uselist=False,
        cascade="all, delete-orphan", foreign_keys="SellerProfile.user_id"
    )
    repair_center_profile = relationship(
        "RepairCenterProfile", back_populates="user", uselist=False,
        cascade="all, delete-orphan", foreign_keys="RepairCenterProfile.user_id"
    )
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def is_suspended(self) -> bool:
        return self.status == UserStatus.SUSPENDED

    def __repr__(self):
        return f"<User {self.email} ({self.role.value if self.role else '-'})>"


class AdminProfile(Base):
    """Admin-only settings: level and TOTP second factor"""
    __tablename__ = "admin_profiles"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    admin_level = Column(SQLEnum(AdminLevel), default=AdminLevel.ADMIN, nullable=False)

    # MFA - mfa_pending_secret holds a freshly generated secret until the
    # admin proves possession with a valid code
    mfa_enabled = Column(Boolean, default=False, nullable=False)
    mfa_secret = Column(String(64), nullable=True)
    mfa_pending_secret = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="admin_profile")

    def __repr__(self):
        return f"<AdminProfile {self.user_id} {self.admin_level.value if self.admin_level else '-'}>"
