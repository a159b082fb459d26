"""
E-Waste Marketplace - Test Configuration and Fixtures
"""
import os
from types import SimpleNamespace
from typing import AsyncGenerator, Callable, Optional
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool
from faker import Faker

# Set testing environment (before any app import reads the settings)
TEST_DATABASE_URL = 'sqlite+aiosqlite:///./test_marketplace.db'
os.environ['ENVIRONMENT'] = 'testing'
os.environ['DEBUG'] = 'false'
os.environ['DATABASE_URL'] = TEST_DATABASE_URL
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['SMTP_USER'] = ''
os.environ['ADMIN_IP_ALLOWLIST_STR'] = ''

from app.main import app
from app.core.database import Base, get_db
from app.core.security import get_password_hash, create_access_token
from app.models import (
    AdminLevel, AdminProfile, KycStatus, RepairCenterProfile, SellerProfile,
    User, UserRole, UserStatus,
)
from app.services.auth_service import build_access_claims
from app.services.email_service import email_service

fake = Faker()

DEFAULT_PASSWORD = 'Str0ngPassw0rd!'

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@pytest.fixture(scope='function')
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh tables and a session for test setup and assertions"""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Test client. Every request gets its own session, as in production,
    so state only carries over between requests once committed.
    """
    async def override_get_db():
        async with TestSessionLocal() as session:
            try:
                yield session
                if session.new or session.dirty or session.deleted:
                    await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def mock_email(monkeypatch) -> SimpleNamespace:
    """Replace outgoing email with AsyncMocks; tests read tokens from the call args"""
    mocks = SimpleNamespace(
        send_verification_email=AsyncMock(return_value=True),
        send_password_reset_email=AsyncMock(return_value=True),
        send_kyc_decision_email=AsyncMock(return_value=True),
        send_quote_email=AsyncMock(return_value=True),
    )
    for name, mock in vars(mocks).items():
        monkeypatch.setattr(email_service, name, mock)
    return mocks


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable:
    """
    Factory creating a committed user plus the profile its role needs.

    Business users get kyc_status=approved unless told otherwise.
    """
    async def _make(
        role: UserRole = UserRole.BUYER,
        status: UserStatus = UserStatus.ACTIVE,
        password: str = DEFAULT_PASSWORD,
        email: Optional[str] = None,
        kyc_status: KycStatus = KycStatus.APPROVED,
        mfa_secret: Optional[str] = None,
    ) -> User:
        user = User(
            name=fake.name(),
            email=(email or fake.unique.email()).lower(),
            hashed_password=get_password_hash(password),
            phone=fake.msisdn()[:15],
            role=role,
            status=status,
        )
        db_session.add(user)
        await db_session.flush()

        if role == UserRole.ADMIN:
            db_session.add(AdminProfile(
                user_id=user.id,
                admin_level=AdminLevel.ADMIN,
                mfa_enabled=mfa_secret is not None,
                mfa_secret=mfa_secret,
            ))
        elif role == UserRole.SELLER:
            db_session.add(SellerProfile(user_id=user.id, business_name=fake.company(), kyc_status=kyc_status))
        elif role == UserRole.REPAIR_CENTER:
            db_session.add(RepairCenterProfile(
                user_id=user.id, business_name=fake.company(), kyc_status=kyc_status, service_radius=25.0
            ))

        await db_session.commit()
        return user

    return _make


@pytest.fixture
async def buyer(make_user) -> User:
    return await make_user(UserRole.BUYER)


@pytest.fixture
async def seller(make_user) -> User:
    return await make_user(UserRole.SELLER, kyc_status=KycStatus.NOT_SUBMITTED)


@pytest.fixture
async def repair_center(make_user) -> User:
    return await make_user(UserRole.REPAIR_CENTER)


@pytest.fixture
async def center_profile(db_session: AsyncSession, repair_center: User) -> RepairCenterProfile:
    result = await db_session.execute(
        select(RepairCenterProfile).where(RepairCenterProfile.user_id == repair_center.id)
    )
    return result.scalar_one()


@pytest.fixture
async def admin_user(make_user) -> User:
    return await make_user(UserRole.ADMIN)


@pytest.fixture
def auth_headers() -> Callable:
    """Build a bearer header for any user, optionally with the MFA claim"""
    def _headers(user: User, mfa: bool = False) -> dict:
        token = create_access_token(build_access_claims(user, mfa_verified=mfa))
        return {'Authorization': f'Bearer {token}'}

    return _headers


@pytest.fixture
def buyer_headers(buyer: User, auth_headers) -> dict:
    return auth_headers(buyer)


@pytest.fixture
def center_headers(repair_center: User, auth_headers) -> dict:
    return auth_headers(repair_center)


@pytest.fixture
def admin_headers(admin_user: User, auth_headers) -> dict:
    return auth_headers(admin_user)


@pytest.fixture
def user_password() -> str:
    """Password of every user built by make_user"""
    return DEFAULT_PASSWORD


@pytest.fixture
def session_factory(db_session: AsyncSession) -> async_sessionmaker:
    """Session factory bound to the test database, for code that opens its own sessions"""
    return TestSessionLocal
