"""
Unit Tests for the authentication service
Tests for: credential checks, refresh token rotation and reuse detection
"""
import pytest
from datetime import datetime, timedelta

from sqlalchemy import select

from app.core.exceptions import (
    AccountSuspendedError,
    EmailExistsError,
    InvalidCredentialsError,
    RefreshTokenError,
    RoleMismatchError,
    UnverifiedAccountError,
)
from app.core.security import hash_token
from app.models import RefreshToken, SellerProfile, KycStatus, UserRole, UserStatus
from app.services import auth_service


async def _record(db, raw_token: str) -> RefreshToken:
    result = await db.execute(
        select(RefreshToken)
        .where(RefreshToken.token_hash == hash_token(raw_token))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


class TestRegister:

    @pytest.mark.asyncio
    async def test_seller_gets_business_profile(self, db_session, user_password):
        user, token = await auth_service.register_user(
            db_session, UserRole.SELLER, "Seller", "Seller@Example.com", user_password,
            business={"business_name": "Second Life Phones"},
        )
        await db_session.commit()

        profile = (await db_session.execute(
            select(SellerProfile).where(SellerProfile.user_id == user.id)
        )).scalar_one()

        assert user.email == "seller@example.com"
        assert user.status == UserStatus.UNVERIFIED
        assert user.verification_token_hash == hash_token(token)
        assert profile.kyc_status == KycStatus.NOT_SUBMITTED

    @pytest.mark.asyncio
    async def test_duplicate_email(self, db_session, buyer, user_password):
        with pytest.raises(EmailExistsError):
            await auth_service.register_user(db_session, UserRole.BUYER, "Dup", buyer.email.upper(), user_password)


class TestAuthenticate:

    @pytest.mark.asyncio
    async def test_valid_credentials(self, db_session, buyer, user_password):
        user = await auth_service.authenticate(db_session, buyer.email, user_password, UserRole.BUYER)
        assert user.id == buyer.id

    @pytest.mark.asyncio
    async def test_wrong_password(self, db_session, buyer):
        with pytest.raises(InvalidCredentialsError):
            await auth_service.authenticate(db_session, buyer.email, "wrong-password", UserRole.BUYER)

    @pytest.mark.asyncio
    async def test_unknown_email(self, db_session, user_password):
        with pytest.raises(InvalidCredentialsError):
            await auth_service.authenticate(db_session, "nobody@example.com", user_password, UserRole.BUYER)

    @pytest.mark.asyncio
    async def test_unverified(self, db_session, make_user, user_password):
        user = await make_user(UserRole.BUYER, status=UserStatus.UNVERIFIED)

        with pytest.raises(UnverifiedAccountError):
            await auth_service.authenticate(db_session, user.email, user_password, UserRole.BUYER)

    @pytest.mark.asyncio
    async def test_suspended(self, db_session, make_user, user_password):
        user = await make_user(UserRole.BUYER, status=UserStatus.SUSPENDED)

        with pytest.raises(AccountSuspendedError):
            await auth_service.authenticate(db_session, user.email, user_password, UserRole.BUYER)

    @pytest.mark.asyncio
    async def test_account_state_hidden_without_password(self, db_session, make_user):
        user = await make_user(UserRole.BUYER, status=UserStatus.SUSPENDED)

        with pytest.raises(InvalidCredentialsError):
            await auth_service.authenticate(db_session, user.email, "wrong-password", UserRole.BUYER)

    @pytest.mark.asyncio
    async def test_role_mismatch(self, db_session, buyer, user_password):
        with pytest.raises(RoleMismatchError):
            await auth_service.authenticate(db_session, buyer.email, user_password, UserRole.SELLER)


class TestRefreshRotation:

    @pytest.mark.asyncio
    async def test_rotation_keeps_family_and_revokes_old(self, db_session, buyer):
        pair, first = await auth_service.issue_token_pair(db_session, buyer)
        await db_session.commit()

        new_pair, user = await auth_service.rotate_refresh_token(db_session, pair.refresh_token, UserRole.BUYER)
        await db_session.commit()

        old = await _record(db_session, pair.refresh_token)
        new = await _record(db_session, new_pair.refresh_token)

        assert user.id == buyer.id
        assert new_pair.refresh_token != pair.refresh_token
        assert old.revoked_at is not None
        assert old.replaced_by_id == new.id
        assert new.family_id == old.family_id
        assert new.revoked_at is None

    @pytest.mark.asyncio
    async def test_reuse_revokes_whole_family(self, db_session, buyer):
        pair, _ = await auth_service.issue_token_pair(db_session, buyer)
        await db_session.commit()
        new_pair, _ = await auth_service.rotate_refresh_token(db_session, pair.refresh_token, UserRole.BUYER)
        await db_session.commit()

        with pytest.raises(RefreshTokenError) as exc_info:
            await auth_service.rotate_refresh_token(db_session, pair.refresh_token, UserRole.BUYER)
        assert exc_info.value.code == "REFRESH_TOKEN_REUSED"

        # The legitimately rotated token died with its family
        assert (await _record(db_session, new_pair.refresh_token)).revoked_at is not None

    @pytest.mark.asyncio
    async def test_concurrent_refresh_loser_is_treated_as_reuse(self, db_session, session_factory, buyer, monkeypatch):
        pair, _ = await auth_service.issue_token_pair(db_session, buyer)
        await db_session.commit()

        original_get_user = auth_service.get_user_by_id
        winner = {}

        async def refresh_elsewhere_first(db, user_id):
            # Runs between the token lookup and the conditional revoke
            monkeypatch.setattr(auth_service, "get_user_by_id", original_get_user)
            async with session_factory() as other:
                winner["pair"], _ = await auth_service.rotate_refresh_token(
                    other, pair.refresh_token, UserRole.BUYER
                )
                await other.commit()
            return await original_get_user(db, user_id)

        monkeypatch.setattr(auth_service, "get_user_by_id", refresh_elsewhere_first)

        with pytest.raises(RefreshTokenError) as exc_info:
            await auth_service.rotate_refresh_token(db_session, pair.refresh_token, UserRole.BUYER)
        assert exc_info.value.code == "REFRESH_TOKEN_REUSED"

        # The token the other refresh obtained is revoked with the family
        assert (await _record(db_session, winner["pair"].refresh_token)).revoked_at is not None

    @pytest.mark.asyncio
    async def test_unknown_token(self, db_session):
        with pytest.raises(RefreshTokenError) as exc_info:
            await auth_service.rotate_refresh_token(db_session, "not-a-real-token", UserRole.BUYER)
        assert exc_info.value.code == "INVALID_REFRESH_TOKEN"

    @pytest.mark.asyncio
    async def test_expired_token(self, db_session, buyer):
        pair, record = await auth_service.issue_token_pair(db_session, buyer)
        record.expires_at = datetime.utcnow() - timedelta(seconds=1)
        await db_session.commit()

        with pytest.raises(RefreshTokenError) as exc_info:
            await auth_service.rotate_refresh_token(db_session, pair.refresh_token, UserRole.BUYER)
        assert exc_info.value.code == "REFRESH_TOKEN_EXPIRED"

    @pytest.mark.asyncio
    async def test_token_used_on_other_role_route(self, db_session, buyer):
        pair, _ = await auth_service.issue_token_pair(db_session, buyer)
        await db_session.commit()

        with pytest.raises(RoleMismatchError):
            await auth_service.rotate_refresh_token(db_session, pair.refresh_token, UserRole.SELLER)

    @pytest.mark.asyncio
    async def test_mfa_flag_inherited(self, db_session, admin_user):
        pair, _ = await auth_service.issue_token_pair(db_session, admin_user, mfa_verified=True)
        await db_session.commit()

        new_pair, _ = await auth_service.rotate_refresh_token(db_session, pair.refresh_token, UserRole.ADMIN)
        await db_session.commit()

        assert (await _record(db_session, new_pair.refresh_token)).mfa_verified is True

    @pytest.mark.asyncio
    async def test_set_password_revokes_all_sessions(self, db_session, buyer):
        first, _ = await auth_service.issue_token_pair(db_session, buyer)
        second, _ = await auth_service.issue_token_pair(db_session, buyer)
        await db_session.commit()

        revoked = await auth_service.set_password(db_session, buyer, "An0therPassword!")
        await db_session.commit()

        assert revoked == 2
        assert buyer.password_changed_at is not None
        for pair in (first, second):
            assert (await _record(db_session, pair.refresh_token)).revoked_at is not None
