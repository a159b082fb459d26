"""
Unit Tests for Authentication API Endpoints
(buyer, seller and repair center portals; admin MFA lives in test_admin_auth.py)
"""
import pytest
from datetime import datetime, timedelta
from httpx import AsyncClient
from faker import Faker
from sqlalchemy import select

from app.core.security import create_access_token, hash_token
from app.models import RefreshToken, RepairCenterProfile, User, UserRole, UserStatus
from app.services.auth_service import build_access_claims

fake = Faker()


def _register_payload(**overrides) -> dict:
    data = {
        'name': fake.name(),
        'email': fake.unique.email(),
        'password': 'SecurePassword123!',
        'phone': '5550100',
    }
    data.update(overrides)
    return data


async def _login(client: AsyncClient, portal: str, email: str, password: str, **extra):
    return await client.post(f'/api/{portal}/auth/login', json={'email': email, 'password': password, **extra})


class TestRegistration:
    """Test self-registration on the three public portals"""

    @pytest.mark.asyncio
    async def test_register_buyer(self, client: AsyncClient, mock_email):
        payload = _register_payload()
        response = await client.post('/api/buyer/auth/register', json=payload)

        assert response.status_code == 201
        user = response.json()['user']
        assert user['email'] == payload['email'].lower()
        assert user['role'] == 'buyer'
        assert user['status'] == 'unverified'
        assert 'hashed_password' not in user

        mock_email.send_verification_email.assert_awaited_once()
        assert mock_email.send_verification_email.await_args.args[3] == 'buyer'

    @pytest.mark.asyncio
    async def test_register_repair_center_creates_profile(self, client: AsyncClient, db_session):
        payload = _register_payload(business_name='Volt Repairs', service_radius=15)
        response = await client.post('/api/repair-center/auth/register', json=payload)

        assert response.status_code == 201
        user_id = response.json()['user']['id']
        profile = (await db_session.execute(
            select(RepairCenterProfile).where(RepairCenterProfile.user_id == user_id)
        )).scalar_one()
        assert profile.business_name == 'Volt Repairs'
        assert profile.kyc_status.value == 'not_submitted'

    @pytest.mark.asyncio
    async def test_register_seller_requires_business_name(self, client: AsyncClient):
        response = await client.post('/api/seller/auth/register', json=_register_payload())

        assert response.status_code == 400
        assert response.json()['code'] == 'VALIDATION_ERROR'

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, client: AsyncClient, buyer):
        response = await client.post('/api/buyer/auth/register', json=_register_payload(email=buyer.email.upper()))

        assert response.status_code == 400
        assert response.json()['code'] == 'EMAIL_EXISTS'

    @pytest.mark.asyncio
    async def test_register_short_password(self, client: AsyncClient):
        response = await client.post('/api/buyer/auth/register', json=_register_payload(password='short'))

        assert response.status_code == 400
        assert response.json()['code'] == 'VALIDATION_ERROR'

    @pytest.mark.asyncio
    async def test_no_admin_self_registration(self, client: AsyncClient):
        response = await client.post('/api/admin/auth/register', json=_register_payload())
        assert response.status_code in (404, 405)


class TestEmailVerification:

    @pytest.mark.asyncio
    async def test_register_verify_login(self, client: AsyncClient, mock_email):
        payload = _register_payload()
        await client.post('/api/buyer/auth/register', json=payload)
        token = mock_email.send_verification_email.await_args.args[2]

        # Unverified accounts cannot log in yet
        response = await _login(client, 'buyer', payload['email'], payload['password'])
        assert response.status_code == 401
        assert response.json()['code'] == 'UNVERIFIED_ACCOUNT'

        response = await client.get(f'/api/buyer/auth/verify-email/{token}')
        assert response.status_code == 200
        assert response.json()['user']['status'] == 'active'
        assert response.json()['user']['email_verified_at'] is not None

        response = await _login(client, 'buyer', payload['email'], payload['password'])
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_verification_token_single_use(self, client: AsyncClient, mock_email):
        await client.post('/api/buyer/auth/register', json=_register_payload())
        token = mock_email.send_verification_email.await_args.args[2]

        assert (await client.get(f'/api/buyer/auth/verify-email/{token}')).status_code == 200
        response = await client.get(f'/api/buyer/auth/verify-email/{token}')
        assert response.status_code == 400
        assert response.json()['code'] == 'INVALID_TOKEN'

    @pytest.mark.asyncio
    async def test_resend_verification_is_generic(self, client: AsyncClient, mock_email, buyer):
        # Already active: nothing is sent, but the answer is the same
        known = await client.post('/api/buyer/auth/resend-verification', json={'email': buyer.email})
        unknown = await client.post('/api/buyer/auth/resend-verification', json={'email': 'ghost@example.com'})

        assert known.status_code == unknown.status_code == 200
        assert known.json()['message'] == unknown.json()['message']
        mock_email.send_verification_email.assert_not_awaited()


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_success(self, client: AsyncClient, buyer, user_password):
        response = await _login(client, 'buyer', buyer.email, user_password)

        assert response.status_code == 200
        data = response.json()
        assert data['token_type'] == 'bearer'
        assert data['access_token'] and data['refresh_token']
        assert data['expires_in'] == 15 * 60
        assert data['user']['id'] == buyer.id
        assert data['user']['last_login'] is not None

    @pytest.mark.asyncio
    async def test_login_email_case_insensitive(self, client: AsyncClient, buyer, user_password):
        response = await _login(client, 'buyer', buyer.email.upper(), user_password)
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, client: AsyncClient, buyer):
        response = await _login(client, 'buyer', buyer.email, 'wrong-password')

        assert response.status_code == 401
        assert response.json() == {
            'error': True, 'code': 'INVALID_CREDENTIALS', 'message': 'Invalid email or password'
        }

    @pytest.mark.asyncio
    async def test_login_on_wrong_portal(self, client: AsyncClient, buyer, user_password):
        response = await _login(client, 'repair-center', buyer.email, user_password)

        assert response.status_code == 403
        assert response.json()['code'] == 'ROLE_MISMATCH'

    @pytest.mark.asyncio
    async def test_login_suspended(self, client: AsyncClient, make_user, user_password):
        user = await make_user(UserRole.SELLER, status=UserStatus.SUSPENDED)
        response = await _login(client, 'seller', user.email, user_password)

        assert response.status_code == 403
        assert response.json()['code'] == 'ACCOUNT_SUSPENDED'

    @pytest.mark.asyncio
    async def test_login_stores_device_info(self, client: AsyncClient, db_session, buyer, user_password):
        response = await _login(client, 'buyer', buyer.email, user_password, device_id='pixel-7')
        raw = response.json()['refresh_token']

        record = (await db_session.execute(
            select(RefreshToken).where(RefreshToken.token_hash == hash_token(raw))
        )).scalar_one()
        assert record.device_id == 'pixel-7'
        assert record.token_hash != raw


class TestRefreshAndLogout:

    @pytest.mark.asyncio
    async def test_refresh_rotates(self, client: AsyncClient, buyer, user_password):
        login = (await _login(client, 'buyer', buyer.email, user_password)).json()

        response = await client.post('/api/buyer/auth/refresh', json={'refresh_token': login['refresh_token']})

        assert response.status_code == 200
        assert response.json()['refresh_token'] != login['refresh_token']

    @pytest.mark.asyncio
    async def test_refresh_token_alias(self, client: AsyncClient, buyer, user_password):
        login = (await _login(client, 'buyer', buyer.email, user_password)).json()

        response = await client.post('/api/buyer/auth/refresh-token', json={'refresh_token': login['refresh_token']})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_reused_refresh_token_kills_family(self, client: AsyncClient, buyer, user_password):
        login = (await _login(client, 'buyer', buyer.email, user_password)).json()
        rotated = (await client.post(
            '/api/buyer/auth/refresh', json={'refresh_token': login['refresh_token']}
        )).json()

        reuse = await client.post('/api/buyer/auth/refresh', json={'refresh_token': login['refresh_token']})
        assert reuse.status_code == 401
        assert reuse.json()['code'] == 'REFRESH_TOKEN_REUSED'

        # The attacker's replay also logged out the legitimate holder
        response = await client.post('/api/buyer/auth/refresh', json={'refresh_token': rotated['refresh_token']})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_refresh_on_wrong_portal(self, client: AsyncClient, buyer, user_password):
        login = (await _login(client, 'buyer', buyer.email, user_password)).json()

        response = await client.post('/api/seller/auth/refresh', json={'refresh_token': login['refresh_token']})
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_logout_revokes_refresh_token(self, client: AsyncClient, buyer, user_password):
        login = (await _login(client, 'buyer', buyer.email, user_password)).json()

        response = await client.post('/api/buyer/auth/logout', json={'refresh_token': login['refresh_token']})
        assert response.status_code == 200

        response = await client.post('/api/buyer/auth/refresh', json={'refresh_token': login['refresh_token']})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_logout_unknown_token_is_ok(self, client: AsyncClient):
        response = await client.post('/api/buyer/auth/logout', json={'refresh_token': 'unknown'})
        assert response.status_code == 200


class TestPasswordReset:

    @pytest.mark.asyncio
    async def test_forgot_password_generic_answer(self, client: AsyncClient, mock_email, buyer):
        known = await client.post('/api/buyer/auth/forgot-password', json={'email': buyer.email})
        unknown = await client.post('/api/buyer/auth/forgot-password', json={'email': 'ghost@example.com'})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        mock_email.send_password_reset_email.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_forgot_password_scoped_to_portal(self, client: AsyncClient, mock_email, buyer):
        response = await client.post('/api/seller/auth/forgot-password', json={'email': buyer.email})

        assert response.status_code == 200
        mock_email.send_password_reset_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reset_password_flow(self, client: AsyncClient, mock_email, buyer, user_password):
        login = (await _login(client, 'buyer', buyer.email, user_password)).json()
        await client.post('/api/buyer/auth/forgot-password', json={'email': buyer.email})
        token = mock_email.send_password_reset_email.await_args.args[2]

        response = await client.post(
            '/api/buyer/auth/reset-password', json={'token': token, 'password': 'BrandNewPass456!'}
        )
        assert response.status_code == 200

        # Old sessions are gone, old password no longer works
        refresh = await client.post('/api/buyer/auth/refresh', json={'refresh_token': login['refresh_token']})
        assert refresh.status_code == 401
        assert (await _login(client, 'buyer', buyer.email, user_password)).status_code == 401
        assert (await _login(client, 'buyer', buyer.email, 'BrandNewPass456!')).status_code == 200

        # Token is single use
        again = await client.post(
            '/api/buyer/auth/reset-password', json={'token': token, 'password': 'YetAnotherPass789!'}
        )
        assert again.status_code == 400
        assert again.json()['code'] == 'INVALID_TOKEN'

    @pytest.mark.asyncio
    async def test_access_token_issued_before_password_change_rejected(
        self, client: AsyncClient, db_session, buyer
    ):
        token = create_access_token(build_access_claims(buyer))
        buyer.password_changed_at = datetime.utcnow() + timedelta(seconds=5)
        await db_session.commit()

        response = await client.get('/api/buyer/auth/me', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 401
        assert response.json()['code'] == 'TOKEN_INVALID'

    @pytest.mark.asyncio
    async def test_password_change_within_the_same_second(self, client: AsyncClient, db_session, buyer):
        earlier = create_access_token(build_access_claims(buyer))
        buyer.password_changed_at = datetime.utcnow()
        await db_session.commit()
        later = create_access_token(build_access_claims(buyer))

        rejected = await client.get('/api/buyer/auth/me', headers={'Authorization': f'Bearer {earlier}'})
        accepted = await client.get('/api/buyer/auth/me', headers={'Authorization': f'Bearer {later}'})

        assert rejected.status_code == 401
        assert rejected.json()['code'] == 'TOKEN_INVALID'
        assert accepted.status_code == 200


class TestMe:

    @pytest.mark.asyncio
    async def test_me_buyer(self, client: AsyncClient, buyer, buyer_headers):
        response = await client.get('/api/buyer/auth/me', headers=buyer_headers)

        assert response.status_code == 200
        assert response.json()['user']['email'] == buyer.email
        assert response.json()['profile'] is None

    @pytest.mark.asyncio
    async def test_me_repair_center_includes_profile(self, client: AsyncClient, center_headers):
        response = await client.get('/api/repair-center/auth/me', headers=center_headers)

        profile = response.json()['profile']
        assert profile['kyc_status'] == 'approved'
        assert profile['service_radius'] == 25.0

    @pytest.mark.asyncio
    async def test_me_with_other_role_token(self, client: AsyncClient, buyer_headers):
        response = await client.get('/api/seller/auth/me', headers=buyer_headers)

        assert response.status_code == 403
        assert response.json()['code'] == 'ROLE_MISMATCH'

    @pytest.mark.asyncio
    async def test_me_expired_token(self, client: AsyncClient, buyer):
        token = create_access_token(build_access_claims(buyer), expires_delta=timedelta(seconds=-1))

        response = await client.get('/api/buyer/auth/me', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 401
        assert response.json()['code'] == 'TOKEN_EXPIRED'

    @pytest.mark.asyncio
    async def test_me_suspended_user(self, client: AsyncClient, db_session, buyer, buyer_headers):
        buyer.status = UserStatus.SUSPENDED
        await db_session.commit()

        response = await client.get('/api/buyer/auth/me', headers=buyer_headers)
        assert response.status_code == 403
        assert response.json()['code'] == 'ACCOUNT_SUSPENDED'

    @pytest.mark.asyncio
    async def test_me_deleted_user(self, client: AsyncClient, db_session, buyer, buyer_headers):
        await db_session.delete(await db_session.get(User, buyer.id))
        await db_session.commit()

        response = await client.get('/api/buyer/auth/me', headers=buyer_headers)
        assert response.status_code == 401
        assert response.json()['code'] == 'USER_NOT_FOUND'
