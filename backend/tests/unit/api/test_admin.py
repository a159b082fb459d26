"""
Unit Tests for Admin API Endpoints
Tests for: user management, KYC review, audit logs
"""
import pytest
from httpx import AsyncClient, ASGITransport
from faker import Faker

from app.core.config import settings
from app.main import app
from app.models import KycStatus, UserRole

fake = Faker()

DOCUMENTS = [{'document_type': 'business_license', 'document_url': 'https://files.example.com/license.pdf'}]


def _new_user(**overrides) -> dict:
    data = {
        'name': fake.name(),
        'email': fake.unique.email(),
        'password': 'AdminMadePass123!',
        'role': 'buyer',
    }
    data.update(overrides)
    return data


class TestAdminAccess:

    @pytest.mark.asyncio
    async def test_requires_token(self, client: AsyncClient):
        response = await client.get('/api/admin/users')

        assert response.status_code == 401
        assert response.json()['code'] == 'TOKEN_MISSING'

    @pytest.mark.asyncio
    async def test_non_admin_rejected(self, client: AsyncClient, buyer_headers):
        response = await client.get('/api/admin/users', headers=buyer_headers)

        assert response.status_code == 403
        assert response.json()['code'] == 'ROLE_MISMATCH'


class TestAdminIpAllowlist:

    @pytest.fixture
    def restricted(self, monkeypatch):
        monkeypatch.setattr(settings, 'ADMIN_IP_ALLOWLIST_STR', '10.0.0.1')
        monkeypatch.setattr(settings, 'ENVIRONMENT', 'production')

    @staticmethod
    def _client_from(host: str) -> AsyncClient:
        return AsyncClient(transport=ASGITransport(app=app, client=(host, 40000)), base_url='http://test')

    @pytest.mark.asyncio
    async def test_blocked_outside_allowlist(self, client: AsyncClient, admin_headers, restricted):
        response = await client.get('/api/admin/users', headers=admin_headers)

        assert response.status_code == 403
        assert response.json()['code'] == 'IP_NOT_ALLOWED'

    @pytest.mark.asyncio
    async def test_forwarded_header_from_untrusted_peer_ignored(self, client: AsyncClient, admin_headers, restricted):
        response = await client.get(
            '/api/admin/users', headers={**admin_headers, 'X-Forwarded-For': '10.0.0.1'}
        )

        assert response.status_code == 403
        assert response.json()['code'] == 'IP_NOT_ALLOWED'

    @pytest.mark.asyncio
    async def test_allowed_peer(self, client: AsyncClient, admin_headers, restricted):
        async with self._client_from('10.0.0.1') as allowed:
            response = await allowed.get('/api/admin/users', headers=admin_headers)

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_trusted_proxy_forwards_client_address(self, client: AsyncClient, admin_headers, restricted,
                                                         monkeypatch):
        monkeypatch.setattr(settings, 'TRUSTED_PROXIES_STR', '192.168.0.5')

        async with self._client_from('192.168.0.5') as proxy:
            forwarded = await proxy.get(
                '/api/admin/users', headers={**admin_headers, 'X-Forwarded-For': '10.0.0.1'}
            )
            # The left hop was written by the client, the proxy appended the real peer
            spoofed = await proxy.get(
                '/api/admin/users', headers={**admin_headers, 'X-Forwarded-For': '10.0.0.1, 203.0.113.9'}
            )

        assert forwarded.status_code == 200
        assert spoofed.status_code == 403
        assert spoofed.json()['code'] == 'IP_NOT_ALLOWED'

    @pytest.mark.asyncio
    async def test_development_bypass(self, client: AsyncClient, admin_headers, restricted, monkeypatch):
        monkeypatch.setattr(settings, 'ENVIRONMENT', 'development')

        response = await client.get('/api/admin/users', headers=admin_headers)
        assert response.status_code == 200


class TestUserManagement:

    @pytest.mark.asyncio
    async def test_list_users_with_filters(self, client: AsyncClient, admin_headers, buyer, repair_center):
        everyone = await client.get('/api/admin/users', headers=admin_headers)
        centers = await client.get('/api/admin/users?role=repair_center', headers=admin_headers)
        by_email = await client.get('/api/admin/users', params={'search': buyer.email[:6]}, headers=admin_headers)

        assert everyone.json()['pagination']['total'] == 3
        assert [u['id'] for u in centers.json()['users']] == [repair_center.id]
        assert centers.json()['users'][0]['kyc_status'] == 'approved'
        assert buyer.id in [u['id'] for u in by_email.json()['users']]

    @pytest.mark.asyncio
    async def test_get_user(self, client: AsyncClient, admin_headers, admin_user):
        response = await client.get(f'/api/admin/users/{admin_user.id}', headers=admin_headers)

        assert response.status_code == 200
        assert response.json()['user']['admin_level'] == 'admin'

    @pytest.mark.asyncio
    async def test_get_unknown_user(self, client: AsyncClient, admin_headers):
        response = await client.get('/api/admin/users/does-not-exist', headers=admin_headers)

        assert response.status_code == 404
        assert response.json()['code'] == 'USER_NOT_FOUND'

    @pytest.mark.asyncio
    async def test_create_user_can_log_in(self, client: AsyncClient, admin_headers):
        payload = _new_user()
        response = await client.post('/api/admin/users', headers=admin_headers, json=payload)

        assert response.status_code == 201
        user = response.json()['user']
        assert user['status'] == 'active'
        assert user['email_verified_at'] is not None

        login = await client.post('/api/buyer/auth/login', json={
            'email': payload['email'], 'password': payload['password'],
        })
        assert login.status_code == 200

    @pytest.mark.asyncio
    async def test_create_repair_center_needs_business_name(self, client: AsyncClient, admin_headers):
        missing = await client.post('/api/admin/users', headers=admin_headers, json=_new_user(role='repair_center'))
        created = await client.post('/api/admin/users', headers=admin_headers,
                                    json=_new_user(role='repair_center', business_name='Fixers'))

        assert missing.status_code == 400
        assert created.status_code == 201
        assert created.json()['user']['business_name'] == 'Fixers'
        assert created.json()['user']['kyc_status'] == 'not_submitted'

    @pytest.mark.asyncio
    async def test_create_duplicate_email(self, client: AsyncClient, admin_headers, buyer):
        response = await client.post('/api/admin/users', headers=admin_headers, json=_new_user(email=buyer.email))

        assert response.status_code == 400
        assert response.json()['code'] == 'EMAIL_EXISTS'

    @pytest.mark.asyncio
    async def test_update_user(self, client: AsyncClient, admin_headers, buyer):
        response = await client.put(f'/api/admin/users/{buyer.id}', headers=admin_headers, json={'name': 'Renamed'})

        assert response.status_code == 200
        assert response.json()['user']['name'] == 'Renamed'

    @pytest.mark.asyncio
    async def test_role_change_creates_profile(self, client: AsyncClient, admin_headers, buyer):
        response = await client.put(f'/api/admin/users/{buyer.id}', headers=admin_headers, json={'role': 'seller'})

        assert response.json()['user']['role'] == 'seller'
        assert response.json()['user']['kyc_status'] == 'not_submitted'

    @pytest.mark.asyncio
    async def test_suspension_ends_sessions(self, client: AsyncClient, admin_headers, buyer, user_password):
        login = (await client.post('/api/buyer/auth/login', json={
            'email': buyer.email, 'password': user_password,
        })).json()

        response = await client.put(
            f'/api/admin/users/{buyer.id}', headers=admin_headers, json={'status': 'suspended'}
        )
        assert response.status_code == 200

        refresh = await client.post('/api/buyer/auth/refresh', json={'refresh_token': login['refresh_token']})
        me = await client.get('/api/buyer/auth/me', headers={'Authorization': f"Bearer {login['access_token']}"})
        assert refresh.status_code == 401
        assert me.json()['code'] == 'ACCOUNT_SUSPENDED'

    @pytest.mark.asyncio
    @pytest.mark.parametrize('change', [{'status': 'suspended'}, {'role': 'buyer'}])
    async def test_cannot_modify_self(self, client: AsyncClient, admin_headers, admin_user, change):
        response = await client.put(f'/api/admin/users/{admin_user.id}', headers=admin_headers, json=change)

        assert response.status_code == 400
        assert response.json()['code'] == 'CANNOT_MODIFY_SELF'

    @pytest.mark.asyncio
    async def test_reset_password(self, client: AsyncClient, admin_headers, buyer, user_password):
        response = await client.post(
            f'/api/admin/users/{buyer.id}/reset-password', headers=admin_headers,
            json={'new_password': 'ResetByAdmin123!'},
        )
        assert response.status_code == 200

        old = await client.post('/api/buyer/auth/login', json={'email': buyer.email, 'password': user_password})
        new = await client.post('/api/buyer/auth/login', json={'email': buyer.email, 'password': 'ResetByAdmin123!'})
        assert old.status_code == 401
        assert new.status_code == 200

    @pytest.mark.asyncio
    async def test_delete_is_soft(self, client: AsyncClient, admin_headers, buyer):
        response = await client.delete(f'/api/admin/users/{buyer.id}', headers=admin_headers)
        assert response.status_code == 200

        user = (await client.get(f'/api/admin/users/{buyer.id}', headers=admin_headers)).json()['user']
        assert user['status'] == 'suspended'

    @pytest.mark.asyncio
    async def test_cannot_delete_self(self, client: AsyncClient, admin_headers, admin_user):
        response = await client.delete(f'/api/admin/users/{admin_user.id}', headers=admin_headers)

        assert response.status_code == 400
        assert response.json()['code'] == 'CANNOT_MODIFY_SELF'


class TestKycReview:

    @pytest.fixture
    async def pending_seller(self, client: AsyncClient, seller, auth_headers):
        response = await client.post('/api/seller/kyc', headers=auth_headers(seller), json={'documents': DOCUMENTS})
        assert response.status_code == 200
        return seller

    @pytest.mark.asyncio
    async def test_list_pending(self, client: AsyncClient, admin_headers, pending_seller, repair_center):
        response = await client.get('/api/admin/kyc?status=pending', headers=admin_headers)

        applications = response.json()['applications']
        assert [a['user_id'] for a in applications] == [pending_seller.id]
        assert applications[0]['documents'][0]['document_type'] == 'business_license'

    @pytest.mark.asyncio
    async def test_approve(self, client: AsyncClient, admin_headers, pending_seller, auth_headers, mock_email):
        response = await client.post(f'/api/admin/kyc/{pending_seller.id}/approve', headers=admin_headers)

        assert response.status_code == 200
        application = response.json()['application']
        assert application['kyc_status'] == 'approved'
        assert application['documents'][0]['status'] == 'approved'
        mock_email.send_kyc_decision_email.assert_awaited_once()
        assert mock_email.send_kyc_decision_email.await_args.args[2] is True

        status = await client.get('/api/seller/kyc', headers=auth_headers(pending_seller))
        assert status.json()['kyc_status'] == 'approved'

    @pytest.mark.asyncio
    async def test_reject_then_resubmit(self, client: AsyncClient, admin_headers, pending_seller, auth_headers):
        response = await client.post(
            f'/api/admin/kyc/{pending_seller.id}/reject', headers=admin_headers,
            json={'reason': 'License is blurry'},
        )
        assert response.json()['application']['kyc_status'] == 'rejected'
        assert response.json()['application']['rejection_reason'] == 'License is blurry'

        resubmit = await client.post(
            '/api/seller/kyc', headers=auth_headers(pending_seller), json={'documents': DOCUMENTS}
        )
        data = resubmit.json()
        assert data['kyc_status'] == 'pending'
        assert data['rejection_reason'] is None
        # The rejected document stays as history next to the new one
        assert sorted(d['status'] for d in data['documents']) == ['pending', 'rejected']

    @pytest.mark.asyncio
    async def test_reject_requires_reason(self, client: AsyncClient, admin_headers, pending_seller):
        response = await client.post(f'/api/admin/kyc/{pending_seller.id}/reject', headers=admin_headers, json={})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_review_not_pending(self, client: AsyncClient, admin_headers, seller):
        response = await client.post(f'/api/admin/kyc/{seller.id}/approve', headers=admin_headers)

        assert response.status_code == 400
        assert response.json()['code'] == 'INVALID_KYC_STATUS'

    @pytest.mark.asyncio
    async def test_review_buyer(self, client: AsyncClient, admin_headers, buyer):
        response = await client.post(f'/api/admin/kyc/{buyer.id}/approve', headers=admin_headers)

        assert response.status_code == 404
        assert response.json()['code'] == 'KYC_NOT_FOUND'


class TestAuditLogs:

    @pytest.mark.asyncio
    async def test_actions_are_audited(self, client: AsyncClient, admin_headers, admin_user, buyer):
        await client.put(f'/api/admin/users/{buyer.id}', headers=admin_headers, json={'status': 'suspended'})

        response = await client.get('/api/admin/audit-logs', headers=admin_headers)

        log = response.json()['logs'][0]
        assert log['action'] == 'user_updated'
        assert log['actor_email'] == admin_user.email
        assert log['target_id'] == buyer.id
        assert log['before_snapshot']['status'] == 'active'
        assert log['after_snapshot']['status'] == 'suspended'
        assert 'hashed_password' not in log['after_snapshot']

    @pytest.mark.asyncio
    async def test_filter_and_actions(self, client: AsyncClient, admin_headers, buyer):
        await client.post('/api/admin/users', headers=admin_headers, json=_new_user())
        await client.delete(f'/api/admin/users/{buyer.id}', headers=admin_headers)

        filtered = await client.get('/api/admin/audit-logs?action=user_deleted', headers=admin_headers)
        actions = await client.get('/api/admin/audit-logs/actions', headers=admin_headers)

        assert [log['target_id'] for log in filtered.json()['logs']] == [buyer.id]
        assert actions.json()['actions'] == ['user_created', 'user_deleted']
        assert actions.json()['target_types'] == ['user']

    @pytest.mark.asyncio
    async def test_user_activity_logs(self, client: AsyncClient, admin_headers, buyer, make_user):
        other = await make_user(UserRole.SELLER, kyc_status=KycStatus.APPROVED)
        await client.put(f'/api/admin/users/{buyer.id}', headers=admin_headers, json={'name': 'Changed'})
        await client.put(f'/api/admin/users/{other.id}', headers=admin_headers, json={'name': 'Other'})

        response = await client.get(f'/api/admin/users/{buyer.id}/activity-logs', headers=admin_headers)

        logs = response.json()['logs']
        assert len(logs) == 1
        assert logs[0]['target_id'] == buyer.id
