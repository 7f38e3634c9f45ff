"""
Integration tests for sign-in, session re-validation and role checks.
"""
from flask import session as flask_session

from storefront.models import Tenant

ADMIN_EMAIL = 'admin@storefront.test'


class TestAdminSignIn:
    """POST /admin/verify-token"""

    def test_allow_listed_admin(self, client, session, verifier):
        verifier.tokens['good'] = {'sub': 'u1', 'email': ADMIN_EMAIL.upper()}

        with client:
            response = client.post('/admin/verify-token', json={'id_token': 'good'})

            assert response.status_code == 200
            assert flask_session['role'] == 'admin'
            assert flask_session['email'] == ADMIN_EMAIL

        assert client.get('/admin/tenants').status_code == 200

    def test_camel_case_token_field(self, client, session, verifier):
        verifier.tokens['good'] = {'sub': 'u1', 'email': ADMIN_EMAIL}
        response = client.post('/admin/verify-token', json={'idToken': 'good'})
        assert response.status_code == 200

    def test_not_on_allow_list(self, client, session, verifier):
        verifier.tokens['stranger'] = {'sub': 'u2', 'email': 'someone@else.com'}

        with client:
            response = client.post('/admin/verify-token', json={'id_token': 'stranger'})

            assert response.status_code == 403
            assert response.get_json()['reason'] == 'not_admin'
            assert 'role' not in flask_session

    def test_missing_token(self, client, verifier):
        response = client.post('/admin/verify-token', json={})

        assert response.status_code == 400
        assert response.get_json()['reason'] == 'missing_token'

    def test_invalid_token(self, client, verifier):
        response = client.post('/admin/verify-token', json={'id_token': 'forged'})

        assert response.status_code == 401
        assert response.get_json()['reason'] == 'invalid_token'

    def test_logout_clears_session(self, admin_client):
        response = admin_client.get('/admin/logout')

        assert response.status_code == 302
        assert admin_client.get('/admin/tenants', headers={'Accept': 'application/json'}).status_code == 401


class TestOwnerSignIn:
    """POST /user/verify-token"""

    def test_owner_of_active_tenant(self, client, tenant, verifier):
        verifier.tokens['owner'] = {'sub': 'u3', 'email': tenant.email.upper()}

        with client:
            response = client.post('/user/verify-token', json={'id_token': 'owner'})

            assert response.status_code == 200
            assert flask_session['role'] == 'user'
            assert flask_session['tenant_id'] == tenant.id
            assert flask_session['business_number'] == tenant.business_number

        data = client.get('/user/api/data').get_json()
        assert data['tenant']['business_number'] == tenant.business_number

    def test_unknown_email(self, client, session, verifier):
        verifier.tokens['nobody'] = {'sub': 'u4', 'email': 'nobody@test.com'}
        response = client.post('/user/verify-token', json={'id_token': 'nobody'})

        assert response.status_code == 404
        assert response.get_json()['reason'] == 'tenant_not_found'

    def test_inactive_tenant_cannot_sign_in(self, client, make_tenant, verifier):
        tenant = make_tenant(status='inactive')
        verifier.tokens['owner'] = {'sub': 'u5', 'email': tenant.email}

        response = client.post('/user/verify-token', json={'id_token': 'owner'})
        assert response.status_code == 404


class TestRoleChecks:

    def test_anonymous_browser_is_redirected(self, client, session):
        response = client.get('/admin/dashboard')

        assert response.status_code == 302
        assert response.headers['Location'].endswith('/admin/login')

    def test_anonymous_owner_page_is_redirected(self, client, session):
        response = client.get('/user/dashboard')

        assert response.status_code == 302
        assert response.headers['Location'].endswith('/user/login')

    def test_anonymous_api_is_unauthenticated(self, client, session):
        response = client.get('/admin/analytics/api')

        assert response.status_code == 401
        assert response.get_json()['reason'] == 'unauthenticated'

    def test_owner_cannot_use_admin_api(self, owner_client):
        response = owner_client.get('/admin/tenants', headers={'Accept': 'application/json'})

        assert response.status_code == 403
        assert response.get_json()['reason'] == 'forbidden'

    def test_admin_is_not_an_owner(self, admin_client):
        response = admin_client.get('/user/api/data')
        assert response.status_code == 403

    def test_pages_render_for_their_role(self, admin_client):
        assert admin_client.get('/admin/dashboard').status_code == 200
        assert admin_client.get('/admin/analytics').status_code == 200

    def test_login_page_redirects_signed_in_admin(self, admin_client):
        response = admin_client.get('/admin/login')

        assert response.status_code == 302
        assert response.headers['Location'].endswith('/admin/dashboard')

    def test_login_page_renders(self, client, session):
        assert client.get('/user/login').status_code == 200
        assert client.get('/admin/login').status_code == 200


class TestSessionRevalidation:
    """The signed cookie is re-checked against current state on every request."""

    def test_admin_removed_from_allow_list(self, client, session):
        with client.session_transaction() as sess:
            sess['role'] = 'admin'
            sess['email'] = 'former-admin@storefront.test'

        with client:
            response = client.get('/admin/tenants', headers={'Accept': 'application/json'})

            assert response.status_code == 401
            assert 'role' not in flask_session

    def test_deactivated_tenant_loses_access(self, owner_client, session, tenant):
        stored = session.get(Tenant, tenant.id)
        stored.status = 'inactive'
        session.commit()

        response = owner_client.get('/user/api/data')
        assert response.status_code == 401

    def test_owner_email_changed_by_admin(self, owner_client, session, tenant):
        stored = session.get(Tenant, tenant.id)
        stored.email = 'someone-else@test.com'
        session.commit()

        assert owner_client.get('/user/api/data').status_code == 401

    def test_refresh_session(self, owner_client):
        response = owner_client.post('/user/refresh-session')
        assert response.get_json()['status'] == 'success'
