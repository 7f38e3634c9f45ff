"""
Identity blueprint.

The browser signs in with the identity provider and posts the ID token here:
- /admin/verify-token: email must be on the ADMIN_EMAILS allow-list
- /user/verify-token:  email must belong to an active tenant
A verified token opens a signed session carrying the role.
"""
import logging

from flask import Blueprint, current_app, g, jsonify, redirect, render_template, request, session, url_for

from storefront.database import get_session
from storefront.exceptions import NotFoundError, UnauthorizedError, ValidationError
from storefront.middleware import ROLE_ADMIN, ROLE_USER, admin_required, json_endpoint, owner_required, start_session
from storefront.services import tenant_service
from storefront.services.identity_service import get_identity_verifier

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)


def _id_token_from_request():
    data = request.get_json(silent=True) or {}
    id_token = data.get('id_token') or data.get('idToken')
    if not id_token:
        raise ValidationError('No token provided', reason='missing_token')
    return id_token


def _login_context():
    return {
        'identity_api_key': current_app.config.get('IDENTITY_WEB_API_KEY'),
        'identity_auth_domain': current_app.config.get('IDENTITY_AUTH_DOMAIN'),
        'identity_project_id': current_app.config.get('IDENTITY_PROJECT_ID'),
    }


# =====================================================
# ADMIN
# =====================================================

@auth_bp.route('/admin/login')
def admin_login():
    if g.get('role') == ROLE_ADMIN:
        return redirect(url_for('admin.dashboard'))
    return render_template('login.html', role=ROLE_ADMIN,
                           verify_url=url_for('auth.admin_verify_token'),
                           success_url=url_for('admin.dashboard'),
                           **_login_context())


@auth_bp.route('/admin/verify-token', methods=['POST'])
@json_endpoint
def admin_verify_token():
    claims = get_identity_verifier().verify(_id_token_from_request())
    email = claims['email'].lower()

    if email not in current_app.config.get('ADMIN_EMAILS', frozenset()):
        logger.warning(f"Admin sign-in refused for {email}")
        raise UnauthorizedError('Access denied. Admin email required.', reason='not_admin')

    start_session(ROLE_ADMIN, email)
    logger.info(f"Admin session created for {email}")
    return jsonify({'status': 'success', 'message': 'Admin authentication successful'})


@auth_bp.route('/admin/logout')
def admin_logout():
    session.clear()
    return redirect(url_for('auth.admin_login'))


@auth_bp.route('/admin/refresh-session', methods=['POST'])
@admin_required
@json_endpoint
def admin_refresh_session():
    session.permanent = True
    session.modified = True
    return jsonify({'status': 'success', 'message': 'Session refreshed'})


# =====================================================
# BUSINESS OWNER
# =====================================================

@auth_bp.route('/user/login')
def user_login():
    if g.get('role') == ROLE_USER:
        return redirect(url_for('owner.dashboard'))
    return render_template('login.html', role=ROLE_USER,
                           verify_url=url_for('auth.user_verify_token'),
                           success_url=url_for('owner.dashboard'),
                           error=request.args.get('error'),
                           **_login_context())


@auth_bp.route('/user/verify-token', methods=['POST'])
@json_endpoint
def user_verify_token():
    claims = get_identity_verifier().verify(_id_token_from_request())
    email = claims['email'].lower()

    tenant = tenant_service.get_active_tenant_by_email(get_session(), email)
    if tenant is None:
        logger.warning(f"Owner sign-in refused, no active tenant for {email}")
        raise NotFoundError('User not found. Please contact support.', reason='tenant_not_found')

    start_session(ROLE_USER, email, tenant)
    logger.info(f"Owner session created for {email} ({tenant.business_number})")
    return jsonify({'status': 'success', 'message': 'User authentication successful'})


@auth_bp.route('/user/logout')
def user_logout():
    session.clear()
    return redirect(url_for('auth.user_login'))


@auth_bp.route('/user/refresh-session', methods=['POST'])
@owner_required
@json_endpoint
def user_refresh_session():
    session.permanent = True
    session.modified = True
    return jsonify({'status': 'success', 'message': 'Session refreshed'})
