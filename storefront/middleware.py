"""Middleware for authentication, role checks and request logging context."""
import logging
from functools import wraps

from flask import session, g, redirect, url_for, request, jsonify, current_app, has_request_context
from sqlalchemy.exc import SQLAlchemyError

from storefront.database import get_session
from storefront.models import Tenant, TenantStatus

logger = logging.getLogger(__name__)

ROLE_ADMIN = 'admin'
ROLE_USER = 'user'


def json_endpoint(f):
    """Decorator: mark a view as JSON-only so errors and auth failures answer in JSON."""
    f.json_endpoint = True
    return f


def wants_json():
    """True for API callers: JSON-only views, /api paths, JSON bodies or an explicit JSON Accept header."""
    view = current_app.view_functions.get(request.endpoint) if request.endpoint else None
    if getattr(view, 'json_endpoint', False):
        return True
    if '/api/' in request.path or request.path.endswith('/api') or request.is_json:
        return True
    return request.accept_mimetypes.best == 'application/json'


def start_session(role, email, tenant=None):
    """Open a signed session for a verified identity."""
    session.clear()
    session.permanent = True
    session['role'] = role
    session['email'] = email.lower()
    if tenant is not None:
        session['tenant_id'] = tenant.id
        session['business_number'] = tenant.business_number


def load_identity():
    """
    Load the caller's role into g.

    The signed cookie only says who the caller claimed to be at login; the
    role is checked again here on every request. Admins must still be on the
    allow-list, owners must still own an active tenant with the same email.
    Sets g.role, g.email, and for owners g.tenant and g.business_number.
    """
    g.role = None
    g.email = None
    g.tenant = None
    g.business_number = None

    role = session.get('role')
    email = session.get('email')
    if not role or not email:
        return

    if role == ROLE_ADMIN:
        if email in current_app.config.get('ADMIN_EMAILS', frozenset()):
            g.role = ROLE_ADMIN
            g.email = email
        else:
            logger.warning(f"Admin session for {email} no longer on allow-list, clearing")
            session.clear()
        return

    if role == ROLE_USER:
        tenant_id = session.get('tenant_id')
        try:
            tenant = get_session().get(Tenant, tenant_id) if tenant_id else None
        except SQLAlchemyError as e:
            current_app.logger.error(f"Error in load_identity: {e}")
            return
        if (tenant is not None and tenant.status == TenantStatus.ACTIVE.value
                and (tenant.email or '').lower() == email):
            g.role = ROLE_USER
            g.email = email
            g.tenant = tenant
            # Plain string for the log filter; must not touch the session
            g.business_number = tenant.business_number
        else:
            logger.warning(f"Owner session for {email} no longer matches an active tenant, clearing")
            session.clear()
        return

    session.clear()


def _deny(login_endpoint, authenticated):
    """401/403 JSON for API callers, redirect to the login page for browsers."""
    if wants_json():
        if authenticated:
            return jsonify({'status': 'error', 'message': 'Access denied', 'reason': 'forbidden'}), 403
        return jsonify({'status': 'error', 'message': 'Authentication required', 'reason': 'unauthenticated'}), 401
    return redirect(url_for(login_endpoint))


def admin_required(f):
    """Decorator: Require an allow-listed admin session."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('role') != ROLE_ADMIN:
            return _deny('auth.admin_login', g.get('role') is not None)
        return f(*args, **kwargs)
    return decorated_function


def owner_required(f):
    """Decorator: Require a business-owner session bound to an active tenant."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('role') != ROLE_USER or g.get('tenant') is None:
            return _deny('auth.user_login', g.get('role') is not None)
        return f(*args, **kwargs)
    return decorated_function


class RequestContextFilter(logging.Filter):
    """Add role and business number to log records."""

    def filter(self, record):
        if has_request_context():
            record.role = g.get('role') or 'anonymous'
            record.business_number = g.get('business_number') or '-'
        else:
            record.role = 'system'
            record.business_number = '-'
        return True


def configure_logging(app):
    """Root logging with request context: `[role/BIS00001]` on every line."""
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s [%(role)s/%(business_number)s] %(name)s: %(message)s'
    ))
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.setLevel(level)
    for existing in list(root.handlers):
        if getattr(existing, '_storefront', False):
            root.removeHandler(existing)
    handler._storefront = True
    root.addHandler(handler)
    app.logger.setLevel(level)
