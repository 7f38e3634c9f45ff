"""
Admin Blueprint - backoffice for the storefront operator.

Routes:
- /admin/dashboard - Tenant management page
- /admin/analytics - Analytics page
- /admin/tenants - Tenant list / email-prefix search / create
- /admin/tenants/<id> - Tenant read / update / delete
- /admin/analytics/api - Analytics summary (JSON)
- /admin/upload-image, /admin/upload-pdf - Asset ingest
"""
import logging
from typing import Tuple

from flask import Blueprint, Response, g, jsonify, render_template, request

from storefront.database import get_session
from storefront.exceptions import ValidationError
from storefront.middleware import admin_required, json_endpoint
from storefront.schemas import ImageUpload, PdfUpload, TenantCreate, TenantUpdate, parse_payload
from storefront.services import analytics_service, tenant_service
from storefront.services.asset_service import AssetCategory, ingest_asset

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')


@admin_bp.route('/dashboard')
@admin_required
def dashboard() -> str:
    """Tenant management page; data is loaded from the JSON endpoints."""
    return render_template('admin/dashboard.html', email=g.email)


@admin_bp.route('/analytics')
@admin_required
def analytics() -> str:
    return render_template('admin/analytics.html', email=g.email)


@admin_bp.route('/tenants')
@admin_required
@json_endpoint
def list_tenants() -> Response:
    """All tenants newest first, or those whose email starts with ?q=."""
    session_db = get_session()
    search_query = request.args.get('q', '').strip()
    if search_query:
        tenants = tenant_service.search_tenants(session_db, search_query)
    else:
        tenants = tenant_service.list_tenants(session_db)

    return jsonify({'status': 'success', 'tenants': [tenant.to_dict() for tenant in tenants]})


@admin_bp.route('/tenants', methods=['POST'])
@admin_required
@json_endpoint
def create_tenant() -> Tuple[Response, int]:
    data = parse_payload(TenantCreate, request.get_json(silent=True))
    tenant = tenant_service.create_tenant(get_session(), data, created_by=g.email)
    return jsonify({'status': 'success', 'tenant': tenant.to_dict()}), 201


@admin_bp.route('/tenants/<int:tenant_id>')
@admin_required
@json_endpoint
def get_tenant(tenant_id: int) -> Response:
    tenant = tenant_service.get_tenant(get_session(), tenant_id)
    return jsonify({'status': 'success', 'tenant': tenant.to_dict()})


@admin_bp.route('/tenants/<int:tenant_id>', methods=['PUT'])
@admin_required
@json_endpoint
def update_tenant(tenant_id: int) -> Response:
    data = parse_payload(TenantUpdate, request.get_json(silent=True))
    tenant = tenant_service.update_tenant(get_session(), tenant_id, data)
    return jsonify({'status': 'success', 'tenant': tenant.to_dict()})


@admin_bp.route('/tenants/<int:tenant_id>', methods=['DELETE'])
@admin_required
@json_endpoint
def delete_tenant(tenant_id: int) -> Response:
    tenant_service.delete_tenant(get_session(), tenant_id)
    logger.info(f"Tenant {tenant_id} deleted by {g.email}")
    return jsonify({'status': 'success'})


@admin_bp.route('/analytics/api')
@admin_required
@json_endpoint
def analytics_api() -> Response:
    """Summary over ?time_range= days, optionally for one ?tenant_id= or ?business_number=."""
    time_range = analytics_service.parse_time_range(request.args.get('time_range'))

    tenant_id = request.args.get('tenant_id')
    if tenant_id not in (None, ''):
        try:
            tenant_id = int(tenant_id)
        except ValueError:
            raise ValidationError('tenant_id must be an integer', reason='invalid_tenant_id')
    else:
        tenant_id = None

    result = analytics_service.get_analytics_summary(
        get_session(),
        time_range=time_range,
        tenant_id=tenant_id,
        business_number=(request.args.get('business_number') or '').strip() or None,
    )
    return jsonify({
        'status': 'success',
        'analytics': result['tenants'],
        'summary': result['summary'],
        'time_range': result['time_range'],
    })


@admin_bp.route('/upload-image', methods=['POST'])
@admin_required
@json_endpoint
def upload_image() -> Response:
    data = parse_payload(ImageUpload, request.get_json(silent=True))
    result = ingest_asset(data.image_data, AssetCategory.IMAGE, data.asset_type)
    return jsonify({'status': 'success', **result.to_dict()})


@admin_bp.route('/upload-pdf', methods=['POST'])
@admin_required
@json_endpoint
def upload_pdf() -> Response:
    """Upload a menu PDF for ?tenant_id and store its URL on the tenant."""
    data = parse_payload(PdfUpload, request.get_json(silent=True))
    if data.tenant_id is None:
        raise ValidationError('PDF data and tenant id are required', reason='missing_tenant_id')

    session_db = get_session()
    tenant = tenant_service.get_tenant(session_db, data.tenant_id)
    result = ingest_asset(data.pdf_data, AssetCategory.DOCUMENT, f"menu_{tenant.id}")
    tenant_service.set_menu_pdf(session_db, tenant, result.url)

    return jsonify({'status': 'success', **result.to_dict()})
