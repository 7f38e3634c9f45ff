"""
Owner Blueprint - self-service for business owners.

Every route works on the tenant bound to the signed-in owner (g.tenant);
owners cannot change their rating threshold or lifecycle status.
"""
import logging

from flask import Blueprint, g, jsonify, render_template, request, session

from storefront.database import get_session
from storefront.middleware import json_endpoint, owner_required
from storefront.schemas import ImageUpload, OwnerTenantUpdate, PdfUpload, parse_payload
from storefront.services import analytics_service, tenant_service
from storefront.services.asset_service import AssetCategory, ingest_asset

logger = logging.getLogger(__name__)

owner_bp = Blueprint('owner', __name__, url_prefix='/user')


@owner_bp.route('/dashboard')
@owner_required
def dashboard():
    return render_template('owner/dashboard.html', tenant=g.tenant.to_dict())


@owner_bp.route('/api/data')
@owner_required
@json_endpoint
def data():
    return jsonify({'status': 'success', 'tenant': g.tenant.to_dict()})


@owner_bp.route('/api/update', methods=['PUT'])
@owner_required
@json_endpoint
def update():
    payload = parse_payload(OwnerTenantUpdate, request.get_json(silent=True))
    tenant = tenant_service.update_own_tenant(get_session(), g.tenant, payload)

    # Keep the session bound to the tenant when the owner changes their email
    session['email'] = tenant.email.lower()
    return jsonify({'status': 'success', 'tenant': tenant.to_dict()})


@owner_bp.route('/api/analytics')
@owner_required
@json_endpoint
def analytics():
    time_range = analytics_service.parse_time_range(request.args.get('time_range'))
    result = analytics_service.get_analytics_summary(
        get_session(),
        time_range=time_range,
        business_number=g.tenant.business_number,
    )
    return jsonify({
        'status': 'success',
        'analytics': result['tenants'][0] if result['tenants'] else None,
        'summary': result['summary'],
        'time_range': result['time_range'],
    })


@owner_bp.route('/upload-image', methods=['POST'])
@owner_required
@json_endpoint
def upload_image():
    payload = parse_payload(ImageUpload, request.get_json(silent=True))
    result = ingest_asset(payload.image_data, AssetCategory.IMAGE, payload.asset_type)
    return jsonify({'status': 'success', **result.to_dict()})


@owner_bp.route('/upload-pdf', methods=['POST'])
@owner_required
@json_endpoint
def upload_pdf():
    """Menu PDF for the owner's own tenant; any tenant id in the body is ignored."""
    payload = parse_payload(PdfUpload, request.get_json(silent=True))
    tenant = g.tenant
    result = ingest_asset(payload.pdf_data, AssetCategory.DOCUMENT, f"menu_{tenant.id}")
    tenant_service.set_menu_pdf(get_session(), tenant, result.url)
    logger.info(f"Menu PDF updated by owner for {tenant.business_number}")
    return jsonify({'status': 'success', **result.to_dict()})
