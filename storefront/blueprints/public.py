"""
Public storefront blueprint (no authentication).

Pages keyed by ?BIS=<business number>:
- /            review landing page
- /thank-you   shown after an internal review
- /menu        menu PDF viewer

JSON API used by those pages: tenant lookup, visit tracking, review
submission, the rating gate and the menu PDF proxy.
"""
import logging
import secrets

import requests
from flask import Blueprint, current_app, jsonify, render_template, request, session, Response, stream_with_context

from storefront.blueprints.metrics import (
    storefront_gate_decisions_total, storefront_reviews_total, storefront_visits_total
)
from storefront.database import get_session
from storefront.exceptions import NotFoundError, StorefrontError, ValidationError
from storefront.schemas import (
    RatingSelection, ReviewSubmission, VisitRequest, is_valid_business_number, parse_payload
)
from storefront.services import analytics_service, tenant_service
from storefront.services.rating_gate import RatingGate
from storefront.services.storage_service import is_storage_url

logger = logging.getLogger(__name__)

public_bp = Blueprint('public', __name__)

MAX_REMEMBERED_GATES = 20
PDF_CHUNK_SIZE = 64 * 1024


def _profile_from_query():
    """(business_number, profile) for ?BIS=; profile is None when unknown or malformed."""
    business_number = (request.args.get('BIS') or '').strip()
    if not is_valid_business_number(business_number):
        return business_number or None, None
    return business_number, tenant_service.get_public_profile(get_session(), business_number)


# =====================================================
# PAGES
# =====================================================

@public_bp.route('/')
def review_page():
    """Review landing page. Visit tracking and rating happen from the page script."""
    business_number, profile = _profile_from_query()
    return render_template(
        'review.html',
        business_number=business_number,
        profile=profile,
        gate_id=secrets.token_urlsafe(16),
    )


@public_bp.route('/thank-you')
def thank_you_page():
    business_number, profile = _profile_from_query()
    rating = request.args.get('rating', type=int) or 0
    return render_template('thank_you.html', business_number=business_number, profile=profile, rating=rating)


@public_bp.route('/menu')
def menu_page():
    business_number, profile = _profile_from_query()
    menu_pdf = profile.get('menu_pdf') if profile else None
    return render_template('menu.html', business_number=business_number, profile=profile, menu_pdf=menu_pdf)


# =====================================================
# API
# =====================================================

@public_bp.route('/api/tenant/<business_number>')
def tenant_profile(business_number):
    """Public-safe subset of a tenant record."""
    if not is_valid_business_number(business_number):
        raise ValidationError(
            'Invalid business number format. Expected format: BIS00001',
            reason='invalid_business_number'
        )

    profile = tenant_service.get_public_profile(get_session(), business_number)
    if profile is None:
        raise NotFoundError('Tenant not found or inactive', reason='tenant_not_found')

    return jsonify({'status': 'success', 'tenant': profile})


@public_bp.route('/api/track-visit', methods=['POST'])
def track_visit():
    data = parse_payload(VisitRequest, request.get_json(silent=True))

    tenant = analytics_service.record_visit(get_session(), data.business_number)
    if tenant is not None:
        storefront_visits_total.inc()

    return jsonify({
        'status': 'success',
        'message': 'Visit tracked successfully',
        'recorded': tenant is not None,
    })


@public_bp.route('/api/submit-review', methods=['POST'])
def submit_review():
    data = parse_payload(ReviewSubmission, request.get_json(silent=True))

    tenant = analytics_service.record_review(
        get_session(), data.business_number, data.rating,
        timestamp=data.timestamp, kind=data.kind
    )
    if tenant is not None:
        storefront_reviews_total.labels(rating=str(data.rating)).inc()

    return jsonify({
        'status': 'success',
        'message': 'Review submitted successfully',
        'recorded': tenant is not None,
    })


def _remembered_decision(gate_id):
    if not gate_id:
        return None
    return session.get('rating_gates', {}).get(gate_id)


def _remember_decision(gate_id, decision):
    if not gate_id:
        return
    gates = dict(session.get('rating_gates', {}))
    gates[gate_id] = decision
    # Oldest first; keep the cookie small
    while len(gates) > MAX_REMEMBERED_GATES:
        gates.pop(next(iter(gates)))
    session['rating_gates'] = gates


@public_bp.route('/api/rate', methods=['POST'])
def rate():
    """
    Route a star rating through the tenant's rating gate.

    Returns the decision the page should follow: open the external review
    site, show an acknowledgment, or go to the thank-you page.
    """
    data = parse_payload(RatingSelection, request.get_json(silent=True))

    remembered = _remembered_decision(data.gate_id)
    if remembered is not None:
        logger.info(f"Rating gate {data.gate_id} already decided for {data.business_number}")
        return jsonify({'status': 'success', 'decision': remembered, 'replayed': True})

    db_session = get_session()
    profile = tenant_service.get_public_profile(db_session, data.business_number)
    if profile is None:
        raise NotFoundError('Tenant not found or inactive', reason='tenant_not_found')

    def submit(rating):
        tenant = analytics_service.record_review(db_session, data.business_number, rating, kind='internal_review')
        if tenant is None:
            raise NotFoundError('Tenant disappeared before the review was recorded', reason='tenant_not_found')
        storefront_reviews_total.labels(rating=str(rating)).inc()

    gate = RatingGate(
        data.business_number,
        profile.get('minimum_rating'),
        profile.get('review_url'),
        submit,
    )
    decision = gate.select(data.rating).to_dict()
    storefront_gate_decisions_total.labels(outcome=decision['action']).inc()
    _remember_decision(data.gate_id, decision)

    return jsonify({'status': 'success', 'decision': decision, 'replayed': False})


@public_bp.route('/api/pdf-proxy')
def pdf_proxy():
    """Stream a stored menu PDF. Only URLs on the object store's public host are fetched."""
    url = (request.args.get('url') or '').strip()
    if not url:
        raise ValidationError('PDF URL is required', reason='missing_url')
    if not is_storage_url(url, current_app.config.get('S3_PUBLIC_URL')):
        raise ValidationError('Invalid PDF URL', reason='invalid_pdf_url')

    try:
        upstream = requests.get(
            url,
            stream=True,
            timeout=current_app.config.get('PDF_PROXY_TIMEOUT', 15),
            headers={'User-Agent': 'storefront-pdf-proxy/1.0'},
        )
    except requests.RequestException as e:
        logger.error(f"[STORAGE] ✗ PDF fetch failed for {url}: {e}")
        raise StorefrontError('Failed to fetch PDF from storage', 502, 'storage_unreachable')

    if upstream.status_code != 200:
        upstream.close()
        logger.warning(f"[STORAGE] PDF fetch returned {upstream.status_code} for {url}")
        status_code = upstream.status_code if 400 <= upstream.status_code < 500 else 502
        raise StorefrontError(f"Failed to fetch PDF: {upstream.reason}", status_code, 'upstream_error')

    def generate():
        try:
            for chunk in upstream.iter_content(chunk_size=PDF_CHUNK_SIZE):
                if chunk:
                    yield chunk
        finally:
            upstream.close()

    return Response(
        stream_with_context(generate()),
        mimetype='application/pdf',
        headers={
            'Content-Disposition': 'inline',
            'Cache-Control': 'public, max-age=3600',
            'Access-Control-Allow-Origin': '*',
        },
    )
