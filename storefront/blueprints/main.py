"""Main blueprint with health check endpoints."""
from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from storefront.database import get_session

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    """
    Health check endpoint that validates database connection.

    Returns:
        200: Healthy (DB connected)
        500: Unhealthy (DB error)
    """
    try:
        row = get_session().execute(text("SELECT 1 as health_check")).fetchone()
    except SQLAlchemyError as e:
        return jsonify({
            'status': 'unhealthy',
            'database': 'disconnected',
            'error': str(e),
            'message': 'Failed to connect to database'
        }), 500

    if row and row[0] == 1:
        return jsonify({
            'status': 'healthy',
            'database': 'connected',
            'message': 'Database connection successful'
        }), 200
    return jsonify({
        'status': 'unhealthy',
        'database': 'error',
        'message': 'Unexpected query result'
    }), 500


@main_bp.route('/health/cache')
def health_cache():
    """
    Cache health check endpoint.

    Never returns 500: the cache is optional and the app runs without it.
    """
    from storefront.services.cache_service import get_cache

    if get_cache().is_available():
        return jsonify({'status': 'ok', 'cache': 'connected', 'redis': 'healthy'}), 200
    return jsonify({
        'status': 'degraded',
        'cache': 'unavailable',
        'redis': 'disconnected',
        'message': 'Cache disabled or Redis unavailable (app continues without cache)'
    }), 200
