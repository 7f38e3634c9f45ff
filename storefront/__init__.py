"""Flask application factory."""
import os

from flask import Flask, jsonify, redirect, render_template, request, url_for
from flask_wtf.csrf import CSRFProtect, CSRFError
from werkzeug.exceptions import HTTPException

from storefront.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    from storefront.middleware import configure_logging, load_identity, wants_json
    configure_logging(app)

    # Initialize CSRF protection
    csrf = CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({
            'status': 'error',
            'message': 'Your session has expired. Reload the page.',
            'reason': 'csrf_failed'
        }), 400

    # Initialize Sentry for error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            profiles_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache for public profiles
    from storefront.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics instrumentation
    from storefront.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind a reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=1,
            x_proto=1,
            x_host=1,
            x_port=1,
            x_prefix=0
        )

    init_db(app)

    @app.before_request
    def before_request_handler():
        """Re-validate the session role for each request."""
        load_identity()

    # Error Handlers
    from storefront.exceptions import StorefrontError

    @app.errorhandler(StorefrontError)
    def handle_storefront_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"StorefrontError [{error.status_code}] {error.reason}: {error.message}")
        else:
            app.logger.info(f"StorefrontError [{error.status_code}] {error.reason}: {error.message}")

        if wants_json():
            return jsonify(error.to_dict()), error.status_code

        if error.status_code == 401:
            login = 'auth.user_login' if request.path.startswith('/user') else 'auth.admin_login'
            return redirect(url_for(login))
        if error.status_code == 404:
            return render_template('errors/404.html', message=error.message), 404
        return render_template('errors/500.html', message=error.message), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        if wants_json():
            return jsonify({'status': 'error', 'message': 'Not Found', 'reason': 'not_found'}), 404
        return render_template('errors/404.html'), 404

    @app.errorhandler(HTTPException)
    def http_error(error):
        if wants_json():
            reason = error.name.lower().replace(' ', '_')
            return jsonify({'status': 'error', 'message': error.description, 'reason': reason}), error.code
        return error

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        from storefront.database import get_session
        db_session = get_session()
        if db_session is not None:
            db_session.rollback()
        app.logger.error(f"Unhandled Exception: {error}", exc_info=error)

        if wants_json():
            return jsonify({'status': 'error', 'message': 'Internal Server Error', 'reason': 'internal_error'}), 500
        return render_template('errors/500.html'), 500

    # Register blueprints
    from storefront.blueprints.public import public_bp
    from storefront.blueprints.auth import auth_bp
    from storefront.blueprints.admin import admin_bp
    from storefront.blueprints.owner import owner_bp
    from storefront.blueprints.main import main_bp
    from storefront.blueprints.metrics import metrics_bp

    # Review pages post from anonymous browsers without a session token
    csrf.exempt(public_bp)
    app.register_blueprint(public_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(owner_bp)
    app.register_blueprint(main_bp)
    app.register_blueprint(metrics_bp)

    from storefront.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"Storefront started (env={app.config.get('ENV')}, cache={app.config.get('CACHE_ENABLED')})")

    return app
