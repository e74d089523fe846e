"""Flask application factory."""
import logging
import os
from flask import Flask, jsonify, request
from marketplace.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.getLogger('marketplace').setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Initialize Sentry for error tracking in production
    if os.getenv('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            environment=app.config.get('ENV'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Setup Prometheus metrics instrumentation
    from marketplace.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind a reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    # Initialize database
    init_db(app)

    # Error Handlers
    from marketplace.exceptions import MarketplaceError

    @app.errorhandler(MarketplaceError)
    def handle_marketplace_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"MarketplaceError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"MarketplaceError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    def internal_error(error):
        import traceback
        app.logger.error(f"Unhandled Exception on {request.path}: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from marketplace.blueprints.checkout import checkout_bp
    from marketplace.blueprints.metrics import metrics_bp

    app.register_blueprint(checkout_bp)
    app.register_blueprint(metrics_bp)

    app.logger.info(f"DEFAULT_CURRENCY={app.config.get('DEFAULT_CURRENCY')}")

    return app
