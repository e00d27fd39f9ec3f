"""
Flask application factory.

Creates and configures the Flask app, wires the scoring services and
registers all blueprints.
"""
import functools
import logging
import threading

from flask import Flask, jsonify

logger = logging.getLogger('siteiq')


def create_app(services=None, pipeline_config=None, session_factory=None):
    """
    Create and configure the Flask application.

    `services` lets callers (tests, scripts) inject pre-built stores and
    dispatcher; otherwise they are built against the default session factory.
    """
    from siteiq.logging_config import configure_logging
    from siteiq.errors import ConfigurationError, InvalidArgumentError, StoreError
    from siteiq.extensions import build_services, init_services
    from siteiq.database import get_session, import_models

    app = Flask(__name__)

    configure_logging(app)

    # Import models so Base.metadata knows about them.
    # Schema is managed by Alembic; no init_db() call.
    import_models()

    if services is None:
        services = build_services(session_factory or get_session, pipeline_config)
        # Runs before the interpreter joins executor threads; atexit handlers run after.
        threading._register_atexit(functools.partial(services.dispatcher.shutdown, wait=False))
    init_services(app, services)

    # ── Error mapping ───────────────────────────────────────────────────
    @app.errorhandler(InvalidArgumentError)
    def handle_invalid_argument(e):
        return jsonify({'error': str(e)}), 400

    @app.errorhandler(ConfigurationError)
    def handle_configuration_error(e):
        logger.error("Schema configuration error: %s", e)
        return jsonify({'error': f'Schema configuration error: {e}'}), 500

    @app.errorhandler(StoreError)
    def handle_store_error(e):
        logger.error("Store error: %s", e)
        return jsonify({'error': 'Storage error, try again later'}), 500

    # Register blueprints
    from siteiq.routes.health import bp as health_bp
    from siteiq.routes.input_sets import bp as input_sets_bp
    from siteiq.routes.runs import bp as runs_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(input_sets_bp)
    app.register_blueprint(runs_bp)

    return app
