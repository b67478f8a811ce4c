"""
Flask application factory.

Creates and configures the app, registers all blueprints and the JSON
error handlers for the service error taxonomy.
"""
import hmac
import logging
from flask import Flask, request, jsonify
from sqlalchemy.exc import SQLAlchemyError

from clinic_crm.errors import CRMError

logger = logging.getLogger('clinic_crm')


def create_app():
    """Create and configure the Flask application."""
    from clinic_crm.logging_config import configure_logging
    from clinic_crm.config import SECRET_KEY, API_TOKEN

    app = Flask(__name__)

    configure_logging(app)

    app.secret_key = SECRET_KEY

    # ── Bearer token gate ───────────────────────────────────────────────
    OPEN_PATHS = {'/health'}

    @app.before_request
    def require_token():
        if not API_TOKEN:
            return  # No token set — open access (local dev)
        if request.path in OPEN_PATHS:
            return
        header = request.headers.get('Authorization', '')
        supplied = header[len('Bearer '):] if header.startswith('Bearer ') else ''
        if not hmac.compare_digest(supplied, API_TOKEN):
            return jsonify({'error': 'Unauthorized'}), 401

    # ── Error mapping ───────────────────────────────────────────────────
    @app.errorhandler(CRMError)
    def handle_crm_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(e):
        logger.error("Unhandled database error", exc_info=e)
        return jsonify({'error': 'Database unavailable'}), 503

    # Register blueprints
    from clinic_crm.routes.health import bp as health_bp
    from clinic_crm.routes.pipeline import bp as pipeline_bp
    from clinic_crm.routes.leads import bp as leads_bp
    from clinic_crm.routes.settings import bp as settings_bp
    from clinic_crm.routes.reports import bp as reports_bp
    from clinic_crm.routes.changes import bp as changes_bp
    from clinic_crm.routes.messages import bp as messages_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(pipeline_bp)
    app.register_blueprint(leads_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(changes_bp)
    app.register_blueprint(messages_bp)

    # Import models so Base.metadata knows about them (required for SQLAlchemy).
    # Schema is managed by Alembic — no create_all() call.
    import importlib
    importlib.import_module('clinic_crm.models.clinic')
    importlib.import_module('clinic_crm.models.stage')
    importlib.import_module('clinic_crm.models.lead')
    importlib.import_module('clinic_crm.models.ai_report')
    importlib.import_module('clinic_crm.models.message')

    return app
