"""
Flask Application Factory

This module creates and configures the Flask application.
"""
import time
from flask import Flask, g, request, jsonify
from flask_cors import CORS

from .config import get_config
from .extensions import db, migrate
from .api import providers_bp, accounts_bp, sync_bp
from .services.exceptions import TollSyncError
from .services.toll.registry import init_registry
from .utils.logger import setup_logger, get_logger


def create_app(config_class=None):
    """Create and configure Flask application.

    Args:
        config_class: Configuration class to use. If None, auto-detect from environment.

    Returns:
        Configured Flask application instance
    """
    if config_class is None:
        config_class = get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialize logging
    setup_logger(
        log_level=app.config.get('LOG_LEVEL', 'INFO'),
        log_file=app.config.get('LOG_FILE')
    )

    logger = get_logger('app')

    # Initialize CORS
    cors_config = config_class.get_cors_config()
    CORS(app, resources={r"/api/*": cors_config})

    # Initialize database
    db.init_app(app)

    # Initialize Flask-Migrate
    migrate.init_app(app, db)

    # One adapter registry per application
    init_registry(app)

    _register_blueprints(app)

    # Note: Use 'flask db upgrade' (or 'flask init-db') to create database tables
    with app.app_context():
        _cleanup_stale_syncs(logger)

    # Register handlers and hooks
    _register_error_handlers(app)
    _register_request_hooks(app)
    _register_health_check(app)

    db_uri = app.config.get('SQLALCHEMY_DATABASE_URI', '')
    logger.info(f"Application initialized, database: {db_uri.split('@')[-1]}")

    return app


def _register_blueprints(app):
    """Register API blueprints under /api."""
    app.register_blueprint(providers_bp, url_prefix='/api')
    app.register_blueprint(accounts_bp, url_prefix='/api')
    app.register_blueprint(sync_bp, url_prefix='/api')


def _cleanup_stale_syncs(logger):
    """Move accounts left in 'syncing' by a previous process to 'error'."""
    from sqlalchemy import inspect
    from .services.toll_account_service import TollAccountService

    # Tables may not exist yet before the first migration
    if not inspect(db.engine).has_table('company_toll_accounts'):
        return

    cleaned = TollAccountService.cleanup_stale_syncs()
    if cleaned > 0:
        logger.info(f"Cleaned up {cleaned} stale syncs on startup")


def _register_error_handlers(app):
    """Register global error handlers."""
    from .utils.responses import ApiResponse

    @app.errorhandler(TollSyncError)
    def toll_sync_error(error):
        if error.http_status >= 500:
            get_logger('error').error(f"{error.error_code}: {error.message}")
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(400)
    def bad_request(error):
        msg = str(error.description) if hasattr(error, 'description') else 'Bad request'
        return ApiResponse.error(msg, 400, 'BAD_REQUEST')

    @app.errorhandler(404)
    def not_found(error):
        return ApiResponse.not_found('Resource not found')

    @app.errorhandler(405)
    def method_not_allowed(error):
        return ApiResponse.error('Method not allowed', 405, 'METHOD_NOT_ALLOWED')

    @app.errorhandler(500)
    def internal_error(error):
        logger = get_logger('error')
        logger.exception(error)
        return ApiResponse.server_error('Internal server error')


def _register_request_hooks(app):
    """Register request timing hooks."""

    @app.before_request
    def before_request():
        g.start_time = time.time()

    @app.after_request
    def after_request(response):
        if hasattr(g, 'start_time'):
            duration = (time.time() - g.start_time) * 1000
            if duration > 1000:  # Log slow requests
                logger = get_logger('slow_request')
                logger.warning(f"Slow request: {request.method} {request.path} took {duration:.2f}ms")
        return response


def _register_health_check(app):
    """Register health check endpoint."""

    @app.route('/api/health')
    def health_check():
        """Health check endpoint for container orchestration."""
        return jsonify({
            'status': 'healthy',
            'service': 'toll-sync-backend'
        })
