"""Flask application factory for the admin API."""

from __future__ import annotations

from flask import Flask, jsonify, request
from flask_socketio import SocketIO
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from werkzeug.exceptions import HTTPException

from core import get_logger
from core.exceptions import (
    ApplicationError,
    AuthenticationError,
    InvalidTransitionError,
    LedgerError,
    RecordConflictError,
    RecordNotFoundError,
    RecordNotPendingError,
    ValidationError,
)
from database.models import isoformat, utcnow
from web.auth import AdminCredentials, init_login_manager
from web.config_middleware import (
    configure_app,
    setup_security_headers,
    setup_metrics,
)
from web.routes import register_routes
from web.websocket_manager import init_websocket_manager

logger = get_logger(__name__)

ERROR_STATUS = (
    (RecordNotPendingError, 409),
    (RecordConflictError, 409),
    (InvalidTransitionError, 409),
    (RecordNotFoundError, 404),
    (ValidationError, 400),
    (AuthenticationError, 401),
    (LedgerError, 502),
)


def create_app(config, testing=False) -> Flask:
    """Create and configure Flask application.

    Services are attached afterwards through ``app.config``:
    ``ADMIN_SERVICE`` and ``RECEIPT_STORAGE``.

    Args:
        config: Application configuration
        testing: Whether running in testing mode

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)

    configure_app(app, config, testing)
    setup_security_headers(app)
    setup_metrics(app)

    credentials = AdminCredentials(
        username=config.admin_username,
        password_hash=config.admin_password,
    )
    init_login_manager(app, credentials)

    register_routes(app)
    _setup_routes(app)
    _setup_error_handlers(app)

    socketio = SocketIO(app, async_mode="threading", manage_session=False)
    app.extensions["websocket_manager"] = init_websocket_manager(socketio)

    return app


def _setup_routes(app: Flask) -> None:
    @app.route('/metrics')
    def metrics():
        """Expose Prometheus metrics."""
        data = generate_latest()
        return data, 200, {'Content-Type': CONTENT_TYPE_LATEST}


def _error_response(message: str, status: int):
    return jsonify({
        "success": False,
        "error": message,
        "timestamp": isoformat(utcnow()),
    }), status


def _setup_error_handlers(app: Flask) -> None:
    for exc_type, status in ERROR_STATUS:
        def handler(error, status=status):
            logger.info(f"{request.method} {request.path} -> {status}: {error}")
            return _error_response(str(error), status)
        app.register_error_handler(exc_type, handler)

    @app.errorhandler(ApplicationError)
    def application_error(error):
        logger.error(f"Unhandled application error on {request.path}: {error}", exc_info=True)
        return _error_response("Internal error", 500)

    @app.errorhandler(HTTPException)
    def http_error(error):
        return _error_response(error.description or error.name, error.code or 500)

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Internal server error: {error}")
        return _error_response("Internal error", 500)
