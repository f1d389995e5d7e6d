from flask import Blueprint, current_app, jsonify
from flask_wtf.csrf import CSRFError

from .core.store import StoreError
from .errors import AppError, NotFoundError, OperationFailed, ValidationError

error_handlers_bp = Blueprint("error_handlers", __name__)


def _error_response(message, status_code):
    return jsonify({"success": False, "message": message}), status_code


@error_handlers_bp.app_errorhandler(ValidationError)
def handle_validation_error(error):
    """Handles validation errors."""
    current_app.logger.warning(f"Validation Error: {error.message}")
    return _error_response(error.message, error.status_code)


@error_handlers_bp.app_errorhandler(NotFoundError)
def handle_not_found_error(error):
    """Handles not found errors."""
    current_app.logger.warning(f"Not Found Error: {error.message}")
    return _error_response(error.message, error.status_code)


@error_handlers_bp.app_errorhandler(AppError)
def handle_app_error(error):
    """Handles generic application errors."""
    current_app.logger.error(f"Application Error: {error.message}")
    return _error_response(error.message, error.status_code)


@error_handlers_bp.app_errorhandler(StoreError)
def handle_store_error(error):
    """Handles store failures that escaped the engine's own wrapping."""
    current_app.logger.error(f"Store Error: {error}")
    fallback = OperationFailed()
    return _error_response(fallback.message, fallback.status_code)


@error_handlers_bp.app_errorhandler(CSRFError)
def handle_csrf_error(error):
    """Handles CSRF errors."""
    current_app.logger.warning(f"CSRF Error: {error.description}")
    return _error_response(error.description, 400)


@error_handlers_bp.app_errorhandler(404)
def handle_404(e):
    """Handles generic 404 errors for routes that don't exist."""
    return _error_response("Not found.", 404)


@error_handlers_bp.app_errorhandler(500)
def handle_500(e):
    """Handles unexpected server errors."""
    current_app.logger.error(f"Internal Server Error: {e}")
    return _error_response("An unexpected error occurred.", 500)
