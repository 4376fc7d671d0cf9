"""Error handlers for the application."""
from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from inventory_access.core.errors import AccessError


def register_error_handlers(app):
    """Register error handlers with the Flask app."""

    @app.errorhandler(AccessError)
    def access_error(error):
        """Render core errors as ``{"error": <reason>, "message": ...}``."""
        if error.status >= 500:
            app.logger.error(f"Store failure: {error.detail}", exc_info=True)
            return jsonify({"error": error.reason, "message": "An unexpected error occurred"}), error.status
        if error.status in (401, 403):
            app.logger.info(f"{request_summary()} denied: {error.reason} ({error.detail})")
        return jsonify(error.to_dict()), error.status

    @app.errorhandler(400)
    def bad_request(error):
        """Handle 400 Bad Request errors (e.g. malformed JSON bodies)."""
        return jsonify({"error": "Bad Request", "message": _description(error, "Bad request")}), 400

    @app.errorhandler(401)
    def unauthorized(error):
        return jsonify({"error": "Unauthenticated", "message": "Authentication required"}), 401

    @app.errorhandler(403)
    def forbidden(error):
        return jsonify({"error": "Forbidden", "message": "Insufficient permissions"}), 403

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Not Found", "message": "Resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"error": "Method Not Allowed", "message": _description(error, "Method not allowed")}), 405

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 Internal Server Error."""
        # ALWAYS log the full error (even in production) - logs are secure
        app.logger.error(f"Internal error: {error}", exc_info=True)
        return jsonify({"error": "Internal Server Error", "message": "An unexpected error occurred"}), 500

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions."""
        # Pass through HTTP errors
        if isinstance(error, HTTPException):
            return error

        app.logger.error(f"Unhandled exception: {error}", exc_info=True)
        return jsonify({"error": "Internal Server Error", "message": "An unexpected error occurred"}), 500


def request_summary() -> str:
    return f"{request.method} {request.path}"


def _description(error, default: str) -> str:
    description = getattr(error, "description", None)
    return str(description) if description else default
