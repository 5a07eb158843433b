# fleetdesk/errors.py
from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException, BadRequest

from fleetdesk.db_models import ImmutableVersionError


class ValidationFailed(BadRequest):
    """400 carrying a list of field-level problems."""

    def __init__(self, description="Validation failed", details=None):
        super().__init__(description=description)
        self.details = details or []


def _error_body(e: HTTPException):
    body = {"error": e.name, "message": e.description}
    details = getattr(e, "details", None)
    if details:
        body["details"] = details
    return body


def register_error_handlers(app):
    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return jsonify(_error_body(e)), e.code

    @app.errorhandler(ImmutableVersionError)
    def handle_immutable_version(e):
        current_app.logger.error("Blocked write to published form version: %s", e)
        return jsonify({"error": "Conflict", "message": str(e)}), 409
