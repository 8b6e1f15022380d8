from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException


class CafeOrderError(Exception):
    status_code = 500
    message = "Server error"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self):
        return {"error": self.message}


class ValidationError(CafeOrderError):
    status_code = 400
    message = "Invalid request"


class NotFound(CafeOrderError):
    status_code = 404
    message = "Not found"


class InvalidTransition(CafeOrderError):
    status_code = 409

    def __init__(self, current_status, requested_status):
        super().__init__(f"Invalid status transition from {current_status} to {requested_status}")
        self.current_status = current_status
        self.requested_status = requested_status

    def to_dict(self):
        data = super().to_dict()
        data["current_status"] = self.current_status
        return data


class CapacityExhausted(CafeOrderError):
    status_code = 409

    def __init__(self, cafe_slug, capacity):
        super().__init__(f"Daily order number capacity ({capacity}) reached for {cafe_slug}.")
        self.cafe_slug = cafe_slug


class TransientContention(CafeOrderError):
    status_code = 500
    message = "Unable to reserve order number"


class NotificationFailure(CafeOrderError):
    """Raised by notifiers; callers log it and carry on."""


def register_error_handlers(app):
    @app.errorhandler(CafeOrderError)
    def handle_cafe_order_error(error):
        if error.status_code >= 500:
            current_app.logger.error("%s: %s", type(error).__name__, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({"error": error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        current_app.logger.exception("Unhandled error")
        return jsonify({"error": "Server error"}), 500
