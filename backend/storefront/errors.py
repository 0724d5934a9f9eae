# Overview: Error taxonomy shared by services and routes, plus the Flask handlers that render it.

"""
Typed errors for the storefront backend.

Services raise these; routes never build error responses by hand. The Flask
error handler renders {"error": message} with the class's status code.

ReconciliationRequired is internal: a payment went through but its order
could not be recorded yet. Clients only ever see a generic "pending
confirmation" message, never the charge reference.
"""

from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException


class StorefrontError(Exception):
    """Base class for expected, user-facing failures."""
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class AuthenticationRequired(StorefrontError):
    status_code = 401
    default_message = "You must be signed in to do that"


class InvalidCredentials(StorefrontError):
    status_code = 401
    default_message = "Invalid email or password"


class InvalidSession(StorefrontError):
    status_code = 401
    default_message = "Invalid or expired session"


class PermissionDenied(StorefrontError):
    status_code = 403
    default_message = "Permission denied"

    def __init__(self, message: str | None = None, required: frozenset[str] | set[str] | None = None):
        super().__init__(message)
        self.required = sorted(required or ())


class OwnershipViolation(StorefrontError):
    status_code = 403
    default_message = "You do not own that resource"


class NotFound(StorefrontError):
    status_code = 404
    default_message = "Not found"


class ValidationError(StorefrontError):
    """400-level input problem."""
    status_code = 400
    default_message = "Invalid input"


class ConflictError(StorefrontError):
    """409-level business rule conflict (e.g., duplicate email)."""
    status_code = 409
    default_message = "Conflict"


class EmptyCartError(StorefrontError):
    status_code = 400
    default_message = "Your cart is empty"


class PaymentError(StorefrontError):
    status_code = 402
    default_message = "Payment failed"

    def __init__(self, message: str | None = None, *, ambiguous: bool = False, attempt_id: str | None = None):
        super().__init__(message)
        self.ambiguous = ambiguous
        self.attempt_id = attempt_id


class ExpiredOrInvalidToken(StorefrontError):
    status_code = 400
    default_message = "The token has either expired or is invalid"


class ReconciliationRequired(StorefrontError):
    status_code = 202
    default_message = "Your order is pending confirmation"

    def __init__(self, charge_id: str, message: str | None = None):
        super().__init__(message)
        self.charge_id = charge_id


def register_error_handlers(app) -> None:
    @app.errorhandler(ReconciliationRequired)
    def handle_reconciliation(exc: ReconciliationRequired):
        # Never expose the charge reference; the customer was charged and the order will follow
        return jsonify({
            "message": ReconciliationRequired.default_message,
            "status": "RECONCILIATION_PENDING",
        }), ReconciliationRequired.status_code

    @app.errorhandler(PermissionDenied)
    def handle_permission_denied(exc: PermissionDenied):
        body = {"error": exc.message}
        if exc.required:
            body["required_permissions"] = exc.required
        return jsonify(body), exc.status_code

    @app.errorhandler(PaymentError)
    def handle_payment_error(exc: PaymentError):
        body = {"error": exc.message}
        if exc.ambiguous:
            body["retry_with_same_attempt_id"] = True
            body["attempt_id"] = exc.attempt_id
        return jsonify(body), exc.status_code

    @app.errorhandler(StorefrontError)
    def handle_storefront_error(exc: StorefrontError):
        return jsonify({"error": exc.message}), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        return jsonify({"error": exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        current_app.logger.exception("Unhandled error")
        return jsonify({"error": "Internal server error"}), 500
