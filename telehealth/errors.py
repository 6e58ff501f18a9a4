"""API error taxonomy.

Each error carries the HTTP status it maps to and a message that is safe
to show the caller. create_app() registers one handler that renders any
ApiError as {"error": message}.
"""


class ApiError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class ValidationError(ApiError):
    """Missing or malformed request fields."""

    status_code = 400
    message = "Invalid request"


class UnknownPlan(ValidationError):
    """The (product, plan) pair has no configured Stripe price."""

    message = "Invalid product or plan selection"


class AuthError(ApiError):
    status_code = 401
    message = "Authentication required"


class ForbiddenError(AuthError):
    status_code = 403
    message = "Admin access required"


class NotFound(ApiError):
    status_code = 404
    message = "Not found"


class UpstreamError(ApiError):
    """A Stripe API call failed."""

    status_code = 500


class SignatureInvalid(ApiError):
    """Webhook body did not match its Stripe-Signature header."""

    status_code = 400
    message = "Invalid signature"


def json_object(data):
    """Return a parsed JSON body, or raise ValidationError unless it is an object."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data
