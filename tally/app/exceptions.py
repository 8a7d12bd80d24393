"""Custom exceptions for the Tally application."""


class TallyException(Exception):
    """Base class for application exceptions with an HTTP status code.

    All custom exceptions inherit from this class and define their specific
    status_code and error code for consistent HTTP response handling.
    """
    status_code: int = 500
    error: str = "internal_error"

    def __init__(self, message: str = "Application error"):
        self.message = message
        super().__init__(message)

    def to_response(self) -> dict:
        return {"error": self.error, "message": self.message}


class BadRequestError(TallyException):
    """Maps to HTTP 400 Bad Request."""
    status_code = 400
    error = "bad_request"


class AuthenticationError(TallyException):
    """Raised when API key authentication fails.

    Maps to HTTP 401 Unauthorized.
    """
    status_code = 401
    error = "authentication_failed"

    def __init__(self, message: str = "Invalid or missing API key"):
        super().__init__(message)


class PermissionDeniedError(TallyException):
    """Maps to HTTP 403 Forbidden."""
    status_code = 403
    error = "permission_denied"

    def __init__(self, message: str = "Admin access required"):
        super().__init__(message)


class NotFoundError(TallyException):
    status_code = 404
    error = "not_found"

    def __init__(self, message: str = "Not found"):
        super().__init__(message)


class ConflictError(TallyException):
    status_code = 409
    error = "conflict"


class InsufficientStockError(BadRequestError):
    """Raised when a paid order needs more units than a product has in stock."""
    error = "insufficient_stock"

    def __init__(self, product_id: str, required: int, available: int | None):
        self.product_id = product_id
        self.required = required
        self.available = available
        super().__init__(f"Insufficient stock for product {product_id}")

    def to_response(self) -> dict:
        body = super().to_response()
        body.update(
            product_id=self.product_id,
            required=self.required,
            available=self.available,
        )
        return body


class UnknownProductError(BadRequestError):
    """Raised by strict bundle expansion when an item references no known product."""
    error = "unknown_product"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Unknown product: {product_id}")


class RateLimitExceededError(TallyException):
    """Raised when a caller has no tokens left for an operation.

    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429
    error = "rate_limit_exceeded"

    def __init__(self, retry_after: int | None = None, message: str = "Too many requests"):
        self.retry_after = retry_after
        super().__init__(message)

    def to_response(self) -> dict:
        body = super().to_response()
        body["retry_after"] = self.retry_after
        return body
