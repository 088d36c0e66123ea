"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes. Each class carries the
HTTP status it is rendered with by the handlers registered in app.main.
"""

from app.models.api import PromoCodeErrorCode


class PromoCodeAPIError(Exception):
    """Base exception for all service errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(PromoCodeAPIError):
    """Raised when input fields are malformed, missing or conflicting."""

    status_code = 422

    def __init__(self, errors: dict[str, list[str]], message: str = "Validation failed") -> None:
        self.errors = errors
        super().__init__(message)


class DuplicatePromoCodeError(ValidationError):
    """Raised when the store's unique constraint rejects a promo code."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__({"code": ["The code has already been taken."]})


class AuthenticationError(PromoCodeAPIError):
    """Raised when credentials or bearer token are missing or invalid."""

    status_code = 401


class AuthorizationError(PromoCodeAPIError):
    """Raised when a valid identity lacks admin privileges."""

    status_code = 403

    def __init__(self, message: str = "Access denied. Admin privileges required.") -> None:
        super().__init__(message)


class DomainError(PromoCodeAPIError):
    """Raised when a business rule is violated (e.g. percentage above 100)."""

    status_code = 422


class NotFoundError(PromoCodeAPIError):
    """Raised when a promo code is absent or not usable, with a machine-readable code."""

    status_code = 404

    def __init__(self, message: str, error_code: PromoCodeErrorCode) -> None:
        self.error_code = error_code
        super().__init__(message)


class RedemptionRejectedError(PromoCodeAPIError):
    """Raised when a redemption is refused for an existing promo code."""

    status_code = 400

    def __init__(self, message: str, error_code: PromoCodeErrorCode) -> None:
        self.error_code = error_code
        super().__init__(message)


class RateLimitError(PromoCodeAPIError):
    """Raised when a caller exceeds a rate limit."""

    status_code = 429

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded. Try again in {retry_after} seconds.")
