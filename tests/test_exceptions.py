"""
Tests for exception classes.

Covers status codes, typed attributes and messages.
"""

import pytest

from app.exceptions import (
    AuthenticationError,
    AuthorizationError,
    DomainError,
    DuplicatePromoCodeError,
    NotFoundError,
    PromoCodeAPIError,
    RateLimitError,
    RedemptionRejectedError,
    ValidationError,
)
from app.models.api import PromoCodeErrorCode


class TestPromoCodeAPIError:
    """Tests for the base error."""

    def test_is_exception(self):
        assert issubclass(PromoCodeAPIError, Exception)

    def test_message(self):
        exc = PromoCodeAPIError("boom")
        assert exc.message == "boom"
        assert str(exc) == "boom"
        assert exc.status_code == 500

    @pytest.mark.parametrize(
        ("exc_class", "status"),
        [
            (AuthenticationError, 401),
            (DomainError, 422),
        ],
    )
    def test_simple_statuses(self, exc_class, status):
        exc = exc_class("message")
        assert exc.status_code == status
        assert isinstance(exc, PromoCodeAPIError)


class TestValidationError:
    """Tests for field-level validation errors."""

    def test_errors_and_default_message(self):
        exc = ValidationError({"code": ["The code has already been taken."]})
        assert exc.status_code == 422
        assert exc.message == "Validation failed"
        assert exc.errors["code"] == ["The code has already been taken."]

    def test_duplicate_code_is_validation_error(self):
        exc = DuplicatePromoCodeError("SAVE20")
        assert isinstance(exc, ValidationError)
        assert exc.code == "SAVE20"
        assert "code" in exc.errors


class TestAuthorizationError:
    def test_default_message(self):
        exc = AuthorizationError()
        assert exc.status_code == 403
        assert exc.message == "Access denied. Admin privileges required."


class TestPromoCodeErrors:
    """Tests for errors carrying PROMO_CODE_* codes."""

    def test_not_found(self):
        exc = NotFoundError("Promo code not found", PromoCodeErrorCode.NOT_FOUND)
        assert exc.status_code == 404
        assert exc.error_code.value == "PROMO_CODE_NOT_FOUND"

    def test_redemption_rejected(self):
        exc = RedemptionRejectedError(
            "Promo code already used by this user", PromoCodeErrorCode.ALREADY_USED
        )
        assert exc.status_code == 400
        assert exc.error_code.value == "PROMO_CODE_ALREADY_USED"


class TestRateLimitError:
    def test_retry_after_in_message(self):
        exc = RateLimitError(retry_after=42)
        assert exc.status_code == 429
        assert exc.retry_after == 42
        assert "42 seconds" in exc.message
