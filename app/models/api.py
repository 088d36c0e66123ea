"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

import re
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class DiscountType(str, Enum):
    """Promo code discount type enumeration."""

    PERCENTAGE = "percentage"
    FIXED_VALUE = "value"


class PromoCodeErrorCode(str, Enum):
    """Machine-readable reasons a promo code was refused."""

    NOT_FOUND = "PROMO_CODE_NOT_FOUND"
    INACTIVE = "PROMO_CODE_INACTIVE"
    EXPIRED = "PROMO_CODE_EXPIRED"
    USAGE_LIMIT_EXCEEDED = "PROMO_CODE_USAGE_LIMIT_EXCEEDED"
    NOT_AVAILABLE_FOR_USER = "PROMO_CODE_NOT_AVAILABLE_FOR_USER"
    USER_USAGE_LIMIT_EXCEEDED = "PROMO_CODE_USER_USAGE_LIMIT_EXCEEDED"
    INVALID = "PROMO_CODE_INVALID"
    ALREADY_USED = "PROMO_CODE_ALREADY_USED"


def _validate_email(v: str) -> str:
    v = v.strip()
    if not _EMAIL_PATTERN.match(v):
        raise ValueError("The email field must be a valid email address.")
    return v


# ============================================================================
# Generic Models
# ============================================================================


class MessageResponse(BaseModel):
    """Plain acknowledgement response."""

    message: str


class ErrorResponse(BaseModel):
    """Error body shared by every non-2xx JSON response."""

    message: str
    error: str | None = None
    errors: dict[str, list[str]] | None = None


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    database: str
    timestamp: str


# ============================================================================
# Auth Models
# ============================================================================


class RegisterRequest(BaseModel):
    """POST /auth/register request body."""

    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8)
    password_confirmation: str
    is_admin: bool = False

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Reject obviously malformed addresses."""
        return _validate_email(v)

    @field_validator("password_confirmation")
    @classmethod
    def validate_confirmation(cls, v: str, info: ValidationInfo) -> str:
        """Confirmation must match the password."""
        if "password" in info.data and v != info.data["password"]:
            raise ValueError("The password confirmation does not match.")
        return v


class RegisterResponse(BaseModel):
    """POST /auth/register response."""

    message: str
    accessToken: str


class LoginRequest(BaseModel):
    """POST /auth/login request body."""

    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)
    remember_me: bool = False

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Reject obviously malformed addresses."""
        return _validate_email(v)


class TokenResponse(BaseModel):
    """POST /auth/login response."""

    accessToken: str
    token_type: str = "Bearer"


class UserResponse(BaseModel):
    """GET /auth/user response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    is_admin: bool
    created_at: datetime
    updated_at: datetime


class UserListItem(BaseModel):
    """Single user in GET /auth/users."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str


# ============================================================================
# Promo Code Models
# ============================================================================


class CreatePromoCodeRequest(BaseModel):
    """POST /promo-codes request body."""

    code: str | None = Field(None, min_length=1, max_length=20)
    type: DiscountType
    value: Decimal = Field(..., ge=0, max_digits=8, decimal_places=2)
    expiry_date: datetime | None = None
    max_usages: int | None = Field(None, ge=1)
    max_usages_per_user: int | None = Field(None, ge=1)
    user_ids: list[int] | None = None

    @field_validator("expiry_date")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        """Naive timestamps are interpreted as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v


class UpdatePromoCodeRequest(BaseModel):
    """PATCH /promo-codes/{code} request body."""

    is_active: bool | None = None
    user_ids: list[int] | None = None


class PromoCodeUserItem(BaseModel):
    """User granted access to a restricted promo code."""

    id: int
    name: str
    email: str


class PromoCodeCreatorItem(BaseModel):
    """Admin who created a promo code."""

    id: int
    name: str


class PromoCodeResponse(BaseModel):
    """Promo code as returned to administrators."""

    id: int
    code: str
    type: DiscountType
    value: Decimal
    expiry_date: datetime | None
    max_usages: int | None
    max_usages_per_user: int | None
    current_usages: int
    is_active: bool
    created_by: int
    created_at: datetime
    users: list[PromoCodeUserItem] = Field(default_factory=list)


class PromoCodeListItem(PromoCodeResponse):
    """Single promo code in GET /promo-codes."""

    creator: PromoCodeCreatorItem | None = None


class PromoCodeMutationResponse(BaseModel):
    """POST /promo-codes and PATCH /promo-codes/{code} response."""

    message: str
    promo_code: PromoCodeResponse


class ValidatePromoCodeRequest(BaseModel):
    """POST /promo-codes/validate request body."""

    price: Decimal = Field(..., ge=0)
    promo_code: str = Field(..., min_length=1)


class ValidatePromoCodeResponse(BaseModel):
    """POST /promo-codes/validate response."""

    price: float
    promocode_discounted_amount: float
    final_price: float


class UsePromoCodeRequest(BaseModel):
    """POST /promo-codes/use request body."""

    code: str = Field(..., min_length=1)


class AppliedPromoCode(BaseModel):
    """Summary of a redeemed promo code."""

    code: str
    type: DiscountType
    value: Decimal


class UsePromoCodeResponse(BaseModel):
    """POST /promo-codes/use response."""

    message: str
    promo_code: AppliedPromoCode
