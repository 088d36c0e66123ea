"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
Snapshots are what the cache layer stores; ORM rows never leave the repository.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from app.models.api import DiscountType


@dataclass(frozen=True)
class PromoCodeData:
    """Immutable snapshot of a promo code row."""

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

    def __post_init__(self) -> None:
        """Validate promo code invariants."""
        if self.value < 0:
            raise ValueError(f"Promo code value cannot be negative: {self.value}")
        if self.type == DiscountType.PERCENTAGE and self.value > 100:
            raise ValueError(f"Percentage value cannot exceed 100: {self.value}")
        if self.current_usages < 0:
            raise ValueError(f"Usage counter cannot be negative: {self.current_usages}")


@dataclass(frozen=True)
class PromoCodeIntent:
    """Domain model for a promo code before persistence - immutable intent."""

    type: DiscountType
    value: Decimal
    code: str | None = None
    expiry_date: datetime | None = None
    max_usages: int | None = None
    max_usages_per_user: int | None = None
    user_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class UserSummary:
    """Public projection of a user."""

    id: int
    name: str
    email: str


@dataclass(frozen=True)
class PromoCodeDetails:
    """Promo code together with its restriction list and creator."""

    promo: PromoCodeData
    users: tuple[UserSummary, ...] = ()
    creator: UserSummary | None = None


@dataclass(frozen=True)
class DiscountQuote:
    """Result of pricing a promo code against a price."""

    price: Decimal
    discount: Decimal
    final_price: Decimal


@dataclass(frozen=True)
class Redemption:
    """Result of a successful redemption."""

    code: str
    type: DiscountType
    value: Decimal
    user_id: int
    used_at: datetime = field(compare=False)
