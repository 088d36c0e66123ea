"""
Hypothesis Property-Based Tests for discount calculation.

Verifies the pricing rules for both discount types:
- Percentage discounts take value% of the price, rounded half-up to cents
- Fixed discounts never exceed the price
- Final prices are never negative
"""

from decimal import ROUND_HALF_UP, Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from app.exceptions import DomainError
from app.models.api import DiscountType
from app.services.promo_codes import calculate_discount

# ============================================================================
# Hypothesis Strategies
# ============================================================================

prices = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("1000000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)

percentages = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("100"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)

fixed_values = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("999999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)

CENT = Decimal("0.01")


def _round(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


class TestPercentageDiscountProperties:
    """Property tests for percentage codes."""

    @given(price=prices, value=percentages)
    def test_final_price_formula(self, price: Decimal, value: Decimal):
        """final_price = round(max(0, p - p*v/100), 2)."""
        quote = calculate_discount(DiscountType.PERCENTAGE, value, price)
        assert quote.final_price == _round(max(Decimal(0), price - price * value / 100))

    @given(price=prices, value=percentages)
    def test_discount_bounded_by_price(self, price: Decimal, value: Decimal):
        """Discount lies between zero and the price."""
        quote = calculate_discount(DiscountType.PERCENTAGE, value, price)
        assert Decimal(0) <= quote.discount <= price
        assert Decimal(0) <= quote.final_price <= price

    @given(price=prices, value=percentages)
    def test_parts_sum_to_price_within_a_cent(self, price: Decimal, value: Decimal):
        """Independent rounding keeps discount + final within one cent of price."""
        quote = calculate_discount(DiscountType.PERCENTAGE, value, price)
        assert abs(quote.discount + quote.final_price - price) <= CENT

    @given(price=prices)
    def test_full_percentage_is_free(self, price: Decimal):
        """100% off always yields zero."""
        quote = calculate_discount(DiscountType.PERCENTAGE, Decimal("100"), price)
        assert quote.final_price == Decimal("0.00")
        assert quote.discount == _round(price)


class TestFixedDiscountProperties:
    """Property tests for fixed-value codes."""

    @given(price=prices, value=fixed_values)
    def test_discount_is_min_of_value_and_price(self, price: Decimal, value: Decimal):
        """discount = min(v, p)."""
        quote = calculate_discount(DiscountType.FIXED_VALUE, value, price)
        assert quote.discount == _round(min(value, price))

    @given(price=prices, value=fixed_values)
    def test_final_price_never_negative(self, price: Decimal, value: Decimal):
        """final_price = p - discount and is never negative."""
        quote = calculate_discount(DiscountType.FIXED_VALUE, value, price)
        assert quote.final_price >= 0
        assert quote.final_price == _round(price - min(value, price))


class TestDiscountScenarios:
    """Concrete pricing examples."""

    def test_save20_percentage(self):
        """20% off 100 is 20 off, 80 final."""
        quote = calculate_discount(DiscountType.PERCENTAGE, Decimal("20"), Decimal("100"))
        assert quote.discount == Decimal("20.00")
        assert quote.final_price == Decimal("80.00")

    def test_save50_fixed(self):
        """50 off 100 is 50 final."""
        quote = calculate_discount(DiscountType.FIXED_VALUE, Decimal("50"), Decimal("100"))
        assert quote.discount == Decimal("50.00")
        assert quote.final_price == Decimal("50.00")

    def test_fixed_larger_than_price(self):
        """Fixed discount is capped at the price."""
        quote = calculate_discount(DiscountType.FIXED_VALUE, Decimal("50"), Decimal("30"))
        assert quote.discount == Decimal("30.00")
        assert quote.final_price == Decimal("0.00")

    def test_half_up_rounding(self):
        """0.125 rounds to 0.13, not banker's 0.12."""
        quote = calculate_discount(DiscountType.PERCENTAGE, Decimal("12.5"), Decimal("1"))
        assert quote.discount == Decimal("0.13")
        assert quote.final_price == Decimal("0.88")

    def test_zero_price(self):
        quote = calculate_discount(DiscountType.PERCENTAGE, Decimal("50"), Decimal("0"))
        assert quote.discount == Decimal("0.00")
        assert quote.final_price == Decimal("0.00")

    def test_negative_price_rejected(self):
        """Negative prices are a domain error."""
        with pytest.raises(DomainError):
            calculate_discount(DiscountType.FIXED_VALUE, Decimal("5"), Decimal("-1"))
