"""
Promo Code Engine - Creation, eligibility and redemption of discount codes.

NO DICTIONARIES - All operations use strongly typed domain models.

Two distinct per-user policies exist:
- check_eligibility (validate flow) rejects once usage_count reaches
  max_usages_per_user and never records usage.
- redeem (use flow) rejects any code the user has used at least once,
  regardless of max_usages_per_user.

Cached projections are invalidated explicitly after every write to the
promo code they describe. The admin listing is only refreshed by its TTL.
"""

import secrets
import string
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

from structlog import get_logger

from app.exceptions import (
    DomainError,
    DuplicatePromoCodeError,
    NotFoundError,
    RedemptionRejectedError,
    ValidationError,
)
from app.models.api import DiscountType, PromoCodeErrorCode
from app.models.domain import (
    DiscountQuote,
    PromoCodeData,
    PromoCodeDetails,
    PromoCodeIntent,
    Redemption,
)
from app.observability.metrics import metrics
from app.observability.tracing import get_tracer
from app.services.cache import CacheBackend, CachePolicy
from app.services.promo_repository import PromoCodeRepository

logger = get_logger(__name__)
tracer = get_tracer(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 8

_CENT = Decimal("0.01")
_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def _round_money(amount: Decimal) -> Decimal:
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


def calculate_discount(promo_type: DiscountType, value: Decimal, price: Decimal) -> DiscountQuote:
    """
    Price a promo code against a non-negative price.

    Percentage codes take value% of the price; fixed codes take the value
    capped at the price. The final price never goes below zero. Discount and
    final price are each rounded half-up to cents.
    """
    price = Decimal(price)
    value = Decimal(value)
    if price < _ZERO:
        raise DomainError("Price cannot be negative")

    if promo_type == DiscountType.PERCENTAGE:
        discount = price * value / _HUNDRED
    else:
        discount = min(value, price)

    final_price = max(_ZERO, price - discount)
    return DiscountQuote(
        price=price,
        discount=_round_money(discount),
        final_price=_round_money(final_price),
    )


class PromoCodeEngine:
    """
    Business rules for promo codes.

    Constructed per request with a repository bound to the request's session
    and the process-wide cache.
    """

    def __init__(
        self,
        repository: PromoCodeRepository,
        cache: CacheBackend,
        policy: CachePolicy | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.repository = repository
        self.cache = cache
        self.policy = policy or CachePolicy()
        self.clock = clock

    # ========================================================================
    # Creation and administration
    # ========================================================================

    async def generate_unique_code(self) -> str:
        """Random 8-character A-Z0-9 code not yet present in the store."""
        while True:
            code = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
            if not await self.repository.code_exists(code):
                return code

    async def create(self, intent: PromoCodeIntent, creator_id: int) -> PromoCodeDetails:
        """
        Persist a new promo code and its restriction list.

        Raises:
            ValidationError: code taken, unknown user ids or expiry not in the future
            DomainError: percentage value above 100
        """
        errors: dict[str, list[str]] = {}

        if intent.code is not None and await self.repository.code_exists(intent.code):
            errors["code"] = ["The code has already been taken."]

        if intent.expiry_date is not None and intent.expiry_date <= self.clock():
            errors["expiry_date"] = ["The expiry date field must be a date after now."]

        if intent.user_ids:
            known = await self.repository.existing_user_ids(intent.user_ids)
            for index, user_id in enumerate(intent.user_ids):
                if user_id not in known:
                    errors[f"user_ids.{index}"] = [f"The selected user_ids.{index} is invalid."]

        if errors:
            raise ValidationError(errors)

        if intent.type == DiscountType.PERCENTAGE and intent.value > _HUNDRED:
            raise DomainError("Percentage value cannot exceed 100")

        promo = await self._insert(intent, creator_id)
        user_ids = tuple(dict.fromkeys(intent.user_ids))
        if user_ids:
            await self.repository.replace_grants(promo.id, user_ids)
        await self.repository.commit()

        users = tuple(await self.repository.list_granted_users(promo.id))
        await self.invalidate_all(promo)

        metrics.promo_codes_created_total.inc()
        logger.info(
            "promo_code_created",
            code=promo.code,
            promo_code_id=promo.id,
            type=promo.type.value,
            restricted_users=len(users),
            created_by=creator_id,
        )
        return PromoCodeDetails(promo=promo, users=users)

    async def _insert(self, intent: PromoCodeIntent, creator_id: int) -> PromoCodeData:
        """Insert the code, retrying generated codes that lose a uniqueness race."""
        if intent.code is not None:
            return await self.repository.insert(intent, intent.code, creator_id)

        while True:
            code = await self.generate_unique_code()
            try:
                return await self.repository.insert(intent, code, creator_id)
            except DuplicatePromoCodeError:
                logger.warning("generated_code_collision", code=code)

    async def update(
        self,
        code: str,
        is_active: bool | None = None,
        user_ids: list[int] | None = None,
    ) -> PromoCodeDetails:
        """
        Toggle the active flag and/or replace the restriction list.

        Raises:
            NotFoundError: unknown code
            ValidationError: unknown user ids
        """
        promo = await self.repository.get_by_code(code)
        if promo is None:
            raise NotFoundError("Promo code not found", PromoCodeErrorCode.NOT_FOUND)

        if user_ids:
            known = await self.repository.existing_user_ids(user_ids)
            errors = {
                f"user_ids.{index}": [f"The selected user_ids.{index} is invalid."]
                for index, user_id in enumerate(user_ids)
                if user_id not in known
            }
            if errors:
                raise ValidationError(errors)

        # Old grant set must be forgotten before it is replaced
        await self.invalidate_all(promo)

        if is_active is not None:
            await self.repository.set_active(promo.id, is_active)
        if user_ids is not None:
            await self.repository.replace_grants(promo.id, tuple(dict.fromkeys(user_ids)))
        await self.repository.commit()

        updated = await self.repository.get_by_code(code)
        if updated is None:
            raise NotFoundError("Promo code not found", PromoCodeErrorCode.NOT_FOUND)
        await self.invalidate_all(updated)

        users = tuple(await self.repository.list_granted_users(updated.id))
        logger.info(
            "promo_code_updated",
            code=code,
            is_active=updated.is_active,
            restricted_users=len(users),
        )
        return PromoCodeDetails(promo=updated, users=users)

    async def list_promo_codes(self) -> list[PromoCodeDetails]:
        """Admin listing; refreshed only when its cache entry expires."""
        return await self.cache.get_or_compute(
            self.policy.listing_key,
            self.policy.listing_ttl,
            self.repository.list_all,
        )

    # ========================================================================
    # Lookups and predicates
    # ========================================================================

    async def find_by_code(self, code: str) -> PromoCodeData | None:
        """Case-sensitive lookup through the code cache."""
        return await self.cache.get_or_compute(
            self.policy.code_key(code),
            self.policy.code_ttl,
            lambda: self.repository.get_by_code(code),
        )

    def is_valid(self, promo: PromoCodeData) -> bool:
        """Active, not expired and not exhausted."""
        if not promo.is_active:
            return False
        if promo.expiry_date is not None and promo.expiry_date <= self.clock():
            return False
        if promo.max_usages is not None and promo.current_usages >= promo.max_usages:
            return False
        return True

    async def is_restricted(self, promo: PromoCodeData) -> bool:
        return await self.cache.get_or_compute(
            self.policy.restricted_key(promo.id),
            self.policy.restricted_ttl,
            lambda: self.repository.has_grants(promo.id),
        )

    async def has_access(self, promo: PromoCodeData, user_id: int) -> bool:
        return await self.cache.get_or_compute(
            self.policy.access_key(promo.id, user_id),
            self.policy.access_ttl,
            lambda: self.repository.has_grant(promo.id, user_id),
        )

    async def usage_count(self, promo: PromoCodeData, user_id: int) -> int:
        """Number of recorded redemptions of promo by user."""
        return await self.cache.get_or_compute(
            self.policy.usage_key(promo.id, user_id),
            self.policy.usage_ttl,
            lambda: self.repository.count_usages(promo.id, user_id),
        )

    async def is_available_to(self, promo: PromoCodeData, user_id: int) -> bool:
        """Unrestricted, or user holds a grant."""
        if not await self.is_restricted(promo):
            return True
        return await self.has_access(promo, user_id)

    async def can_be_used_by(self, promo: PromoCodeData, user_id: int) -> bool:
        """Validity, restriction list membership and per-user cap combined."""
        if not self.is_valid(promo):
            return False
        if not await self.is_available_to(promo, user_id):
            return False
        if promo.max_usages_per_user is not None:
            if await self.usage_count(promo, user_id) >= promo.max_usages_per_user:
                return False
        return True

    # ========================================================================
    # Writes on redemption
    # ========================================================================

    async def record_usage(self, promo: PromoCodeData, user_id: int) -> Redemption:
        """
        Count one redemption of promo by user.

        The counter increment and the usage record commit together. Not
        idempotent: each call records a separate redemption.

        Raises:
            RedemptionRejectedError: max_usages was reached concurrently
        """
        with tracer.start_as_current_span("promo_code.record_usage") as span:
            span.set_attribute("promo.code", promo.code)
            span.set_attribute("promo.user_id", user_id)

            if not await self.repository.increment_usage_counter(promo.id):
                await self.repository.rollback()
                self.cache.invalidate(self.policy.code_key(promo.code))
                logger.warning("promo_code_exhausted", code=promo.code, user_id=user_id)
                raise RedemptionRejectedError(
                    "Promo code cannot be used", PromoCodeErrorCode.INVALID
                )

            used_at = self.clock()
            await self.repository.append_usage(promo.id, user_id, used_at)
            await self.repository.commit()

        self.cache.invalidate(self.policy.usage_key(promo.id, user_id))
        self.cache.invalidate(self.policy.code_key(promo.code))

        return Redemption(
            code=promo.code,
            type=promo.type,
            value=promo.value,
            user_id=user_id,
            used_at=used_at,
        )

    async def invalidate_all(self, promo: PromoCodeData) -> None:
        """Forget every cached projection of promo, including per-user entries."""
        self.cache.invalidate(self.policy.code_key(promo.code))
        self.cache.invalidate(self.policy.restricted_key(promo.id))
        for user_id in await self.repository.list_grants(promo.id):
            self.cache.invalidate(self.policy.access_key(promo.id, user_id))
            self.cache.invalidate(self.policy.usage_key(promo.id, user_id))

    # ========================================================================
    # Flows
    # ========================================================================

    async def check_eligibility(self, code: str, user_id: int, price: Decimal) -> DiscountQuote:
        """
        Preview the discount a user would get. Records nothing.

        Raises:
            NotFoundError: first failing check, carrying its PROMO_CODE_* code
        """
        with tracer.start_as_current_span("promo_code.check_eligibility") as span:
            span.set_attribute("promo.code", code)
            try:
                promo = await self._eligible_promo(code, user_id)
            except NotFoundError as exc:
                metrics.record_validation(exc.error_code.value)
                logger.info(
                    "promo_code_rejected",
                    code=code,
                    user_id=user_id,
                    reason=exc.error_code.value,
                )
                raise

            quote = calculate_discount(promo.type, promo.value, price)

        metrics.record_validation("valid", discount=float(quote.discount))
        logger.info(
            "promo_code_validated",
            code=code,
            user_id=user_id,
            discount=str(quote.discount),
        )
        return quote

    async def _eligible_promo(self, code: str, user_id: int) -> PromoCodeData:
        promo = await self.find_by_code(code)
        if promo is None:
            raise NotFoundError("Promo code not found", PromoCodeErrorCode.NOT_FOUND)
        if not promo.is_active:
            raise NotFoundError("Promo code is inactive", PromoCodeErrorCode.INACTIVE)
        if promo.expiry_date is not None and promo.expiry_date <= self.clock():
            raise NotFoundError("Promo code has expired", PromoCodeErrorCode.EXPIRED)
        if promo.max_usages is not None and promo.current_usages >= promo.max_usages:
            raise NotFoundError(
                "Promo code usage limit exceeded", PromoCodeErrorCode.USAGE_LIMIT_EXCEEDED
            )
        if not await self.is_available_to(promo, user_id):
            raise NotFoundError(
                "Promo code is not available for this user",
                PromoCodeErrorCode.NOT_AVAILABLE_FOR_USER,
            )
        if promo.max_usages_per_user is not None:
            if await self.usage_count(promo, user_id) >= promo.max_usages_per_user:
                raise NotFoundError(
                    "User has exceeded the maximum usage limit for this promo code",
                    PromoCodeErrorCode.USER_USAGE_LIMIT_EXCEEDED,
                )
        return promo

    async def redeem(self, code: str, user_id: int) -> Redemption:
        """
        Apply a promo code for a user once.

        Raises:
            NotFoundError: unknown code
            RedemptionRejectedError: code not usable by user, or already used by user
        """
        promo = await self.find_by_code(code)
        if promo is None:
            metrics.record_redemption(PromoCodeErrorCode.NOT_FOUND.value)
            raise NotFoundError("Promo code not found", PromoCodeErrorCode.NOT_FOUND)

        # A per-user cap can only be reached by a user who already redeemed,
        # which this flow reports as ALREADY_USED rather than INVALID
        if not self.is_valid(promo) or not await self.is_available_to(promo, user_id):
            metrics.record_redemption(PromoCodeErrorCode.INVALID.value)
            raise RedemptionRejectedError("Promo code cannot be used", PromoCodeErrorCode.INVALID)

        if await self.usage_count(promo, user_id) > 0:
            metrics.record_redemption(PromoCodeErrorCode.ALREADY_USED.value)
            raise RedemptionRejectedError(
                "Promo code already used by this user", PromoCodeErrorCode.ALREADY_USED
            )

        try:
            redemption = await self.record_usage(promo, user_id)
        except RedemptionRejectedError as exc:
            metrics.record_redemption(exc.error_code.value)
            raise

        metrics.record_redemption("applied")
        logger.info("promo_code_redeemed", code=code, user_id=user_id)
        return redemption
