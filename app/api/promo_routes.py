"""
Promo Code Routes - Admin management plus validation and redemption.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, status

from app.api.dependencies import (
    get_current_user,
    get_promo_engine,
    rate_limit_validation,
    require_admin,
)
from app.db.models import User
from app.models.api import (
    AppliedPromoCode,
    CreatePromoCodeRequest,
    PromoCodeCreatorItem,
    PromoCodeListItem,
    PromoCodeMutationResponse,
    PromoCodeResponse,
    PromoCodeUserItem,
    UpdatePromoCodeRequest,
    UsePromoCodeRequest,
    UsePromoCodeResponse,
    ValidatePromoCodeRequest,
    ValidatePromoCodeResponse,
)
from app.models.domain import PromoCodeDetails, PromoCodeIntent
from app.services.promo_codes import PromoCodeEngine

router = APIRouter(prefix="/promo-codes", tags=["promo-codes"])


def _to_response(details: PromoCodeDetails) -> PromoCodeResponse:
    promo = details.promo
    return PromoCodeResponse(
        id=promo.id,
        code=promo.code,
        type=promo.type,
        value=promo.value,
        expiry_date=promo.expiry_date,
        max_usages=promo.max_usages,
        max_usages_per_user=promo.max_usages_per_user,
        current_usages=promo.current_usages,
        is_active=promo.is_active,
        created_by=promo.created_by,
        created_at=promo.created_at,
        users=[PromoCodeUserItem(id=u.id, name=u.name, email=u.email) for u in details.users],
    )


def _to_list_item(details: PromoCodeDetails) -> PromoCodeListItem:
    creator = details.creator
    return PromoCodeListItem(
        **_to_response(details).model_dump(),
        creator=PromoCodeCreatorItem(id=creator.id, name=creator.name) if creator else None,
    )


@router.post(
    "",
    response_model=PromoCodeMutationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_promo_code(
    request: CreatePromoCodeRequest,
    admin: User = Depends(require_admin),
    engine: PromoCodeEngine = Depends(get_promo_engine),
) -> PromoCodeMutationResponse:
    """
    Create a promo code.

    A random 8-character code is generated when none is given. Percentage
    values above 100 are rejected with 422.
    """
    intent = PromoCodeIntent(
        type=request.type,
        value=request.value,
        code=request.code,
        expiry_date=request.expiry_date,
        max_usages=request.max_usages,
        max_usages_per_user=request.max_usages_per_user,
        user_ids=tuple(request.user_ids or ()),
    )
    details = await engine.create(intent, creator_id=admin.id)
    return PromoCodeMutationResponse(
        message="Promo code created successfully",
        promo_code=_to_response(details),
    )


@router.get("", response_model=list[PromoCodeListItem])
async def list_promo_codes(
    _: User = Depends(require_admin),
    engine: PromoCodeEngine = Depends(get_promo_engine),
) -> list[PromoCodeListItem]:
    """All promo codes, newest first. Served from a 10 minute cache."""
    return [_to_list_item(details) for details in await engine.list_promo_codes()]


@router.patch("/{code}", response_model=PromoCodeMutationResponse)
async def update_promo_code(
    code: str,
    request: UpdatePromoCodeRequest,
    _: User = Depends(require_admin),
    engine: PromoCodeEngine = Depends(get_promo_engine),
) -> PromoCodeMutationResponse:
    """Toggle is_active and/or replace the restriction list."""
    details = await engine.update(code, is_active=request.is_active, user_ids=request.user_ids)
    return PromoCodeMutationResponse(
        message="Promo code updated successfully",
        promo_code=_to_response(details),
    )


@router.post("/validate", response_model=ValidatePromoCodeResponse)
async def validate_promo_code(
    request: ValidatePromoCodeRequest,
    user: User = Depends(rate_limit_validation),
    engine: PromoCodeEngine = Depends(get_promo_engine),
) -> ValidatePromoCodeResponse:
    """Quote the discount for a price without recording usage."""
    quote = await engine.check_eligibility(request.promo_code, user.id, request.price)
    return ValidatePromoCodeResponse(
        price=float(quote.price),
        promocode_discounted_amount=float(quote.discount),
        final_price=float(quote.final_price),
    )


@router.post("/use", response_model=UsePromoCodeResponse)
async def use_promo_code(
    request: UsePromoCodeRequest,
    user: User = Depends(get_current_user),
    engine: PromoCodeEngine = Depends(get_promo_engine),
) -> UsePromoCodeResponse:
    """Redeem a promo code once for the caller."""
    redemption = await engine.redeem(request.code, user.id)
    return UsePromoCodeResponse(
        message="Promo code applied successfully",
        promo_code=AppliedPromoCode(
            code=redemption.code,
            type=redemption.type,
            value=redemption.value,
        ),
    )
