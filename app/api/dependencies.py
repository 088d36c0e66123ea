"""
FastAPI Dependencies - Authentication, authorization and service wiring.

NO DICTIONARIES - All dependencies return typed objects.
"""

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.config import settings
from app.db.models import User
from app.db.session import get_write_db
from app.exceptions import AuthenticationError, AuthorizationError, RateLimitError
from app.observability.metrics import metrics
from app.services.auth import AuthService
from app.services.cache import CachePolicy, MemoryCache
from app.services.promo_codes import PromoCodeEngine
from app.services.promo_repository import SQLAlchemyPromoCodeRepository
from app.services.rate_limit import ValidationLimits, rate_limiter

logger = get_logger(__name__)

# Bearer token scheme; missing headers are reported as 401 by get_current_user
bearer_scheme = HTTPBearer(auto_error=False)

# Process-wide promo code cache shared by every request
promo_cache = MemoryCache(maxsize=settings.cache_max_entries)
cache_policy = CachePolicy.from_settings(settings)
validation_limits = ValidationLimits.from_settings(settings)


def get_auth_service(db: AsyncSession = Depends(get_write_db)) -> AuthService:
    """AuthService bound to the request's primary database session."""
    return AuthService(
        db,
        jwt_secret=settings.jwt_secret,
        jwt_algorithm=settings.jwt_algorithm,
        jwt_expire_hours=settings.jwt_expire_hours,
    )


def get_promo_cache() -> MemoryCache:
    return promo_cache


def get_promo_engine(
    db: AsyncSession = Depends(get_write_db),
    cache: MemoryCache = Depends(get_promo_cache),
) -> PromoCodeEngine:
    """PromoCodeEngine over the request's session and the shared cache."""
    return PromoCodeEngine(SQLAlchemyPromoCodeRepository(db), cache, cache_policy)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> User:
    """
    Resolve the bearer token to a user.

    Raises:
        AuthenticationError: no token, or token not accepted
    """
    if credentials is None:
        raise AuthenticationError("Unauthenticated.")

    user = await auth_service.authenticate(credentials.credentials)
    if user is None:
        raise AuthenticationError("Unauthenticated.")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """
    Require the authenticated user to be an administrator.

    Raises:
        AuthorizationError: user lacks the admin flag
    """
    if not user.is_admin:
        logger.warning("admin_access_denied", user_id=user.id)
        raise AuthorizationError()
    return user


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def rate_limit_validation(
    request: Request,
    response: Response,
    user: User = Depends(get_current_user),
) -> User:
    """
    Apply the per-user and per-IP limits of the validation endpoint.

    Sets X-RateLimit-Remaining to the tighter of the two remaining budgets.

    Raises:
        RateLimitError: either limit exceeded
    """
    ip = _client_ip(request)
    checks = [
        (f"validate:user:{user.id}", validation_limits.per_user),
        (f"validate:ip:{ip}", validation_limits.per_ip),
    ]
    try:
        rate_limiter.hit(checks)
    except RateLimitError as exc:
        metrics.rate_limited_total.labels(endpoint="/promo-codes/validate").inc()
        logger.warning(
            "rate_limit_exceeded",
            user_id=user.id,
            client_ip=ip,
            retry_after=exc.retry_after,
        )
        raise

    remaining = min(rate_limiter.get_remaining(key, config) for key, config in checks)
    response.headers["X-RateLimit-Remaining"] = str(remaining)
    return user
