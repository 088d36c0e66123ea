"""
Promo Code Repository - Explicit storage interface for the promo code engine.

NO DICTIONARIES - Rows are converted to immutable domain snapshots before
leaving the repository.

Atomicity guarantees:
- increment_usage_counter is a single conditional UPDATE evaluated by the
  database, so concurrent redemptions are never lost and the counter never
  passes max_usages.
- Every other write is flushed into the caller's transaction and becomes
  durable on commit().
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Protocol

from sqlalchemy import delete, exists, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from structlog import get_logger

from app.db.models import (
    PROMO_CODE_UNIQUE_CONSTRAINT,
    PromoCode,
    PromoCodeUsage,
    PromoCodeUser,
    User,
    is_unique_violation,
    utc_now,
)
from app.exceptions import DuplicatePromoCodeError
from app.models.domain import PromoCodeData, PromoCodeDetails, PromoCodeIntent, UserSummary

logger = get_logger(__name__)


class PromoCodeRepository(Protocol):
    """Storage operations the promo code engine depends on."""

    async def get_by_code(self, code: str) -> PromoCodeData | None: ...

    async def code_exists(self, code: str) -> bool: ...

    async def existing_user_ids(self, user_ids: Iterable[int]) -> set[int]: ...

    async def insert(
        self, intent: PromoCodeIntent, code: str, created_by: int
    ) -> PromoCodeData: ...

    async def replace_grants(self, promo_id: int, user_ids: Sequence[int]) -> None: ...

    async def list_grants(self, promo_id: int) -> list[int]: ...

    async def list_granted_users(self, promo_id: int) -> list[UserSummary]: ...

    async def has_grants(self, promo_id: int) -> bool: ...

    async def has_grant(self, promo_id: int, user_id: int) -> bool: ...

    async def count_usages(self, promo_id: int, user_id: int) -> int: ...

    async def append_usage(self, promo_id: int, user_id: int, used_at: datetime) -> None: ...

    async def increment_usage_counter(self, promo_id: int) -> bool: ...

    async def set_active(self, promo_id: int, is_active: bool) -> None: ...

    async def list_all(self) -> list[PromoCodeDetails]: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


def _to_data(row: PromoCode) -> PromoCodeData:
    """Convert an ORM row to an immutable snapshot."""
    return PromoCodeData(
        id=row.id,
        code=row.code,
        type=row.type,
        value=row.value,
        expiry_date=row.expiry_date,
        max_usages=row.max_usages,
        max_usages_per_user=row.max_usages_per_user,
        current_usages=row.current_usages,
        is_active=row.is_active,
        created_by=row.created_by,
        created_at=row.created_at,
    )


def _to_summary(user: User) -> UserSummary:
    return UserSummary(id=user.id, name=user.name, email=user.email)


class SQLAlchemyPromoCodeRepository:
    """PromoCodeRepository over an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_code(self, code: str) -> PromoCodeData | None:
        """Case-sensitive exact lookup."""
        stmt = select(PromoCode).where(PromoCode.code == code)
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return _to_data(row) if row is not None else None

    async def code_exists(self, code: str) -> bool:
        stmt = select(exists().where(PromoCode.code == code))
        return bool(await self.session.scalar(stmt))

    async def existing_user_ids(self, user_ids: Iterable[int]) -> set[int]:
        ids = set(user_ids)
        if not ids:
            return set()
        result = await self.session.execute(select(User.id).where(User.id.in_(ids)))
        return set(result.scalars().all())

    async def insert(
        self, intent: PromoCodeIntent, code: str, created_by: int
    ) -> PromoCodeData:
        """
        Insert a new promo code with a zeroed counter.

        Raises:
            DuplicatePromoCodeError: if the unique constraint on code rejects it
            IntegrityError: any other constraint violation, such as an unknown creator
        """
        row = PromoCode(
            code=code,
            type=intent.type,
            value=intent.value,
            expiry_date=intent.expiry_date,
            max_usages=intent.max_usages,
            max_usages_per_user=intent.max_usages_per_user,
            current_usages=0,
            is_active=True,
            created_by=created_by,
            created_at=utc_now(),
        )
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            await self.session.rollback()
            if not is_unique_violation(exc, PROMO_CODE_UNIQUE_CONSTRAINT):
                logger.error("promo_code_insert_failed", code=code, error=str(exc.orig))
                raise
            logger.warning("promo_code_insert_conflict", code=code)
            raise DuplicatePromoCodeError(code) from exc
        return _to_data(row)

    async def replace_grants(self, promo_id: int, user_ids: Sequence[int]) -> None:
        await self.session.execute(
            delete(PromoCodeUser).where(PromoCodeUser.promo_code_id == promo_id)
        )
        self.session.add_all(
            [PromoCodeUser(promo_code_id=promo_id, user_id=user_id) for user_id in user_ids]
        )
        await self.session.flush()

    async def list_grants(self, promo_id: int) -> list[int]:
        stmt = (
            select(PromoCodeUser.user_id)
            .where(PromoCodeUser.promo_code_id == promo_id)
            .order_by(PromoCodeUser.user_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_granted_users(self, promo_id: int) -> list[UserSummary]:
        stmt = (
            select(User)
            .join(PromoCodeUser, PromoCodeUser.user_id == User.id)
            .where(PromoCodeUser.promo_code_id == promo_id)
            .order_by(User.id)
        )
        result = await self.session.execute(stmt)
        return [_to_summary(user) for user in result.scalars().all()]

    async def has_grants(self, promo_id: int) -> bool:
        stmt = select(exists().where(PromoCodeUser.promo_code_id == promo_id))
        return bool(await self.session.scalar(stmt))

    async def has_grant(self, promo_id: int, user_id: int) -> bool:
        stmt = select(
            exists().where(
                PromoCodeUser.promo_code_id == promo_id,
                PromoCodeUser.user_id == user_id,
            )
        )
        return bool(await self.session.scalar(stmt))

    async def count_usages(self, promo_id: int, user_id: int) -> int:
        stmt = (
            select(func.count())
            .select_from(PromoCodeUsage)
            .where(
                PromoCodeUsage.promo_code_id == promo_id,
                PromoCodeUsage.user_id == user_id,
            )
        )
        return int(await self.session.scalar(stmt) or 0)

    async def append_usage(self, promo_id: int, user_id: int, used_at: datetime) -> None:
        self.session.add(
            PromoCodeUsage(promo_code_id=promo_id, user_id=user_id, used_at=used_at)
        )
        await self.session.flush()

    async def increment_usage_counter(self, promo_id: int) -> bool:
        """
        Atomically add one to current_usages.

        Returns False when the code has already reached max_usages.
        """
        stmt = (
            update(PromoCode)
            .where(
                PromoCode.id == promo_id,
                or_(
                    PromoCode.max_usages.is_(None),
                    PromoCode.current_usages < PromoCode.max_usages,
                ),
            )
            .values(current_usages=PromoCode.current_usages + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def set_active(self, promo_id: int, is_active: bool) -> None:
        stmt = (
            update(PromoCode)
            .where(PromoCode.id == promo_id)
            .values(is_active=is_active, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def list_all(self) -> list[PromoCodeDetails]:
        """All promo codes with granted users and creator, newest first."""
        stmt = (
            select(PromoCode)
            .options(selectinload(PromoCode.users), selectinload(PromoCode.creator))
            .order_by(PromoCode.created_at.desc(), PromoCode.id.desc())
        )
        result = await self.session.execute(stmt)
        return [
            PromoCodeDetails(
                promo=_to_data(row),
                users=tuple(_to_summary(user) for user in row.users),
                creator=_to_summary(row.creator) if row.creator else None,
            )
            for row in result.scalars().all()
        ]

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
