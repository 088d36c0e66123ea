"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from app.models.api import DiscountType


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


USER_EMAIL_UNIQUE_CONSTRAINT = "uq_users_email"
PROMO_CODE_UNIQUE_CONSTRAINT = "uq_promo_codes_code"

# PostgreSQL SQLSTATE for unique_violation
UNIQUE_VIOLATION = "23505"


def is_unique_violation(exc: IntegrityError, constraint: str) -> bool:
    """
    True when exc was raised by the named unique constraint.

    Foreign key, check and not-null violations return False.
    """
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate is not None and sqlstate != UNIQUE_VIOLATION:
        return False
    return constraint in str(orig)


class User(Base):
    """
    ORM model for users table.

    Credential store for registered users and administrators.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (UniqueConstraint("email", name=USER_EMAIL_UNIQUE_CONSTRAINT),)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<User(id={self.id}, email={self.email}, is_admin={self.is_admin})>"


class AccessToken(Base):
    """
    ORM model for access_tokens table.

    One row per issued bearer token, identified by a SHA-256 hash of the token
    (never the token itself). Deleting the rows revokes the tokens.
    """

    __tablename__ = "access_tokens"

    token_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_access_tokens_user_id", "user_id"),
        Index("idx_access_tokens_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<AccessToken(hash={self.token_hash[:16]}..., user_id={self.user_id})>"


class PromoCode(Base):
    """
    ORM model for promo_codes table.

    current_usages is only ever changed through a single atomic UPDATE.
    """

    __tablename__ = "promo_codes"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    code: Mapped[str] = mapped_column(String(20), nullable=False)
    type: Mapped[DiscountType] = mapped_column(
        SQLEnum(
            DiscountType,
            name="promo_code_type",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    value: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Limits
    max_usages: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_usages_per_user: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_usages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=False
    )

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    creator: Mapped[User] = relationship(User, lazy="raise")
    users: Mapped[list[User]] = relationship(
        User, secondary="promo_code_users", lazy="raise", order_by="User.id"
    )

    __table_args__ = (
        UniqueConstraint("code", name=PROMO_CODE_UNIQUE_CONSTRAINT),
        CheckConstraint("value >= 0", name="ck_promo_value_non_negative"),
        CheckConstraint(
            "type <> 'percentage' OR value <= 100", name="ck_promo_percentage_max_100"
        ),
        CheckConstraint("current_usages >= 0", name="ck_promo_usages_non_negative"),
        CheckConstraint(
            "max_usages IS NULL OR current_usages <= max_usages",
            name="ck_promo_usages_within_max",
        ),
        CheckConstraint("max_usages IS NULL OR max_usages >= 1", name="ck_promo_max_usages"),
        CheckConstraint(
            "max_usages_per_user IS NULL OR max_usages_per_user >= 1",
            name="ck_promo_max_usages_per_user",
        ),
        Index("idx_promo_codes_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<PromoCode(id={self.id}, code={self.code}, type={self.type}, "
            f"value={self.value}, usages={self.current_usages})>"
        )


class PromoCodeUser(Base):
    """
    ORM model for promo_code_users table.

    Restriction grants: any row for a promo code limits it to the listed users.
    """

    __tablename__ = "promo_code_users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    promo_code_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("promo_codes.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("promo_code_id", "user_id", name="uq_promo_code_user"),
        Index("idx_promo_code_users_user_id", "user_id"),
    )


class PromoCodeUsage(Base):
    """
    ORM model for promo_code_usages table.

    Append-only redemption log; a user may appear several times per code.
    """

    __tablename__ = "promo_code_usages"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    promo_code_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("promo_codes.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    used_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        Index("idx_promo_code_usages_code_user", "promo_code_id", "user_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<PromoCodeUsage(promo_code_id={self.promo_code_id}, "
            f"user_id={self.user_id}, used_at={self.used_at})>"
        )
