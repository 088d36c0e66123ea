"""
Authentication service - Registration, password login and bearer tokens.

Tokens are HS256 JWTs. Only a SHA-256 hash of each issued token is stored,
so a token is accepted while its signature is valid, it has not expired and
its hash row still exists. Logout deletes every row for the user.
"""

import hashlib
import uuid
from datetime import UTC, datetime, timedelta

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import (
    USER_EMAIL_UNIQUE_CONSTRAINT,
    AccessToken,
    User,
    is_unique_violation,
)
from app.exceptions import AuthenticationError, ValidationError
from app.observability.metrics import metrics

logger = get_logger(__name__)

_password_hasher = PasswordHasher()

_EMAIL_TAKEN = "The email has already been taken."


class AuthService:
    """User credential and token management."""

    def __init__(
        self,
        db: AsyncSession,
        jwt_secret: str,
        jwt_algorithm: str = "HS256",
        jwt_expire_hours: int = 24 * 30,
    ):
        self.db = db
        self.jwt_secret = jwt_secret
        self.jwt_algorithm = jwt_algorithm
        self.jwt_expire_hours = jwt_expire_hours

    @staticmethod
    def hash_token(token: str) -> str:
        """SHA-256 hex digest of a bearer token."""
        return hashlib.sha256(token.encode()).hexdigest()

    async def register(
        self, name: str, email: str, password: str, is_admin: bool = False
    ) -> tuple[User, str]:
        """
        Create a user and issue its first token.

        Raises:
            ValidationError: email already registered
        """
        existing = await self.db.execute(select(User.id).where(User.email == email))
        if existing.scalar_one_or_none() is not None:
            metrics.record_auth("register", success=False)
            raise ValidationError({"email": [_EMAIL_TAKEN]})

        user = User(
            name=name,
            email=email,
            password_hash=_password_hasher.hash(password),
            is_admin=is_admin,
        )
        self.db.add(user)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            # Concurrent registration with the same email
            await self.db.rollback()
            if not is_unique_violation(exc, USER_EMAIL_UNIQUE_CONSTRAINT):
                raise
            metrics.record_auth("register", success=False)
            logger.warning("register_email_conflict", email=email)
            raise ValidationError({"email": [_EMAIL_TAKEN]}) from exc

        token = await self.issue_token(user)
        await self.db.commit()

        metrics.record_auth("register", success=True)
        logger.info("user_registered", user_id=user.id, is_admin=is_admin)
        return user, token

    async def login(self, email: str, password: str) -> str:
        """
        Check credentials and issue a new token.

        Raises:
            AuthenticationError: unknown email or wrong password
        """
        result = await self.db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if user is None or not self._verify_password(user, password):
            metrics.record_auth("login", success=False)
            logger.warning("login_failed", email=email)
            raise AuthenticationError("Unauthorized")

        token = await self.issue_token(user)
        await self.db.commit()

        metrics.record_auth("login", success=True)
        logger.info("login_success", user_id=user.id)
        return token

    def _verify_password(self, user: User, password: str) -> bool:
        try:
            return _password_hasher.verify(user.password_hash, password)
        except (VerificationError, InvalidHashError):
            return False

    async def issue_token(self, user: User) -> str:
        """Sign a JWT for user and store its hash. Caller commits."""
        now = datetime.now(UTC)
        expires_at = now + timedelta(hours=self.jwt_expire_hours)
        payload = {
            "sub": str(user.id),
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": expires_at,
        }
        token = jwt.encode(payload, self.jwt_secret, algorithm=self.jwt_algorithm)

        self.db.add(
            AccessToken(
                token_hash=self.hash_token(token),
                user_id=user.id,
                created_at=now,
                expires_at=expires_at,
            )
        )
        await self.db.flush()
        return token

    async def authenticate(self, token: str) -> User | None:
        """Resolve a bearer token to its user, or None if it is not accepted."""
        try:
            payload = jwt.decode(token, self.jwt_secret, algorithms=[self.jwt_algorithm])
        except jwt.ExpiredSignatureError:
            logger.info("token_expired")
            return None
        except jwt.InvalidTokenError as exc:
            logger.warning("invalid_token", error=str(exc))
            return None

        stmt = (
            select(User)
            .join(AccessToken, AccessToken.user_id == User.id)
            .where(
                AccessToken.token_hash == self.hash_token(token),
                AccessToken.expires_at > datetime.now(UTC),
            )
        )
        result = await self.db.execute(stmt)
        user = result.scalar_one_or_none()

        if user is None or str(user.id) != str(payload.get("sub")):
            logger.warning("revoked_token_rejected")
            return None
        return user

    async def revoke_all(self, user: User) -> int:
        """Delete every stored token of user. Returns the number revoked."""
        result = await self.db.execute(delete(AccessToken).where(AccessToken.user_id == user.id))
        await self.db.commit()

        revoked = int(result.rowcount or 0)  # type: ignore[attr-defined]
        logger.info("user_logged_out", user_id=user.id, tokens_revoked=revoked)
        return revoked

    async def list_users(self) -> list[User]:
        result = await self.db.execute(select(User).order_by(User.id))
        return list(result.scalars().all())
