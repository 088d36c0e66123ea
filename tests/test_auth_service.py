"""
Tests for AuthService.

Uses a mocked AsyncSession; password hashing and JWT signing are real.
"""

import hashlib
from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
from argon2 import PasswordHasher
from sqlalchemy.exc import IntegrityError

from app.db.models import AccessToken, User
from app.exceptions import AuthenticationError, ValidationError
from app.services.auth import AuthService

SECRET = "test-secret-key-for-jwt-signing-min-32-chars"


class _PgError(Exception):
    """Driver error carrying a PostgreSQL SQLSTATE."""

    def __init__(self, message: str, sqlstate: str):
        super().__init__(message)
        self.sqlstate = sqlstate


def _result(scalar=None, rowcount: int = 0) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none = MagicMock(return_value=scalar)
    result.scalars = MagicMock(return_value=MagicMock(all=MagicMock(return_value=[])))
    result.rowcount = rowcount
    return result


@pytest.fixture
def auth_service(db_session: AsyncMock) -> AuthService:
    return AuthService(db_session, jwt_secret=SECRET)


@pytest.fixture
def user_with_password(user_factory) -> User:
    user = user_factory(user_id=2, name="Alice")
    user.password_hash = PasswordHasher().hash("correct-horse")
    return user


class TestHashToken:
    """Tests for token hashing."""

    def test_sha256_hex(self):
        assert AuthService.hash_token("abc") == hashlib.sha256(b"abc").hexdigest()

    def test_fixed_length(self):
        assert len(AuthService.hash_token("x" * 500)) == 64


class TestRegister:
    """Tests for AuthService.register."""

    async def test_register_creates_user_and_token(self, auth_service, db_session):
        db_session.execute = AsyncMock(return_value=_result(None))

        user, token = await auth_service.register("Alice", "alice@example.com", "password1")

        assert user.email == "alice@example.com"
        assert user.is_admin is False
        assert user.password_hash != "password1"
        added = [call.args[0] for call in db_session.add.call_args_list]
        assert any(isinstance(obj, AccessToken) for obj in added)
        db_session.commit.assert_awaited_once()
        assert jwt.decode(token, SECRET, algorithms=["HS256"])["jti"]

    async def test_register_admin_flag(self, auth_service, db_session):
        db_session.execute = AsyncMock(return_value=_result(None))
        user, _ = await auth_service.register("Root", "root@example.com", "password1", True)
        assert user.is_admin is True

    async def test_duplicate_email(self, auth_service, db_session):
        db_session.execute = AsyncMock(return_value=_result(5))

        with pytest.raises(ValidationError) as exc_info:
            await auth_service.register("Alice", "alice@example.com", "password1")

        assert "email" in exc_info.value.errors
        db_session.commit.assert_not_awaited()

    async def test_duplicate_email_race(self, auth_service, db_session):
        """The unique index rejecting a concurrent insert is still a 422."""
        db_session.execute = AsyncMock(return_value=_result(None))
        db_session.flush = AsyncMock(
            side_effect=IntegrityError(
                "INSERT",
                {},
                _PgError(
                    'duplicate key value violates unique constraint "uq_users_email"', "23505"
                ),
            )
        )

        with pytest.raises(ValidationError) as exc_info:
            await auth_service.register("Alice", "alice@example.com", "password1")

        assert exc_info.value.errors == {"email": ["The email has already been taken."]}
        db_session.rollback.assert_awaited_once()
        db_session.commit.assert_not_awaited()

    async def test_other_integrity_error_propagates(self, auth_service, db_session):
        db_session.execute = AsyncMock(return_value=_result(None))
        db_session.flush = AsyncMock(
            side_effect=IntegrityError(
                "INSERT",
                {},
                _PgError('null value in column "name" violates not-null constraint', "23502"),
            )
        )

        with pytest.raises(IntegrityError):
            await auth_service.register("Alice", "alice@example.com", "password1")


class TestLogin:
    """Tests for AuthService.login."""

    async def test_valid_credentials(self, auth_service, db_session, user_with_password):
        db_session.execute = AsyncMock(return_value=_result(user_with_password))

        token = await auth_service.login("alice@example.com", "correct-horse")

        payload = jwt.decode(token, SECRET, algorithms=["HS256"])
        assert payload["sub"] == "2"
        db_session.commit.assert_awaited_once()

    async def test_wrong_password(self, auth_service, db_session, user_with_password):
        db_session.execute = AsyncMock(return_value=_result(user_with_password))

        with pytest.raises(AuthenticationError) as exc_info:
            await auth_service.login("alice@example.com", "wrong-horse")

        assert exc_info.value.message == "Unauthorized"

    async def test_unknown_email(self, auth_service, db_session):
        db_session.execute = AsyncMock(return_value=_result(None))
        with pytest.raises(AuthenticationError):
            await auth_service.login("ghost@example.com", "whatever")

    async def test_malformed_stored_hash(self, auth_service, db_session, user_factory):
        db_session.execute = AsyncMock(return_value=_result(user_factory()))
        with pytest.raises(AuthenticationError):
            await auth_service.login("alice@example.com", "whatever")


class TestAuthenticate:
    """Tests for AuthService.authenticate."""

    async def test_stored_token_accepted(self, auth_service, db_session, user_factory):
        user = user_factory(user_id=2)
        token = await auth_service.issue_token(user)
        db_session.execute = AsyncMock(return_value=_result(user))

        assert await auth_service.authenticate(token) is user

    async def test_revoked_token_rejected(self, auth_service, db_session, user_factory):
        token = await auth_service.issue_token(user_factory(user_id=2))
        db_session.execute = AsyncMock(return_value=_result(None))

        assert await auth_service.authenticate(token) is None

    async def test_garbage_token(self, auth_service, db_session):
        assert await auth_service.authenticate("not-a-jwt") is None
        db_session.execute.assert_not_awaited()

    async def test_wrong_secret(self, db_session, user_factory):
        other = AuthService(db_session, jwt_secret="another-secret-another-secret-123")
        token = await other.issue_token(user_factory(user_id=2))
        service = AuthService(db_session, jwt_secret=SECRET)
        assert await service.authenticate(token) is None

    async def test_expired_token(self, db_session, user_factory):
        service = AuthService(db_session, jwt_secret=SECRET, jwt_expire_hours=-1)
        token = await service.issue_token(user_factory(user_id=2))
        assert await service.authenticate(token) is None

    async def test_subject_mismatch(self, auth_service, db_session, user_factory):
        token = await auth_service.issue_token(user_factory(user_id=2))
        db_session.execute = AsyncMock(return_value=_result(user_factory(user_id=3, name="Bob")))
        assert await auth_service.authenticate(token) is None


class TestRevokeAll:
    """Tests for logout."""

    async def test_returns_count_and_commits(self, auth_service, db_session, user_factory):
        db_session.execute = AsyncMock(return_value=_result(rowcount=3))

        assert await auth_service.revoke_all(user_factory(user_id=2)) == 3
        db_session.commit.assert_awaited_once()


class TestListUsers:
    async def test_list_users(self, auth_service, db_session, user_factory):
        users = [user_factory(user_id=1, name="Admin"), user_factory(user_id=2)]
        result = _result()
        result.scalars = MagicMock(return_value=MagicMock(all=MagicMock(return_value=users)))
        db_session.execute = AsyncMock(return_value=result)

        assert await auth_service.list_users() == users
