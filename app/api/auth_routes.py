"""
Auth Routes - Registration, login, logout and user lookups.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_auth_service, get_current_user, require_admin
from app.db.models import User
from app.models.api import (
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
    UserListItem,
    UserResponse,
)
from app.services.auth import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> RegisterResponse:
    """
    Create a user account and return its first bearer token.

    Any caller may set is_admin.
    """
    _, token = await auth_service.register(
        name=request.name,
        email=request.email,
        password=request.password,
        is_admin=request.is_admin,
    )
    return RegisterResponse(message="Successfully created user!", accessToken=token)


@router.post("/login", response_model=TokenResponse)
async def login(
    request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Exchange email and password for a new bearer token."""
    token = await auth_service.login(request.email, request.password)
    return TokenResponse(accessToken=token)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Revoke every token held by the caller."""
    await auth_service.revoke_all(user)
    return MessageResponse(message="Successfully logged out")


@router.get("/user", response_model=UserResponse)
async def current_user(user: User = Depends(require_admin)) -> UserResponse:
    return UserResponse.model_validate(user)


@router.get("/users", response_model=list[UserListItem])
async def list_users(
    _: User = Depends(require_admin),
    auth_service: AuthService = Depends(get_auth_service),
) -> list[UserListItem]:
    users = await auth_service.list_users()
    return [UserListItem.model_validate(user) for user in users]
