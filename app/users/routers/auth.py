from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.dependencies import get_current_active_user
from app.core.jwt_auth import jwt_manager
from app.core.limits import limiter
from app.users.crud.users import authenticate_user, change_password, register_student
from app.users.models.users import User
from app.users.schemas.auth import (
    LoginRequest,
    MessageResponse,
    PasswordChange,
    RegisterRequest,
    TokenResponse,
)
from app.users.schemas.users import UserRead

router = APIRouter(prefix="/auth", tags=["Auth"])


def _token_response(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=jwt_manager.create_access_token(user.id, user.role.value),
        expires_in=jwt_manager.access_token_expire_minutes * 60,
        user=UserRead.model_validate(user),
    )


@router.post(
    "/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED
)
@limiter.limit("5/minute")
async def register(
    request: Request,
    data: RegisterRequest,
    db: AsyncSession = Depends(get_session),
):
    """
    Student self-registration.

    The account is active immediately and the response carries an access token.
    Watchman and admin accounts are created by an admin.
    """
    user = await register_student(db, data)
    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
@limiter.limit("10/minute")
async def login(
    request: Request,
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_session),
):
    user = await authenticate_user(db, credentials.email, credentials.password)
    return _token_response(user)


@router.post("/change-password", response_model=MessageResponse)
@limiter.limit("5/minute")
async def update_password(
    request: Request,
    data: PasswordChange,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_session),
):
    await change_password(db, current_user, data.current_password, data.new_password)
    return MessageResponse(message="Password updated successfully")
