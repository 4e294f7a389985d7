from typing import List, Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.jwt_auth import jwt_manager
from app.core.exceptions import (
    AccountInactiveError,
    AuthenticationError,
    AuthorizationError,
)
from app.users.crud.users import get_user_by_id
from app.users.models.users import User, UserRole, UserStatus

security = HTTPBearer(
    scheme_name="JWT Token",
    description="Enter your JWT access token",
    auto_error=False,
)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Dependency для аутентификации пользователя по JWT"""
    if credentials is None or not credentials.credentials.strip():
        raise AuthenticationError("No token, authorization denied")

    payload = jwt_manager.decode_token(credentials.credentials)

    user = await get_user_by_id(db, int(payload["sub"]))
    if not user or user.status == UserStatus.deleted:
        raise AuthenticationError("User not found")

    return user


async def get_current_active_user(
    user: User = Depends(get_current_user),
) -> User:
    """Пользователь с активной учетной записью"""
    if user.status != UserStatus.active:
        raise AccountInactiveError(user.status.value)
    return user


def require_roles(allowed_roles: List[UserRole]):
    """
    Dependency factory to require specific roles.

    Usage:
    @router.get("/admin-only")
    async def admin_route(user: User = Depends(require_roles([UserRole.admin]))):
        ...
    """

    async def role_dependency(
        user: User = Depends(get_current_active_user),
    ) -> User:
        if user.role not in allowed_roles:
            raise AuthorizationError(
                "Forbidden",
                {
                    "required_roles": [role.value for role in allowed_roles],
                    "role": user.role.value,
                },
            )
        return user

    return role_dependency


# Convenience dependencies for common roles
require_admin = require_roles([UserRole.admin])
require_staff = require_roles([UserRole.admin, UserRole.watchman])
require_watchman = require_roles([UserRole.watchman])
require_student = require_roles([UserRole.student])
