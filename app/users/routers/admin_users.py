from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.dependencies import require_admin
from app.core.limits import limiter
from app.users.crud.users import (
    create_user,
    list_users,
    set_user_status,
    soft_delete_user,
)
from app.users.models.users import User, UserRole, UserStatus
from app.users.schemas.users import (
    UserCreate,
    UserFilters,
    UserListResponse,
    UserRead,
    UserStatusUpdate,
)

router = APIRouter(prefix="/admin/users", tags=["Admin Users"])


@router.get("", response_model=UserListResponse)
@limiter.limit("30/minute")
async def get_users(
    request: Request,
    role: Optional[UserRole] = Query(None, description="Filter by role"),
    user_status: Optional[UserStatus] = Query(
        None, alias="status", description="Filter by status"
    ),
    search: Optional[str] = Query(None, description="Search by name or email"),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """List users that are not soft-deleted."""
    users, total = await list_users(
        db, UserFilters(role=role, status=user_status, search=search)
    )
    return UserListResponse(users=users, total=total)


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def create_new_user(
    request: Request,
    user_data: UserCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Create a student, watchman or admin account."""
    return await create_user(db, user_data, created_by=admin)


@router.put("/{user_id}/activate", response_model=UserRead)
@limiter.limit("30/minute")
async def activate_user(
    request: Request,
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    return await set_user_status(db, user_id, UserStatus.active, admin)


@router.put("/{user_id}/deactivate", response_model=UserRead)
@limiter.limit("30/minute")
async def deactivate_user(
    request: Request,
    user_id: int,
    payload: Optional[UserStatusUpdate] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """
    Deactivate an account.

    Deactivated users keep their bookings but can no longer create bookings
    or change booking status.
    """
    reason = payload.reason if payload else None
    return await set_user_status(db, user_id, UserStatus.inactive, admin, reason)


@router.delete("/{user_id}", response_model=UserRead)
@limiter.limit("10/minute")
async def delete_user(
    request: Request,
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Soft delete: the account is marked deleted, booking history is preserved."""
    return await soft_delete_user(db, user_id, admin)
