"""User CRUD - lookup, registration and account status management"""
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from sqlalchemy import func, or_
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import PASSWORD_MIN_LENGTH, REGISTRATION_EMAIL_DOMAIN
from app.core.database import db_operation
from app.core.exceptions import (
    AccountInactiveError,
    AuthenticationError,
    BusinessLogicError,
    DuplicateError,
    NotFoundError,
    ValidationError,
)
from app.core.logging_utils import log_business_event
from app.core.security import password_hasher
from app.audit.crud.audit_logs import record_audit
from app.audit.models.audit_logs import AuditAction
from app.users.models.users import User, UserRole, UserStatus
from app.users.schemas.auth import RegisterRequest
from app.users.schemas.users import UserCreate, UserFilters


@db_operation
async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[User]:
    """Get user by ID, deleted users included"""
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


@db_operation
async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    result = await session.execute(
        select(User).where(func.lower(User.email) == email.strip().lower())
    )
    return result.scalar_one_or_none()


def _check_password_strength(password: str, field: str) -> None:
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(
            "Password too short",
            {
                "fields": {
                    field: f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"
                }
            },
        )


@db_operation
async def create_user(
    session: AsyncSession,
    user_data: UserCreate,
    created_by: Optional[User] = None,
) -> User:
    """
    Create a user.

    Students and admins start active, watchmen wait for admin activation
    unless an explicit status is given.
    """
    if await get_user_by_email(session, user_data.email):
        raise DuplicateError("User", "email", user_data.email)

    if user_data.role == UserRole.student and not user_data.reg_number:
        raise ValidationError(
            "Registration number required for students",
            {"fields": {"reg_number": "Format: 7376232IT286"}},
        )
    if user_data.role == UserRole.watchman and not user_data.phone:
        raise ValidationError(
            "Phone number required for watchmen",
            {"fields": {"phone": "Please provide a valid phone number"}},
        )
    if user_data.password is not None:
        _check_password_strength(user_data.password, "password")

    status = user_data.status
    if status is None:
        status = (
            UserStatus.pending
            if user_data.role == UserRole.watchman
            else UserStatus.active
        )

    user = User(
        name=user_data.name,
        email=user_data.email.lower(),
        role=user_data.role,
        status=status,
        reg_number=user_data.reg_number if user_data.role == UserRole.student else None,
        phone=user_data.phone if user_data.role == UserRole.watchman else None,
        password_hash=(
            password_hasher.hash(user_data.password) if user_data.password else None
        ),
    )
    session.add(user)
    await session.flush()

    record_audit(
        session,
        AuditAction.user_created,
        user_id=user.id,
        performed_by_id=created_by.id if created_by else None,
        role=user.role.value,
        details=f"User {user.name} ({user.email}) created",
    )
    await session.commit()
    await session.refresh(user)

    log_business_event("user_created", "user", user.id, {"role": user.role.value})
    return user


@db_operation
async def list_users(
    session: AsyncSession, filters: Optional[UserFilters] = None
) -> Tuple[List[User], int]:
    """Users that are not soft-deleted, newest first"""
    conditions = [User.status != UserStatus.deleted]

    if filters:
        if filters.role:
            conditions.append(User.role == filters.role)
        if filters.status:
            conditions.append(User.status == filters.status)
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            conditions.append(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

    result = await session.execute(
        select(User).where(*conditions).order_by(User.created_at.desc(), User.id.desc())
    )
    users = list(result.scalars().all())
    return users, len(users)


async def _count_other_active_admins(session: AsyncSession, user_id: int) -> int:
    result = await session.execute(
        select(func.count(User.id)).where(
            User.role == UserRole.admin,
            User.status == UserStatus.active,
            User.id != user_id,
        )
    )
    return result.scalar() or 0


@db_operation
async def set_user_status(
    session: AsyncSession,
    user_id: int,
    status: UserStatus,
    performed_by: User,
    reason: Optional[str] = None,
) -> User:
    """
    Activate or deactivate an account.

    An admin cannot deactivate themselves, and at least one active admin
    must remain.
    """
    if status not in (UserStatus.active, UserStatus.inactive):
        raise ValidationError(
            "Invalid status", {"fields": {"status": "Status must be active or inactive"}}
        )

    user = await get_user_by_id(session, user_id)
    if not user or user.status == UserStatus.deleted:
        raise NotFoundError("User", str(user_id))

    if status == UserStatus.inactive:
        if user.id == performed_by.id:
            raise BusinessLogicError(
                "Cannot deactivate yourself",
                {"hint": "You cannot deactivate your own admin account"},
            )
        if user.role == UserRole.admin and not await _count_other_active_admins(
            session, user.id
        ):
            raise BusinessLogicError(
                "Cannot deactivate last admin",
                {"hint": "At least one admin must remain active"},
            )

    user.status = status
    action = (
        AuditAction.user_activated
        if status == UserStatus.active
        else AuditAction.user_deactivated
    )
    record_audit(
        session,
        action,
        user_id=user.id,
        performed_by_id=performed_by.id,
        role=user.role.value,
        details=f"User {user.name} ({user.email}) is now {status.value}",
        reason=reason,
    )
    await session.commit()
    await session.refresh(user)

    log_business_event(action.value, "user", user.id, {"performed_by": performed_by.id})
    return user


@db_operation
async def soft_delete_user(
    session: AsyncSession, user_id: int, performed_by: User
) -> User:
    """Mark a user deleted; bookings and their history stay untouched"""
    user = await get_user_by_id(session, user_id)
    if not user or user.status == UserStatus.deleted:
        raise NotFoundError("User", str(user_id))

    if user.id == performed_by.id:
        raise BusinessLogicError("Cannot delete yourself")

    if user.role == UserRole.admin and not await _count_other_active_admins(
        session, user.id
    ):
        raise BusinessLogicError(
            "Cannot delete last admin",
            {"hint": "At least one admin must remain in the system"},
        )

    user.status = UserStatus.deleted
    user.deleted_at = datetime.now(timezone.utc)
    record_audit(
        session,
        AuditAction.user_deleted,
        user_id=user.id,
        performed_by_id=performed_by.id,
        role=user.role.value,
        details=f"User {user.name} ({user.email}) deleted, booking history preserved",
    )
    await session.commit()
    await session.refresh(user)

    log_business_event("user_deleted", "user", user.id, {"performed_by": performed_by.id})
    return user


@db_operation
async def register_student(session: AsyncSession, data: RegisterRequest) -> User:
    """Self-registration; the account is active right away"""
    email = data.email.strip().lower()
    if REGISTRATION_EMAIL_DOMAIN and not email.endswith(f"@{REGISTRATION_EMAIL_DOMAIN}"):
        raise ValidationError(
            "Invalid email format",
            {"fields": {"email": f"Email must end with @{REGISTRATION_EMAIL_DOMAIN}"}},
        )

    return await create_user(
        session,
        UserCreate(
            name=data.name,
            email=email,
            role=UserRole.student,
            reg_number=data.reg_number,
            password=data.password,
        ),
    )


@db_operation
async def authenticate_user(session: AsyncSession, email: str, password: str) -> User:
    """
    Check email and password.

    Unknown email, deleted account, account without a password and wrong
    password all give the same 401. A correct password on an account that
    is not active gives 403 and is written to the audit log.
    """
    user = await get_user_by_email(session, email)
    if (
        not user
        or user.status == UserStatus.deleted
        or not password_hasher.verify(password, user.password_hash)
    ):
        raise AuthenticationError("Invalid credentials")

    if user.status != UserStatus.active:
        record_audit(
            session,
            AuditAction.login_blocked,
            user_id=user.id,
            performed_by_id=user.id,
            role=user.role.value,
            details=f"Login blocked - account status: {user.status.value}",
        )
        await session.commit()
        raise AccountInactiveError(user.status.value)

    log_business_event("user_logged_in", "user", user.id, {"role": user.role.value})
    return user


@db_operation
async def change_password(
    session: AsyncSession, user: User, current_password: str, new_password: str
) -> User:
    if not password_hasher.verify(current_password, user.password_hash):
        raise ValidationError(
            "Current password is incorrect",
            {"fields": {"current_password": "Current password is incorrect"}},
        )
    _check_password_strength(new_password, "new_password")

    user.password_hash = password_hasher.hash(new_password)
    record_audit(
        session,
        AuditAction.password_changed,
        user_id=user.id,
        performed_by_id=user.id,
        role=user.role.value,
        details=f"Password changed for {user.email}",
    )
    await session.commit()
    await session.refresh(user)

    log_business_event("password_changed", "user", user.id)
    return user
