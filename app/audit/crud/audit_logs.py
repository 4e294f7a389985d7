"""Audit log CRUD - entries join the caller's unit of work"""
from typing import List, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.database import db_operation
from app.core.exceptions import ValidationError
from app.audit.models.audit_logs import AuditLog, AuditAction


def record_audit(
    session: AsyncSession,
    action: AuditAction,
    user_id: Optional[int] = None,
    performed_by_id: Optional[int] = None,
    role: Optional[str] = None,
    details: Optional[str] = None,
    reason: Optional[str] = None,
) -> AuditLog:
    """
    Add an audit entry to the session without committing.

    The entry is persisted by the same commit as the change it describes.
    """
    entry = AuditLog(
        action=action.value,
        user_id=user_id,
        performed_by_id=performed_by_id,
        role=role,
        details=details,
        reason=reason,
        status="success",
    )
    session.add(entry)
    return entry


@db_operation
async def get_audit_logs(
    session: AsyncSession,
    user_id: Optional[int] = None,
    action: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
) -> Tuple[List[AuditLog], int]:
    """Newest-first audit entries with optional user/action filters"""
    if skip < 0:
        raise ValidationError("Skip parameter must be >= 0")
    if limit <= 0 or limit > 500:
        raise ValidationError("Limit must be between 1 and 500")

    conditions = []
    if user_id:
        conditions.append(AuditLog.user_id == user_id)
    if action:
        conditions.append(AuditLog.action == action)

    query = (
        select(AuditLog)
        .options(selectinload(AuditLog.user), selectinload(AuditLog.performed_by))
        .where(*conditions)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset(skip)
        .limit(limit)
    )
    count_query = select(func.count(AuditLog.id)).where(*conditions)

    result = await session.execute(query)
    total = (await session.execute(count_query)).scalar() or 0
    return list(result.scalars().all()), total
