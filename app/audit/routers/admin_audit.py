from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.dependencies import require_admin
from app.core.limits import limiter
from app.audit.crud.audit_logs import get_audit_logs
from app.audit.schemas.audit_logs import AuditLogListResponse
from app.users.models.users import User

router = APIRouter(prefix="/admin/audit-logs", tags=["Admin Audit"])


@router.get("", response_model=AuditLogListResponse)
@limiter.limit("30/minute")
async def list_audit_logs(
    request: Request,
    user_id: Optional[int] = Query(None, alias="userId"),
    action: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Newest-first account and booking actions."""
    logs, total = await get_audit_logs(
        db, user_id=user_id, action=action, skip=skip, limit=limit
    )
    return AuditLogListResponse(logs=logs, total=total, limit=limit, skip=skip)
