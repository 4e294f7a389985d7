from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.users.schemas.users import UserBrief


class AuditLogRead(BaseModel):
    model_config = ConfigDict(
        from_attributes=True, alias_generator=to_camel, populate_by_name=True
    )

    id: int
    action: str
    user: Optional[UserBrief] = None
    performed_by: Optional[UserBrief] = None
    role: Optional[str] = None
    details: Optional[str] = None
    reason: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None


class AuditLogListResponse(BaseModel):
    logs: List[AuditLogRead]
    total: int
    limit: int
    skip: int
