from app.core.database import Base
from .audit_logs import AuditLog, AuditAction

__all__ = [
    "Base",
    "AuditLog",
    "AuditAction",
]
