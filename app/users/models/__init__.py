from app.core.database import Base
from .users import User, UserRole, UserStatus

__all__ = [
    "Base",
    "User",
    "UserRole",
    "UserStatus",
]
