from app.core.database import Base
from .locations import Location

__all__ = [
    "Base",
    "Location",
]
