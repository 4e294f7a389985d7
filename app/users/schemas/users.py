from datetime import datetime
import re
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.users.models.users import UserRole, UserStatus

REG_NUMBER_PATTERN = re.compile(r"^[0-9]{7}[A-Z]{2}[0-9]{3}$")


class UserBrief(BaseModel):
    """Проекция пользователя внутри бронирования"""

    model_config = ConfigDict(
        from_attributes=True, alias_generator=to_camel, populate_by_name=True
    )

    id: int
    name: str
    email: str
    role: UserRole


class UserRead(UserBrief):
    status: UserStatus
    reg_number: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


class UserCreate(BaseModel):
    model_config = ConfigDict(
        str_strip_whitespace=True, alias_generator=to_camel, populate_by_name=True
    )

    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    role: UserRole = UserRole.student
    status: Optional[UserStatus] = None
    reg_number: Optional[str] = Field(None, max_length=20)
    phone: Optional[str] = Field(None, max_length=30)
    password: Optional[str] = Field(None, max_length=72)

    @field_validator("reg_number")
    @classmethod
    def validate_reg_number(cls, v):
        if v and not REG_NUMBER_PATTERN.match(v):
            raise ValueError(
                "Registration number must be in the format: 7376232IT286"
            )
        return v


class UserStatusUpdate(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class UserFilters(BaseModel):
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
    search: Optional[str] = None


class UserListResponse(BaseModel):
    users: List[UserRead]
    total: int
