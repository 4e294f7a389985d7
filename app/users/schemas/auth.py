from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.users.schemas.users import REG_NUMBER_PATTERN, UserRead


class _AuthModel(BaseModel):
    model_config = ConfigDict(
        str_strip_whitespace=True, alias_generator=to_camel, populate_by_name=True
    )


class RegisterRequest(_AuthModel):
    """Самостоятельная регистрация студента"""

    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=72)
    reg_number: str = Field(..., max_length=20)

    @field_validator("reg_number")
    @classmethod
    def validate_reg_number(cls, v):
        if not REG_NUMBER_PATTERN.match(v):
            raise ValueError(
                "Registration number must be in the format: 7376232IT286"
            )
        return v


class LoginRequest(_AuthModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=72)


class PasswordChange(_AuthModel):
    current_password: str = Field(..., min_length=1, max_length=72)
    new_password: str = Field(..., min_length=1, max_length=72)


class TokenResponse(_AuthModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    user: UserRead


class MessageResponse(BaseModel):
    message: str
    details: Optional[str] = None
