import datetime as dt
from typing import List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.users.schemas.users import UserBrief


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        from_attributes=True, alias_generator=to_camel, populate_by_name=True
    )


class ActionHistoryEntry(_CamelModel):
    """Запись истории действий по бронированию"""

    action: str
    performed_by: Optional[UserBrief] = None
    performed_by_role: str
    performed_at: dt.datetime
    details: Optional[str] = None


class BookingRead(_CamelModel):
    id: int
    user: UserBrief
    date: dt.date
    time: str
    from_place: str
    destination: str
    status: str

    rejection_reason: Optional[str] = None
    rejection_type: Optional[str] = None

    approved_by: Optional[UserBrief] = None
    approval_time: Optional[dt.datetime] = None
    dispatch_time: Optional[dt.datetime] = None
    completion_time: Optional[dt.datetime] = None

    action_history: List[ActionHistoryEntry] = []
    created_at: dt.datetime
    updated_at: Optional[dt.datetime] = None


class BookingCreate(_CamelModel):
    """
    Запрос на бронирование.
    Поля опциональны на уровне схемы, обязательность проверяется при создании,
    чтобы вернуть единый ответ "Missing required fields".
    """

    model_config = ConfigDict(
        str_strip_whitespace=True, alias_generator=to_camel, populate_by_name=True
    )

    date: Optional[Union[dt.date, str]] = None
    time: Optional[str] = None
    from_place: Optional[str] = Field(None, max_length=100)
    destination: Optional[str] = Field(None, max_length=100)


class BookingStatusUpdate(_CamelModel):
    status: str
    rejection_type: Optional[str] = None
    rejection_reason: Optional[str] = Field(None, max_length=1000)


class RejectRequest(_CamelModel):
    rejection_reason: Optional[str] = Field(None, max_length=1000)


class BookingEdit(_CamelModel):
    """Правка бронирования администратором, передаются только изменяемые поля"""

    model_config = ConfigDict(
        str_strip_whitespace=True, alias_generator=to_camel, populate_by_name=True
    )

    date: Optional[Union[dt.date, str]] = None
    time: Optional[str] = None
    from_place: Optional[str] = Field(None, max_length=100)
    destination: Optional[str] = Field(None, max_length=100)
    assigned_watchman_id: Optional[int] = None


class BookingFilters(_CamelModel):
    user_id: Optional[int] = None
    watchman_id: Optional[int] = None
    status: Optional[str] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None


class BookingListResponse(_CamelModel):
    bookings: List[BookingRead]
    total: int
