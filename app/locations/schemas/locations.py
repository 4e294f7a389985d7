from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class LocationBrief(BaseModel):
    """Public projection used by the booking form"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class LocationRead(LocationBrief):
    model_config = ConfigDict(
        from_attributes=True, alias_generator=to_camel, populate_by_name=True
    )

    description: Optional[str] = ""
    created_by_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LocationCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., max_length=100)
    description: Optional[str] = Field("", max_length=1000)


class LocationUpdate(LocationCreate):
    pass
