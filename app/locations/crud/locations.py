"""Location CRUD - list, existence check and admin management"""
from typing import List, Optional
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import db_operation
from app.core.exceptions import DuplicateError, NotFoundError, ValidationError
from app.locations.models.locations import Location
from app.locations.schemas.locations import LocationCreate, LocationUpdate


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(
            "Location name is required", {"fields": {"name": "Name cannot be empty"}}
        )
    return cleaned


@db_operation
async def list_locations(session: AsyncSession) -> List[Location]:
    """All locations sorted by name"""
    result = await session.execute(select(Location).order_by(Location.name.asc()))
    return list(result.scalars().all())


@db_operation
async def get_location_by_name(
    session: AsyncSession, name: str
) -> Optional[Location]:
    result = await session.execute(select(Location).where(Location.name == name.strip()))
    return result.scalar_one_or_none()


async def location_exists(session: AsyncSession, name: str) -> bool:
    return await get_location_by_name(session, name) is not None


@db_operation
async def get_location_by_id(session: AsyncSession, location_id: int) -> Location:
    result = await session.execute(select(Location).where(Location.id == location_id))
    location = result.scalar_one_or_none()
    if not location:
        raise NotFoundError("Location", str(location_id))
    return location


@db_operation
async def create_location(
    session: AsyncSession, data: LocationCreate, created_by_id: Optional[int] = None
) -> Location:
    name = _clean_name(data.name)
    if await get_location_by_name(session, name):
        raise DuplicateError("Location", "name", name)

    location = Location(
        name=name,
        description=data.description or "",
        created_by_id=created_by_id,
    )
    session.add(location)
    await session.commit()
    await session.refresh(location)
    return location


@db_operation
async def update_location(
    session: AsyncSession, location_id: int, data: LocationUpdate
) -> Location:
    location = await get_location_by_id(session, location_id)
    name = _clean_name(data.name)

    existing = await get_location_by_name(session, name)
    if existing and existing.id != location.id:
        raise DuplicateError("Location", "name", name)

    location.name = name
    location.description = data.description or ""
    await session.commit()
    await session.refresh(location)
    return location


@db_operation
async def delete_location(session: AsyncSession, location_id: int) -> None:
    """Existing bookings keep the location name as free text"""
    location = await get_location_by_id(session, location_id)
    await session.delete(location)
    await session.commit()
