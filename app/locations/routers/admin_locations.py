from typing import List
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.dependencies import require_admin
from app.core.limits import limiter
from app.locations.crud.locations import (
    create_location,
    delete_location,
    list_locations,
    update_location,
)
from app.locations.schemas.locations import (
    LocationCreate,
    LocationRead,
    LocationUpdate,
)
from app.users.models.users import User

router = APIRouter(prefix="/admin/locations", tags=["Admin Locations"])


@router.get("", response_model=List[LocationRead])
@limiter.limit("60/minute")
async def get_locations(
    request: Request,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    return await list_locations(db)


@router.post("", response_model=LocationRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_new_location(
    request: Request,
    data: LocationCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Create a location. Names are trimmed and must be unique."""
    return await create_location(db, data, created_by_id=admin.id)


@router.put("/{location_id}", response_model=LocationRead)
@limiter.limit("30/minute")
async def update_existing_location(
    request: Request,
    location_id: int,
    data: LocationUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    return await update_location(db, location_id, data)


@router.delete("/{location_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def delete_existing_location(
    request: Request,
    location_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    await delete_location(db, location_id)
