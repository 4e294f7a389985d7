from fastapi import APIRouter, Depends, Request

from app.core.dependencies import get_current_user
from app.core.limits import limiter
from app.users.models.users import User
from app.users.schemas.users import UserRead

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me", response_model=UserRead)
@limiter.limit("60/minute")
async def get_me(request: Request, current_user: User = Depends(get_current_user)):
    """
    Get the authenticated user's profile.

    Works for inactive accounts too so the client can show why access is limited.
    """
    return current_user
