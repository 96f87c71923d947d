from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .. import auth, models, schemas
from ..database import get_db
from ..errors import NotFoundError

router = APIRouter()


@router.get("/me", response_model=schemas.ProfileOut)
async def get_profile(current_user: schemas.CurrentUser = Depends(auth.get_current_user), db: AsyncSession = Depends(get_db)):
    profile = await db.get(models.Profile, current_user.user_id)
    if not profile:
        raise NotFoundError("Profile not found")
    return profile


@router.put("/me", response_model=schemas.ProfileOut)
async def update_profile(
    payload: schemas.ProfileUpdate,
    current_user: schemas.CurrentUser = Depends(auth.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    phone = None
    if payload.phone or (payload.country_code and payload.phone_number):
        phone = auth.normalize_phone(payload.phone, payload.country_code, payload.phone_number)

    profile = await db.get(models.Profile, current_user.user_id)
    if profile is None:
        profile = models.Profile(id=current_user.user_id)
        db.add(profile)
    profile.full_name = payload.full_name or None
    profile.email = payload.email or None
    profile.phone = phone
    profile.address = payload.address or None
    profile.city = payload.city or None
    await db.commit()
    return profile
