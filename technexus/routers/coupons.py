from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from .. import auth, models, schemas
from ..database import get_db
from ..errors import NotFoundError
from ..services import coupons as coupon_service

router = APIRouter()


@router.get("/active", response_model=List[schemas.CouponOut])
async def active_coupons(db: AsyncSession = Depends(get_db)):
    now = datetime.now(timezone.utc)
    result = await db.execute(
        select(models.Coupon)
        .where(models.Coupon.is_active.is_(True), models.Coupon.valid_until > now)
        .order_by(models.Coupon.created_at.desc(), models.Coupon.id.desc())
    )
    return result.scalars().all()


@router.get("", response_model=List[schemas.CouponOut])
async def list_coupons(db: AsyncSession = Depends(get_db), admin=Depends(auth.require_admin)):
    result = await db.execute(select(models.Coupon).order_by(models.Coupon.created_at.desc(), models.Coupon.id.desc()))
    return result.scalars().all()


@router.post("/validate", response_model=schemas.CouponOut)
async def validate_coupon(payload: schemas.CouponValidate, db: AsyncSession = Depends(get_db)):
    """Explicit check for the checkout page; placing an order ignores bad codes instead."""
    coupon = await coupon_service.find_coupon(db, payload.code)
    coupon_service.check_coupon(coupon, payload.amount)
    return coupon


@router.post("", response_model=schemas.CouponOut, status_code=status.HTTP_201_CREATED)
async def create_coupon(payload: schemas.CouponCreate, db: AsyncSession = Depends(get_db), admin=Depends(auth.require_admin)):
    data = payload.model_dump(exclude_none=True)
    coupon = models.Coupon(**data)
    db.add(coupon)
    await db.commit()
    return coupon


@router.delete("/{coupon_id}")
async def delete_coupon(coupon_id: int, db: AsyncSession = Depends(get_db), admin=Depends(auth.require_admin)):
    coupon = await db.get(models.Coupon, coupon_id)
    if not coupon:
        raise NotFoundError("Coupon not found")
    await db.delete(coupon)
    await db.commit()
    return {"message": "Coupon deleted successfully"}
