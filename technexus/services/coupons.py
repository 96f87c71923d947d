from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import update, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from .. import models
from ..errors import AppError, NotFoundError, ValidationError

CENT = Decimal("0.01")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def check_coupon(coupon: Optional[models.Coupon], subtotal: Decimal, now: Optional[datetime] = None) -> None:
    """Raise the reason ``coupon`` cannot be used on ``subtotal``."""
    now = now or datetime.now(timezone.utc)
    if (
        coupon is None
        or not coupon.is_active
        or (coupon.valid_from is not None and now < as_utc(coupon.valid_from))
        or now >= as_utc(coupon.valid_until)
    ):
        raise NotFoundError("Invalid or expired coupon")
    if subtotal < Decimal(coupon.min_purchase_amount or 0):
        raise ValidationError(f"Minimum purchase amount is {coupon.min_purchase_amount}")
    if coupon.max_uses is not None and (coupon.used_count or 0) >= coupon.max_uses:
        raise ValidationError("Coupon has reached maximum uses")


def is_applicable(coupon: Optional[models.Coupon], subtotal: Decimal, now: Optional[datetime] = None) -> bool:
    try:
        check_coupon(coupon, subtotal, now)
    except AppError:
        return False
    return True


def compute_discount(coupon: models.Coupon, subtotal: Decimal) -> Decimal:
    """Percentage wins over a flat amount; never more than the subtotal."""
    if coupon.discount_percentage:
        discount = subtotal * Decimal(coupon.discount_percentage) / 100
    elif coupon.discount_amount is not None:
        discount = Decimal(coupon.discount_amount)
    else:
        discount = Decimal("0")
    return min(discount.quantize(CENT, rounding=ROUND_HALF_UP), subtotal)


async def find_coupon(db: AsyncSession, code: str) -> Optional[models.Coupon]:
    result = await db.execute(
        select(models.Coupon).where(models.Coupon.code == code).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def claim_use(db: AsyncSession, coupon: models.Coupon) -> bool:
    """Bump ``used_count`` unless the usage cap was reached in the meantime."""
    stmt = (
        update(models.Coupon)
        .where(models.Coupon.id == coupon.id)
        .where(or_(models.Coupon.max_uses.is_(None), models.Coupon.used_count < models.Coupon.max_uses))
        .values(used_count=models.Coupon.used_count + 1)
        .returning(models.Coupon.used_count)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.first() is not None
