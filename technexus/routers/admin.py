from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from .. import auth, models, schemas
from ..database import get_db

# All routes require admin authentication
router = APIRouter(dependencies=[Depends(auth.require_admin)])


async def _count(db: AsyncSession, column) -> int:
    result = await db.execute(select(func.count(column)))
    return result.scalar_one()


@router.get("/stats", response_model=schemas.AdminStats)
async def stats(db: AsyncSession = Depends(get_db)):
    revenue = await db.execute(select(func.coalesce(func.sum(models.Order.total_amount), 0)))
    return {
        "products": await _count(db, models.Product.id),
        "orders": await _count(db, models.Order.id),
        "revenue": revenue.scalar_one(),
        "messages": await _count(db, models.ChatMessage.id),
        "customers": await _count(db, models.Profile.id),
        "reviews": await _count(db, models.Review.id),
    }


@router.get("/customers", response_model=List[schemas.CustomerOut])
async def customers(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(models.Profile, models.UserRole.role)
        .outerjoin(models.UserRole, models.UserRole.user_id == models.Profile.id)
        .order_by(models.Profile.created_at.desc(), models.Profile.id.desc())
    )
    return [
        schemas.CustomerOut.model_validate(profile).model_copy(update={"role": role})
        for profile, role in result.all()
    ]
