from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from .. import auth, models, schemas
from ..cache import PRODUCTS_LIST_KEY, invalidate
from ..database import get_db
from ..errors import NotFoundError

router = APIRouter()


async def _get_or_404(db: AsyncSession, category_id: int) -> models.Category:
    category = await db.get(models.Category, category_id)
    if not category:
        raise NotFoundError("Category not found")
    return category


@router.get("", response_model=List[schemas.CategoryOut])
async def list_categories(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(models.Category).order_by(models.Category.created_at.desc(), models.Category.id.desc()))
    return result.scalars().all()


@router.get("/{category_id}", response_model=schemas.CategoryOut)
async def get_category(category_id: int, db: AsyncSession = Depends(get_db)):
    return await _get_or_404(db, category_id)


@router.post("", response_model=schemas.CategoryOut, status_code=status.HTTP_201_CREATED)
async def create_category(payload: schemas.CategoryCreate, db: AsyncSession = Depends(get_db), admin=Depends(auth.require_admin)):
    category = models.Category(**payload.model_dump())
    db.add(category)
    await db.commit()
    return category


@router.put("/{category_id}", response_model=schemas.CategoryOut)
async def update_category(category_id: int, payload: schemas.CategoryCreate, db: AsyncSession = Depends(get_db), admin=Depends(auth.require_admin)):
    category = await _get_or_404(db, category_id)
    for field, value in payload.model_dump().items():
        setattr(category, field, value)
    await db.commit()
    return category


@router.delete("/{category_id}")
async def delete_category(category_id: int, db: AsyncSession = Depends(get_db), admin=Depends(auth.require_admin)):
    category = await _get_or_404(db, category_id)
    # products survive their category
    await db.execute(update(models.Product).where(models.Product.category_id == category_id).values(category_id=None))
    await db.delete(category)
    await db.commit()
    invalidate(PRODUCTS_LIST_KEY)
    return {"message": "Category deleted successfully"}
