from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from .. import auth, models, schemas
from ..cache import PRODUCTS_LIST_KEY, get_json, invalidate, set_json
from ..database import get_db
from ..errors import NotFoundError, ValidationError

router = APIRouter()


async def _get_or_404(db: AsyncSession, product_id: int) -> models.Product:
    product = await db.get(models.Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product


@router.get("", response_model=List[schemas.ProductOut])
async def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    sort: Optional[str] = Query(None, pattern="^(price_asc|price_desc|name)$"),
    featured: Optional[bool] = None,
    db: AsyncSession = Depends(get_db),
):
    unfiltered = (not category or category == "all") and not search and not sort and not featured
    if unfiltered:
        cached = get_json(PRODUCTS_LIST_KEY)
        if cached is not None:
            return cached

    query = select(models.Product)

    # FILTERING
    if category and category != "all":
        if not category.isdigit():
            raise ValidationError("Invalid category")
        query = query.where(models.Product.category_id == int(category))
    if search:
        query = query.where(models.Product.name.ilike(f"%{search}%"))
    if featured:
        query = query.where(models.Product.is_featured.is_(True))

    # SORTING
    if sort == "price_asc":
        query = query.order_by(models.Product.price.asc())
    elif sort == "price_desc":
        query = query.order_by(models.Product.price.desc())
    else:
        query = query.order_by(models.Product.name.asc())

    result = await db.execute(query)
    products = result.scalars().all()

    if unfiltered:
        set_json(PRODUCTS_LIST_KEY, [schemas.ProductOut.model_validate(p) for p in products], ex=600)
    return products


@router.get("/featured", response_model=List[schemas.ProductOut])
async def featured_products(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(models.Product)
        .where(models.Product.is_featured.is_(True))
        .order_by(models.Product.created_at.desc(), models.Product.id.desc())
        .limit(8)
    )
    return result.scalars().all()


@router.get("/{product_id}", response_model=schemas.ProductOut)
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    return await _get_or_404(db, product_id)


@router.post("", response_model=schemas.ProductOut, status_code=status.HTTP_201_CREATED)
async def create_product(payload: schemas.ProductCreate, db: AsyncSession = Depends(get_db), admin=Depends(auth.require_admin)):
    new_product = models.Product(**payload.model_dump())
    db.add(new_product)
    await db.commit()
    invalidate(PRODUCTS_LIST_KEY)
    return new_product


@router.put("/{product_id}", response_model=schemas.ProductOut)
async def update_product(product_id: int, payload: schemas.ProductCreate, db: AsyncSession = Depends(get_db), admin=Depends(auth.require_admin)):
    product = await _get_or_404(db, product_id)
    for field, value in payload.model_dump().items():
        setattr(product, field, value)
    await db.commit()
    invalidate(PRODUCTS_LIST_KEY)
    return product


@router.delete("/{product_id}")
async def delete_product(product_id: int, db: AsyncSession = Depends(get_db), admin=Depends(auth.require_admin)):
    product = await _get_or_404(db, product_id)
    await db.delete(product)
    await db.commit()
    invalidate(PRODUCTS_LIST_KEY)
    return {"message": "Product deleted successfully"}
