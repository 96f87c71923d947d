from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from .. import auth, models, schemas
from ..database import get_db
from ..errors import ConflictError, NotFoundError, ValidationError

router = APIRouter()


@router.post("", response_model=schemas.ReviewOut, status_code=status.HTTP_201_CREATED)
async def create_review(
    payload: schemas.ReviewCreate,
    current_user: schemas.CurrentUser = Depends(auth.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not payload.product_id or not payload.rating:
        raise ValidationError("Product ID and Rating are required")
    if not 1 <= payload.rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")
    if not await db.get(models.Product, payload.product_id):
        raise NotFoundError("Product not found")

    existing = await db.execute(
        select(models.Review.id).where(
            models.Review.product_id == payload.product_id, models.Review.user_id == current_user.user_id
        )
    )
    if existing.first():
        raise ConflictError("You have already reviewed this product")

    review = models.Review(
        product_id=payload.product_id, user_id=current_user.user_id, rating=payload.rating, comment=payload.comment
    )
    db.add(review)
    await db.commit()
    return review


@router.get("/product/{product_id}", response_model=List[schemas.ReviewOut])
async def product_reviews(product_id: int, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(models.Review, models.Profile.full_name)
        .outerjoin(models.Profile, models.Profile.id == models.Review.user_id)
        .where(models.Review.product_id == product_id)
        .order_by(models.Review.created_at.desc(), models.Review.id.desc())
    )
    return [
        schemas.ReviewOut.model_validate(review).model_copy(update={"full_name": full_name})
        for review, full_name in result.all()
    ]


@router.get("/all", response_model=List[schemas.ReviewOut])
async def all_reviews(db: AsyncSession = Depends(get_db), admin=Depends(auth.require_admin)):
    result = await db.execute(
        select(models.Review, models.Profile.full_name, models.Product.name)
        .outerjoin(models.Profile, models.Profile.id == models.Review.user_id)
        .outerjoin(models.Product, models.Product.id == models.Review.product_id)
        .order_by(models.Review.created_at.desc(), models.Review.id.desc())
    )
    return [
        schemas.ReviewOut.model_validate(review).model_copy(update={"full_name": full_name, "product_name": product_name})
        for review, full_name, product_name in result.all()
    ]
