from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from .. import auth, models, schemas
from ..database import get_db
from ..errors import AuthorizationError, NotFoundError
from ..services import orders as order_service

router = APIRouter()


def _with_items(query):
    return query.options(selectinload(models.Order.items).selectinload(models.OrderItem.product))


@router.post("", response_model=schemas.OrderOut, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: schemas.OrderCreate,
    db: AsyncSession = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user),
):
    return await order_service.place_order(db, current_user, payload)


@router.get("", response_model=List[schemas.OrderDetail])
async def list_orders(db: AsyncSession = Depends(get_db), current_user: schemas.CurrentUser = Depends(auth.get_current_user)):
    query = _with_items(
        select(models.Order, models.Profile.full_name).outerjoin(models.Profile, models.Profile.id == models.Order.user_id)
    )
    if not current_user.is_admin:
        query = query.where(models.Order.user_id == current_user.user_id)
    query = query.order_by(models.Order.created_at.desc(), models.Order.id.desc())

    result = await db.execute(query)
    return [
        schemas.OrderDetail.model_validate(order).model_copy(update={"full_name": full_name})
        for order, full_name in result.all()
    ]


@router.get("/{order_id}", response_model=schemas.OrderDetail)
async def get_order(order_id: int, db: AsyncSession = Depends(get_db), current_user: schemas.CurrentUser = Depends(auth.get_current_user)):
    result = await db.execute(_with_items(select(models.Order).where(models.Order.id == order_id)))
    order = result.scalar_one_or_none()
    if not order:
        raise NotFoundError("Order not found")
    if order.user_id != current_user.user_id and not current_user.is_admin:
        raise AuthorizationError("Access denied")
    return schemas.OrderDetail.model_validate(order)


@router.patch("/{order_id}/status", response_model=schemas.OrderOut)
async def update_status(
    order_id: int,
    payload: schemas.OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
    admin: schemas.CurrentUser = Depends(auth.require_admin),
):
    return await order_service.update_order_status(db, order_id, payload.status)


@router.patch("/{order_id}/tracking", response_model=schemas.OrderOut)
async def update_tracking(
    order_id: int,
    payload: schemas.OrderTrackingUpdate,
    db: AsyncSession = Depends(get_db),
    admin: schemas.CurrentUser = Depends(auth.require_admin),
):
    return await order_service.update_order_tracking(
        db, order_id, payload.tracking_number, payload.tracking_url, payload.estimated_delivery
    )
