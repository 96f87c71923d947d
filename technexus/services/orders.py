import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from .. import models, schemas, worker
from ..cache import PRODUCTS_LIST_KEY, invalidate
from ..errors import NotFoundError, OutOfStock, ProductNotFound, ValidationError
from . import coupons

logger = logging.getLogger(__name__)


async def decrement_stock(db: AsyncSession, product_id: int, quantity: int) -> bool:
    """Compare-and-decrement; False when fewer than ``quantity`` units remain."""
    stmt = (
        update(models.Product)
        .where(models.Product.id == product_id)
        .where(models.Product.stock >= quantity)
        .values(stock=models.Product.stock - quantity)
        .returning(models.Product.stock)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.first() is not None


async def place_order(db: AsyncSession, user: schemas.CurrentUser, payload: schemas.OrderCreate) -> models.Order:
    if not payload.items:
        raise ValidationError("Order items are required")
    if not payload.shipping_address or not payload.shipping_address.strip():
        raise ValidationError("Shipping address is required")
    if not payload.phone or not payload.phone.strip():
        raise ValidationError("Phone number is required")

    try:
        # 1. Price every line against the live catalog, in input order
        lines = []
        subtotal = Decimal("0")
        for item in payload.items:
            product = await db.get(models.Product, item.product_id, populate_existing=True)
            if product is None:
                raise ProductNotFound(item.product_id)
            if product.stock < item.quantity:
                raise OutOfStock(item.product_id)
            unit_price = Decimal(product.effective_price)
            lines.append((product.id, item.quantity, unit_price))
            subtotal += unit_price * item.quantity

        # 2. Coupon: an inapplicable code is ignored, not rejected
        discount = Decimal("0")
        applied_code = None
        if payload.coupon_code:
            coupon = await coupons.find_coupon(db, payload.coupon_code)
            if coupon is not None and coupons.is_applicable(coupon, subtotal) and await coupons.claim_use(db, coupon):
                discount = coupons.compute_discount(coupon, subtotal)
                applied_code = coupon.code

        # 3. Header, items and stock in one transaction
        new_order = models.Order(
            user_id=user.user_id,
            total_amount=subtotal - discount,
            status=models.OrderStatus.PENDING.value,
            shipping_address=payload.shipping_address,
            phone=payload.phone,
            payment_method=payload.payment_method or "cash_on_delivery",
            coupon_code=applied_code,
            discount_amount=discount,
        )
        db.add(new_order)
        await db.flush()

        for product_id, quantity, unit_price in lines:
            db.add(models.OrderItem(order_id=new_order.id, product_id=product_id, quantity=quantity, price=unit_price))
            if not await decrement_stock(db, product_id, quantity):
                raise OutOfStock(product_id)

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("order %s placed by user %s: total %s, discount %s", new_order.id, user.user_id, new_order.total_amount, discount)
    invalidate(PRODUCTS_LIST_KEY)
    worker.enqueue(worker.send_order_confirmation, new_order.phone, new_order.id, str(new_order.total_amount))
    return new_order


def _insert_for(db: AsyncSession):
    return pg_insert if db.get_bind().dialect.name == "postgresql" else sqlite_insert


async def accrue_loyalty_points(db: AsyncSession, user_id: int, total_amount) -> int:
    """Add ``floor(total / 100)`` points in one upsert so a first award cannot collide."""
    points = int(Decimal(total_amount) // 100)
    if points <= 0:
        return 0
    stmt = _insert_for(db)(models.LoyaltyPoints).values(user_id=user_id, points=points, lifetime_points=points)
    stmt = stmt.on_conflict_do_update(
        index_elements=[models.LoyaltyPoints.user_id],
        set_={
            "points": models.LoyaltyPoints.points + stmt.excluded.points,
            "lifetime_points": models.LoyaltyPoints.lifetime_points + stmt.excluded.lifetime_points,
            "updated_at": models.utcnow(),
        },
    )
    await db.execute(stmt)
    return points


async def _locked_order(db: AsyncSession, order_id: int) -> models.Order:
    result = await db.execute(
        select(models.Order)
        .where(models.Order.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    order = result.scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order not found")
    return order


async def update_order_status(db: AsyncSession, order_id: int, status: str) -> models.Order:
    """Overwrite the status; points accrue only on the edge into completed."""
    try:
        order = await _locked_order(db, order_id)
        previous = order.status
        order.status = status
        awarded = 0
        if status == models.OrderStatus.COMPLETED.value and previous != models.OrderStatus.COMPLETED.value:
            awarded = await accrue_loyalty_points(db, order.user_id, order.total_amount)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("order %s status %s -> %s (%s points)", order.id, previous, status, awarded)
    if previous != status:
        worker.enqueue(worker.send_order_status_update, order.phone, order.id, status)
    return order


async def update_order_tracking(
    db: AsyncSession,
    order_id: int,
    tracking_number: Optional[str],
    tracking_url: Optional[str],
    estimated_delivery,
) -> models.Order:
    try:
        order = await _locked_order(db, order_id)
        order.tracking_number = tracking_number or None
        order.tracking_url = tracking_url or None
        order.estimated_delivery = estimated_delivery
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return order
