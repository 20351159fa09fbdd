# storefront/routers/orders.py
"""
Orders Router - order history and admin status updates.
"""
from __future__ import annotations
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.auth import require_admin, require_user
from storefront.database import get_session
from storefront.db_models import Order, OrderItem, OrderStatus, User
from storefront.models import OrderItemOut, OrderOut, OrderStatusIn

router = APIRouter(prefix="/api", tags=["Orders"])


def _order_out(order: Order, with_user: bool = False) -> OrderOut:
    return OrderOut(
        id=order.id,
        user_id=order.user_id,
        status=order.status,
        total=order.total,
        created_at=order.created_at,
        username=order.user.username if with_user and order.user else None,
        items=[
            OrderItemOut(
                id=item.id,
                product_id=item.product_id,
                quantity=item.quantity,
                price=item.price,
                variant_type=item.variant_type,
                product={
                    "id": item.product.id,
                    "name": item.product.name,
                    "description": item.product.description,
                } if item.product else None,
            )
            for item in sorted(order.items, key=lambda i: i.id)
        ],
    )


def _orders_query():
    return (
        select(Order)
        .options(selectinload(Order.items).selectinload(OrderItem.product))
        .order_by(Order.created_at.desc(), Order.id.desc())
    )


@router.get("/orders", response_model=List[OrderOut])
async def my_orders(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    result = await db.execute(_orders_query().where(Order.user_id == user.id))
    return [_order_out(o) for o in result.scalars().all()]


@router.get("/admin/orders", response_model=List[OrderOut])
async def all_orders(
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    result = await db.execute(_orders_query().options(selectinload(Order.user)))
    return [_order_out(o, with_user=True) for o in result.scalars().all()]


@router.patch("/admin/orders/{order_id}", response_model=OrderOut)
async def update_order_status(
    order_id: int,
    payload: OrderStatusIn,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    try:
        status = OrderStatus(payload.status)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise HTTPException(400, detail=f"Invalid status '{payload.status}'. Expected one of: {allowed}")

    result = await db.execute(
        _orders_query().options(selectinload(Order.user)).where(Order.id == order_id)
    )
    order = result.scalar_one_or_none()
    if not order:
        raise HTTPException(404, detail="Order not found")
    order.status = status.value
    await db.flush()
    return _order_out(order, with_user=True)
