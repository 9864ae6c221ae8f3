"""
Order Repository

All SQL the order workflow issues lives here. Methods take the caller's
session and never commit; the service owns transaction boundaries.
"""

import uuid
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from food_delivery.models import Order, OrderItem, OrderStatus, User, utcnow

# Store and menu item details shown on order reads.
_DETAIL_OPTIONS = (
    selectinload(Order.store),
    selectinload(Order.items).selectinload(OrderItem.menu_item),
)


class OrderRepository:
    """Persistence for order headers and their line items."""

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def add_order(self, session: AsyncSession, order: Order) -> Order:
        """Stage the order header and flush it so the row exists in the transaction."""
        session.add(order)
        await session.flush()
        return order

    async def add_line_items(
        self,
        session: AsyncSession,
        order: Order,
        items: Sequence[OrderItem],
    ) -> None:
        for position, item in enumerate(items):
            item.order_id = order.id
            item.position = position
        session.add_all(items)
        await session.flush()

    async def update_status_if(
        self,
        session: AsyncSession,
        order_id: uuid.UUID,
        expected: OrderStatus,
        target: OrderStatus,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Set ``status = target`` only while the row still holds ``expected``.

        Returns False when no row matched, meaning the order vanished or
        another writer moved it first.
        """
        result = await session.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == expected)
            .values(status=target, updated_at=now or utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(
        self,
        session: AsyncSession,
        order_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        with_items: bool = False,
        with_customer: bool = False,
        for_update: bool = False,
    ) -> Optional[Order]:
        """
        Load one order. ``with_items`` also loads the store and the menu
        item behind each line; ``with_customer`` loads the ordering user.
        """
        query = select(Order).where(Order.id == order_id)
        if user_id is not None:
            query = query.where(Order.user_id == user_id)
        if with_items:
            query = query.options(*_DETAIL_OPTIONS)
        if with_customer:
            query = query.options(selectinload(Order.customer))
        if for_update:
            query = query.with_for_update()
        query = query.execution_options(populate_existing=True)

        result = await session.execute(query)
        return result.scalar_one_or_none()

    async def list_for_user(self, session: AsyncSession, user_id: uuid.UUID) -> list[Order]:
        result = await session.execute(
            select(Order)
            .where(Order.user_id == user_id)
            .options(*_DETAIL_OPTIONS)
            .order_by(Order.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_page(
        self,
        session: AsyncSession,
        offset: int,
        limit: int,
        status: Optional[OrderStatus] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> tuple[list[Order], int]:
        filters = []
        if status is not None:
            filters.append(Order.status == status)
        if start_date is not None:
            filters.append(Order.created_at >= start_date)
        if end_date is not None:
            filters.append(Order.created_at <= end_date)

        count_result = await session.execute(
            select(func.count(Order.id)).where(*filters)
        )
        total = count_result.scalar() or 0

        result = await session.execute(
            select(Order)
            .where(*filters)
            .options(selectinload(Order.store), selectinload(Order.customer))
            .order_by(Order.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_since(self, session: AsyncSession, since: datetime) -> list[Order]:
        result = await session.execute(
            select(Order).where(Order.created_at >= since)
        )
        return list(result.scalars().all())

    async def get_user_phone(self, session: AsyncSession, user_id: uuid.UUID) -> Optional[str]:
        result = await session.execute(select(User.phone).where(User.id == user_id))
        return result.scalar_one_or_none()
