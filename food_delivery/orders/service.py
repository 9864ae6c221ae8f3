"""
Order Service

Business logic for the order lifecycle:
    - create_order: price a cart from the catalog and write the order
      header plus its line items in one transaction
    - advance_order_status / cancel_order: status changes checked against
      OrderStateMachine and applied with a conditional UPDATE so that two
      racing writers cannot both win
    - read helpers for customers and operators

Every method opens its own unit of work from the session factory; the
service holds no state between calls.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, AsyncIterator, Callable, Optional, Sequence, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from food_delivery.core.config import get_settings
from food_delivery.core.exceptions import (
    ConcurrencyConflictError,
    InvalidTransitionError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from food_delivery.models import MAX_AMOUNT, MAX_ITEM_QUANTITY, Order, OrderItem, OrderStatus, utcnow
from food_delivery.orders.catalog import BaseCatalog, SqlCatalog
from food_delivery.orders.repository import OrderRepository
from food_delivery.orders.state_machine import Actor, OrderStateMachine

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

ANALYTICS_RANGES = ("today", "week", "month", "year")

# (order_id, phone, new_status)
StatusNotifier = Callable[[str, str, str], None]

IdLike = Union[uuid.UUID, str]


@dataclass(frozen=True)
class CartLine:
    """One requested line of a cart."""
    menu_item_id: IdLike
    quantity: int


@dataclass(frozen=True)
class _PricedLine:
    menu_item_id: uuid.UUID
    quantity: int
    unit_price: Decimal


# =============================================================================
# INPUT VALIDATION
# =============================================================================

def _coerce_uuid(value: Any, field: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a valid UUID", field=field)


def _coerce_status(value: Any, field: str = "status") -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).lower())
    except ValueError:
        valid = [s.value for s in OrderStatus]
        raise ValidationError(f"Invalid {field}. Options: {valid}", field=field)


def _coerce_coordinate(value: Any, field: str, limit: int) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number", field=field)
    if not number.is_finite() or not -limit <= number <= limit:
        raise ValidationError(f"{field} must be between -{limit} and {limit}", field=field)
    return number


def _validate_lines(items: Sequence[CartLine]) -> list[CartLine]:
    if not items:
        raise ValidationError("Order must contain at least one item", field="items")

    lines = []
    for index, line in enumerate(items):
        quantity = line.quantity
        if (
            isinstance(quantity, bool)
            or not isinstance(quantity, int)
            or not 1 <= quantity <= MAX_ITEM_QUANTITY
        ):
            raise ValidationError(
                f"items[{index}].quantity must be an integer between 1 and {MAX_ITEM_QUANTITY}",
                field=f"items[{index}].quantity",
            )
        menu_item_id = _coerce_uuid(line.menu_item_id, f"items[{index}].menu_item_id")
        lines.append(CartLine(menu_item_id=menu_item_id, quantity=quantity))
    return lines


def calculate_total(lines: Sequence[_PricedLine]) -> Decimal:
    """Exact decimal sum of unit price times quantity, in cents."""
    total = sum((line.unit_price * line.quantity for line in lines), Decimal("0"))
    return total.quantize(CENTS)


# =============================================================================
# SERVICE
# =============================================================================

class OrderService:
    """Order creation and status transitions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        repository: Optional[OrderRepository] = None,
        catalog_factory: Callable[[AsyncSession], BaseCatalog] = SqlCatalog,
        notifier: Optional[StatusNotifier] = None,
    ):
        self.session_factory = session_factory
        self.repository = repository or OrderRepository()
        self.catalog_factory = catalog_factory
        self.notifier = notifier

    @asynccontextmanager
    async def _transaction(self, action: str) -> AsyncIterator[AsyncSession]:
        """One session, one transaction; database errors become StorageError."""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            logger.error(f"Database error while trying to {action}: {e}")
            raise StorageError(f"Could not {action}: database unavailable", action=action) from e

    # -------------------------------------------------------------------------
    # Order Builder
    # -------------------------------------------------------------------------

    async def create_order(
        self,
        user_id: IdLike,
        store_id: IdLike,
        items: Sequence[CartLine],
        delivery_address: str,
        delivery_latitude: Any = None,
        delivery_longitude: Any = None,
        notes: Optional[str] = None,
    ) -> Order:
        """
        Price the cart and persist the order header with its line items.

        Items must exist, be available, and belong to ``store_id``. The
        header and all line items commit together or not at all.

        Raises:
            ValidationError: malformed input, inactive store, unavailable item
            NotFoundError: unknown store, or item not on the store's menu
            StorageError: the write failed and was rolled back
        """
        user_uuid = _coerce_uuid(user_id, "user_id")
        store_uuid = _coerce_uuid(store_id, "store_id")
        lines = _validate_lines(items)

        if not isinstance(delivery_address, str) or not delivery_address.strip():
            raise ValidationError("delivery_address is required", field="delivery_address")
        if notes is not None and not isinstance(notes, str):
            raise ValidationError("notes must be a string", field="notes")

        latitude = _coerce_coordinate(delivery_latitude, "delivery_latitude", 90)
        longitude = _coerce_coordinate(delivery_longitude, "delivery_longitude", 180)

        async with self._transaction("create order") as session:
            priced = await self._price_lines(session, store_uuid, lines)
            total_amount = calculate_total(priced)
            if total_amount > MAX_AMOUNT:
                raise ValidationError(
                    f"Order total {total_amount} exceeds the maximum of {MAX_AMOUNT}",
                    field="total_amount",
                )

            order = Order(
                id=uuid.uuid4(),
                user_id=user_uuid,
                store_id=store_uuid,
                status=OrderStatus.PENDING,
                total_amount=total_amount,
                delivery_address=delivery_address.strip(),
                delivery_latitude=latitude,
                delivery_longitude=longitude,
                notes=notes,
            )
            await self.repository.add_order(session, order)
            await self.repository.add_line_items(
                session,
                order,
                [
                    OrderItem(
                        menu_item_id=line.menu_item_id,
                        quantity=line.quantity,
                        price=line.unit_price,
                    )
                    for line in priced
                ],
            )

        logger.info(
            f"Order #{order.id} created for user {user_uuid}: "
            f"{len(priced)} line(s), total {total_amount}"
        )
        return order

    async def _price_lines(
        self,
        session: AsyncSession,
        store_id: uuid.UUID,
        lines: Sequence[CartLine],
    ) -> list[_PricedLine]:
        catalog = self.catalog_factory(session)

        store = await catalog.get_store(store_id)
        if store is None:
            raise NotFoundError(f"Store {store_id} not found", store_id=store_id)
        if not store.is_active:
            raise ValidationError(f"Store {store.name} is not accepting orders", store_id=store_id)

        entries = await catalog.get_menu_items(line.menu_item_id for line in lines)

        priced = []
        for line in lines:
            entry = entries.get(line.menu_item_id)
            if entry is None:
                raise NotFoundError(
                    f"Menu item {line.menu_item_id} not found",
                    menu_item_id=line.menu_item_id,
                )
            if entry.store_id != store_id:
                raise NotFoundError(
                    f"Menu item {line.menu_item_id} is not on this store's menu",
                    menu_item_id=line.menu_item_id,
                    store_id=store_id,
                )
            if not entry.is_available:
                raise ValidationError(
                    f"{entry.name} is currently unavailable",
                    menu_item_id=line.menu_item_id,
                )
            priced.append(
                _PricedLine(
                    menu_item_id=entry.menu_item_id,
                    quantity=line.quantity,
                    unit_price=entry.price,
                )
            )
        return priced

    # -------------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------------

    async def advance_order_status(
        self,
        order_id: IdLike,
        target_status: Union[OrderStatus, str],
        expected_status: Union[OrderStatus, str, None] = None,
    ) -> Order:
        """
        Operator status change.

        ``expected_status`` is the status the operator last saw; if the
        persisted status differs the call fails with ConcurrencyConflictError
        instead of acting on stale information.
        """
        target = _coerce_status(target_status)
        expected = _coerce_status(expected_status, "expected_status") if expected_status is not None else None
        return await self._transition(
            order_id,
            target,
            Actor.OPERATOR,
            expected_status=expected,
        )

    async def cancel_order(self, order_id: IdLike, user_id: IdLike) -> Order:
        """Customer cancellation; only the order's owner may cancel it."""
        return await self._transition(
            order_id,
            OrderStatus.CANCELLED,
            Actor.CUSTOMER,
            owner_id=_coerce_uuid(user_id, "user_id"),
        )

    async def cancel_order_as_operator(self, order_id: IdLike) -> Order:
        return await self._transition(order_id, OrderStatus.CANCELLED, Actor.OPERATOR)

    async def _transition(
        self,
        order_id: IdLike,
        target: OrderStatus,
        actor: Actor,
        owner_id: Optional[uuid.UUID] = None,
        expected_status: Optional[OrderStatus] = None,
    ) -> Order:
        order_uuid = _coerce_uuid(order_id, "order_id")

        async with self._transaction("update order status") as session:
            order = await self.repository.get(
                session, order_uuid, user_id=owner_id, for_update=True
            )
            if order is None:
                raise NotFoundError(f"Order #{order_uuid} not found", order_id=order_uuid)

            current = order.status
            if expected_status is not None and current != expected_status:
                logger.warning(
                    f"Order #{order_uuid}: expected {expected_status.value}, "
                    f"found {current.value}"
                )
                raise ConcurrencyConflictError(
                    f"Order #{order_uuid} is {current.value}, not {expected_status.value}",
                    order_id=order_uuid,
                    current_status=current.value,
                )

            try:
                OrderStateMachine.check_transition(current, target, actor)
            except InvalidTransitionError:
                logger.warning(
                    f"Rejected {actor.value} transition on order #{order_uuid}: "
                    f"{current.value} -> {target.value}"
                )
                raise

            applied = await self.repository.update_status_if(
                session, order_uuid, expected=current, target=target, now=utcnow()
            )
            if not applied:
                logger.warning(
                    f"Order #{order_uuid} changed while moving "
                    f"{current.value} -> {target.value}"
                )
                raise ConcurrencyConflictError(
                    f"Order #{order_uuid} was modified concurrently; reload and retry",
                    order_id=order_uuid,
                )

            order = await self.repository.get(session, order_uuid)
            phone = await self.repository.get_user_phone(session, order.user_id)

        logger.info(f"Order #{order_uuid}: {current.value} -> {target.value} by {actor.value}")
        self._notify(order, phone)
        return order

    def _notify(self, order: Order, phone: Optional[str]) -> None:
        if self.notifier is None:
            return
        if not phone:
            logger.debug(f"Order #{order.id}: no phone on file, skipping status SMS")
            return
        self.notifier(str(order.id), phone, order.status.value)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_order(
        self,
        order_id: IdLike,
        user_id: Optional[IdLike] = None,
        include_customer: bool = False,
    ) -> Order:
        """
        Order header with its store and line items; scoped to ``user_id``
        when given. ``include_customer`` also loads the ordering user for
        operator views.
        """
        order_uuid = _coerce_uuid(order_id, "order_id")
        owner = _coerce_uuid(user_id, "user_id") if user_id is not None else None

        async with self._transaction("load order") as session:
            order = await self.repository.get(
                session,
                order_uuid,
                user_id=owner,
                with_items=True,
                with_customer=include_customer,
            )

        if order is None:
            raise NotFoundError(f"Order #{order_uuid} not found", order_id=order_uuid)
        return order

    async def list_user_orders(self, user_id: IdLike) -> list[Order]:
        owner = _coerce_uuid(user_id, "user_id")
        async with self._transaction("list orders") as session:
            return await self.repository.list_for_user(session, owner)

    async def list_orders(
        self,
        page: int = 1,
        limit: int = 10,
        status: Union[OrderStatus, str, None] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> tuple[list[Order], int]:
        """Paginated admin listing, newest first. Returns (orders, total)."""
        max_limit = get_settings().admin_page_size_max
        if page < 1:
            raise ValidationError("page must be at least 1", field="page")
        if not 1 <= limit <= max_limit:
            raise ValidationError(f"limit must be between 1 and {max_limit}", field="limit")
        status_filter = _coerce_status(status) if status is not None else None

        async with self._transaction("list orders") as session:
            return await self.repository.list_page(
                session,
                offset=(page - 1) * limit,
                limit=limit,
                status=status_filter,
                start_date=start_date,
                end_date=end_date,
            )

    async def order_analytics(self, range_name: str = "today", now: Optional[datetime] = None) -> dict[str, Any]:
        """Totals, revenue and status breakdown for orders created in the range."""
        now = now or datetime.now(timezone.utc)
        if range_name == "today":
            since = now.replace(hour=0, minute=0, second=0, microsecond=0)
        elif range_name == "week":
            since = now - timedelta(days=7)
        elif range_name == "month":
            since = now - timedelta(days=30)
        elif range_name == "year":
            since = now - timedelta(days=365)
        else:
            raise ValidationError(
                f"Invalid range parameter. Options: {list(ANALYTICS_RANGES)}",
                field="range",
            )

        async with self._transaction("compute order analytics") as session:
            orders = await self.repository.list_since(session, since)

        revenue = sum((Decimal(o.total_amount) for o in orders), Decimal("0")).quantize(CENTS)
        breakdown: dict[str, int] = {}
        for o in orders:
            breakdown[o.status.value] = breakdown.get(o.status.value, 0) + 1

        return {
            "range": range_name,
            "total_orders": len(orders),
            "total_revenue": revenue,
            "average_order_value": (revenue / len(orders)).quantize(CENTS) if orders else Decimal("0.00"),
            "status_breakdown": breakdown,
        }
