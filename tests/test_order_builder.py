import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from food_delivery.core.exceptions import NotFoundError, StorageError, ValidationError
from food_delivery.models import MAX_ITEM_QUANTITY, MenuItem, Order, OrderItem, OrderStatus
from food_delivery.orders import CartLine, OrderService
from food_delivery.orders.repository import OrderRepository


async def count_rows(session_factory, model):
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(model))
        return result.scalar()


async def test_total_is_exact_decimal_sum(place_order):
    order = await place_order()

    assert order.status == OrderStatus.PENDING
    assert order.total_amount == Decimal("13.50")
    assert isinstance(order.total_amount, Decimal)


async def test_line_items_snapshot_prices(service, place_order, catalog):
    order = await place_order()

    detail = await service.get_order(order.id)
    assert [(i.menu_item_id, i.quantity, i.price) for i in detail.items] == [
        (catalog.a.id, 2, Decimal("5.00")),
        (catalog.b.id, 1, Decimal("3.50")),
    ]
    assert sum(i.line_total for i in detail.items) == detail.total_amount


async def test_price_change_after_creation_does_not_touch_order(service, session_factory, place_order, catalog):
    order = await place_order()

    async with session_factory() as session:
        async with session.begin():
            item = await session.get(MenuItem, catalog.a.id)
            item.price = Decimal("99.99")

    detail = await service.get_order(order.id)
    assert detail.total_amount == Decimal("13.50")
    assert detail.items[0].price == Decimal("5.00")


async def test_fractional_prices_do_not_drift(service, session_factory, catalog):
    async with session_factory() as session:
        async with session.begin():
            dime = MenuItem(id=uuid.uuid4(), store_id=catalog.s1.id, name="Mint", price=Decimal("0.10"))
            session.add(dime)

    order = await service.create_order(
        user_id=catalog.customer.id,
        store_id=catalog.s1.id,
        items=[CartLine(menu_item_id=dime.id, quantity=3)],
        delivery_address="1 Main St",
    )
    assert order.total_amount == Decimal("0.30")


async def test_optional_fields_are_stored(place_order):
    order = await place_order(
        delivery_latitude=40.7128,
        delivery_longitude="-74.0060",
        notes="Ring twice",
    )
    assert order.delivery_latitude == Decimal("40.7128")
    assert order.delivery_longitude == Decimal("-74.0060")
    assert order.notes == "Ring twice"


@pytest.mark.parametrize(
    "overrides,field",
    [
        ({"items": []}, "items"),
        ({"delivery_address": "   "}, "delivery_address"),
        ({"delivery_latitude": 91}, "delivery_latitude"),
        ({"delivery_longitude": -180.5}, "delivery_longitude"),
        ({"delivery_latitude": "north"}, "delivery_latitude"),
        ({"store_id": "not-a-uuid"}, "store_id"),
    ],
)
async def test_malformed_input_is_rejected(place_order, session_factory, overrides, field):
    with pytest.raises(ValidationError) as exc_info:
        await place_order(**overrides)

    assert exc_info.value.details["field"] == field
    assert await count_rows(session_factory, Order) == 0


@pytest.mark.parametrize("quantity", [0, -1, 1.5, True, MAX_ITEM_QUANTITY + 1, 10**20])
async def test_quantity_must_be_in_range(place_order, catalog, session_factory, quantity):
    with pytest.raises(ValidationError, match="quantity"):
        await place_order(items=[CartLine(menu_item_id=catalog.a.id, quantity=quantity)])
    assert await count_rows(session_factory, Order) == 0


async def test_largest_quantity_is_accepted(place_order, catalog):
    order = await place_order(items=[CartLine(menu_item_id=catalog.a.id, quantity=MAX_ITEM_QUANTITY)])
    assert order.total_amount == Decimal("500.00")


async def test_total_above_column_limit_is_rejected(service, session_factory, catalog):
    async with session_factory() as session:
        async with session.begin():
            platter = MenuItem(
                id=uuid.uuid4(), store_id=catalog.s1.id, name="Banquet", price=Decimal("9999999.99")
            )
            session.add(platter)

    with pytest.raises(ValidationError) as exc_info:
        await service.create_order(
            user_id=catalog.customer.id,
            store_id=catalog.s1.id,
            items=[CartLine(menu_item_id=platter.id, quantity=11)],
            delivery_address="1 Main St",
        )

    assert exc_info.value.details["field"] == "total_amount"
    assert await count_rows(session_factory, Order) == 0


async def test_unknown_store(place_order, session_factory):
    with pytest.raises(NotFoundError, match="Store"):
        await place_order(store_id=uuid.uuid4())
    assert await count_rows(session_factory, Order) == 0


async def test_inactive_store(place_order, catalog):
    with pytest.raises(ValidationError, match="not accepting orders"):
        await place_order(store_id=catalog.closed.id)


async def test_unknown_item_names_the_item(place_order, catalog, session_factory):
    missing = uuid.uuid4()
    with pytest.raises(NotFoundError) as exc_info:
        await place_order(
            items=[
                CartLine(menu_item_id=catalog.a.id, quantity=1),
                CartLine(menu_item_id=missing, quantity=1),
            ]
        )

    assert str(missing) in exc_info.value.message
    assert await count_rows(session_factory, Order) == 0
    assert await count_rows(session_factory, OrderItem) == 0


async def test_item_from_another_store_is_rejected(place_order, catalog, session_factory):
    with pytest.raises(NotFoundError, match="not on this store's menu"):
        await place_order(items=[CartLine(menu_item_id=catalog.d.id, quantity=1)])
    assert await count_rows(session_factory, Order) == 0


async def test_unavailable_item_is_rejected(place_order, catalog):
    with pytest.raises(ValidationError, match="unavailable"):
        await place_order(items=[CartLine(menu_item_id=catalog.c.id, quantity=1)])


class FailingLineItemsRepository(OrderRepository):
    """Header write succeeds, line-item write fails."""

    async def add_line_items(self, session, order, items):
        raise OperationalError("INSERT INTO order_items", {}, Exception("disk I/O error"))


async def test_failure_after_header_write_leaves_nothing(session_factory, catalog):
    service = OrderService(session_factory, repository=FailingLineItemsRepository())

    with pytest.raises(StorageError):
        await service.create_order(
            user_id=catalog.customer.id,
            store_id=catalog.s1.id,
            items=[CartLine(menu_item_id=catalog.a.id, quantity=2)],
            delivery_address="12 Harbour Road",
        )

    assert await count_rows(session_factory, Order) == 0
    assert await count_rows(session_factory, OrderItem) == 0


async def test_header_is_visible_only_after_commit(session_factory, catalog):
    seen_by_reader = []

    class PeekingRepository(OrderRepository):
        async def add_line_items(self, session, order, items):
            seen_by_reader.append(await count_rows(session_factory, Order))
            await super().add_line_items(session, order, items)

    service = OrderService(session_factory, repository=PeekingRepository())
    await service.create_order(
        user_id=catalog.customer.id,
        store_id=catalog.s1.id,
        items=[CartLine(menu_item_id=catalog.a.id, quantity=1)],
        delivery_address="12 Harbour Road",
    )

    assert seen_by_reader == [0]
    assert await count_rows(session_factory, Order) == 1
    assert await count_rows(session_factory, OrderItem) == 1
