"""
Shared fixtures: a throwaway SQLite database per test, a seeded catalog,
and an OrderService whose status notifications are captured in a list.
"""

import os

os.environ.setdefault("ENV_MODE", "development")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["ORDER_NOTIFICATIONS_ENABLED"] = "false"

import uuid
from decimal import Decimal
from types import SimpleNamespace

import pytest

from food_delivery.core.config import get_settings

get_settings.cache_clear()

from food_delivery.database import build_engine, build_session_factory, init_db
from food_delivery.models import MenuItem, Store, User
from food_delivery.orders import CartLine, OrderService


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def notifications():
    """(order_id, phone, status) tuples the service asked to send."""
    return []


@pytest.fixture
def service(session_factory, notifications):
    return OrderService(
        session_factory,
        notifier=lambda order_id, phone, status: notifications.append((order_id, phone, status)),
    )


@pytest.fixture
async def catalog(session_factory):
    """
    Two stores and a customer:
        S1: A 5.00, B 3.50, C 7.25 (unavailable)
        S2: D 9.00
        closed: inactive store
    """
    customer = User(id=uuid.uuid4(), phone="+15550001111", full_name="Test Customer")
    other = User(id=uuid.uuid4(), phone="+15550002222", full_name="Other Customer")
    s1 = Store(id=uuid.uuid4(), name="Burger Barn", logo_url="https://cdn.example.com/burger-barn.png")
    s2 = Store(id=uuid.uuid4(), name="Noodle House")
    closed = Store(id=uuid.uuid4(), name="Closed Cafe", is_active=False)
    a = MenuItem(
        id=uuid.uuid4(),
        store_id=s1.id,
        name="Cheeseburger",
        price=Decimal("5.00"),
        image_url="https://cdn.example.com/cheeseburger.png",
    )
    b = MenuItem(id=uuid.uuid4(), store_id=s1.id, name="Fries", price=Decimal("3.50"))
    c = MenuItem(
        id=uuid.uuid4(), store_id=s1.id, name="Milkshake", price=Decimal("7.25"), is_available=False
    )
    d = MenuItem(id=uuid.uuid4(), store_id=s2.id, name="Ramen", price=Decimal("9.00"))

    async with session_factory() as session:
        async with session.begin():
            session.add_all([customer, other, s1, s2, closed])
            await session.flush()
            session.add_all([a, b, c, d])

    return SimpleNamespace(
        customer=customer,
        other=other,
        s1=s1,
        s2=s2,
        closed=closed,
        a=a,
        b=b,
        c=c,
        d=d,
    )


@pytest.fixture
def place_order(service, catalog):
    """Place the reference cart (2 x A, 1 x B) for the seeded customer."""

    async def _place(**overrides):
        params = dict(
            user_id=catalog.customer.id,
            store_id=catalog.s1.id,
            items=[
                CartLine(menu_item_id=catalog.a.id, quantity=2),
                CartLine(menu_item_id=catalog.b.id, quantity=1),
            ],
            delivery_address="12 Harbour Road",
        )
        params.update(overrides)
        return await service.create_order(**params)

    return _place
