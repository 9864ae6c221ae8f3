"""
SQLAlchemy Database Models

Catalog (categories, stores, menu items), users, and the order tables:
- Order header with a status column driven by the order state machine
- Order line items carrying the unit price captured at order time
"""

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from food_delivery.database import Base

# Largest quantity a single cart line may request.
MAX_ITEM_QUANTITY = 100

# Largest value a Numeric(10, 2) money column holds.
MAX_AMOUNT = Decimal("99999999.99")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


# =============================================================================
# USERS (owned by the authentication service, read here)
# =============================================================================

class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    phone = Column(String(15), nullable=False, unique=True)
    full_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="user")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<User {self.id} - {self.phone}>"


# =============================================================================
# CATALOG
# =============================================================================

class Category(Base):
    __tablename__ = "categories"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Store(Base):
    __tablename__ = "stores"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    category_id = Column(Uuid, ForeignKey("categories.id"), nullable=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    logo_url = Column(Text, nullable=True)
    address = Column(Text, nullable=True)
    phone = Column(String(15), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Store {self.name}>"


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    store_id = Column(Uuid, ForeignKey("stores.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    image_url = Column(Text, nullable=True)
    is_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<MenuItem {self.name} @ {self.price}>"


# =============================================================================
# ORDERS
# =============================================================================

class Order(Base):
    """
    Order header.

    ``total_amount`` is the sum of the line items' snapshot prices and is
    written once, at creation. ``status`` only changes through
    ``food_delivery.orders.state_machine``.
    """
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    store_id = Column(Uuid, ForeignKey("stores.id", ondelete="RESTRICT"), nullable=False, index=True)

    status = Column(
        Enum(
            OrderStatus,
            name="order_status",
            native_enum=False,
            length=20,
            values_callable=_enum_values,
        ),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True,
    )
    total_amount = Column(Numeric(10, 2), nullable=False)

    # Delivery
    delivery_address = Column(Text, nullable=False)
    delivery_latitude = Column(Numeric(10, 8), nullable=True)
    delivery_longitude = Column(Numeric(11, 8), nullable=True)
    notes = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    store = relationship("Store", lazy="raise")
    customer = relationship("User", lazy="raise")

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
        order_by="OrderItem.position",
    )

    @property
    def store_name(self):
        return self.store.name

    @property
    def store_logo_url(self):
        return self.store.logo_url

    @property
    def customer_name(self):
        return self.customer.full_name

    @property
    def customer_phone(self):
        return self.customer.phone

    def __repr__(self):
        return f"<Order #{self.id} - {self.status.value} - {self.total_amount}>"


class OrderItem(Base):
    """One menu item within an order; immutable once written."""
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        CheckConstraint("price >= 0", name="ck_order_items_price_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    menu_item_id = Column(Uuid, ForeignKey("menu_items.id", ondelete="RESTRICT"), nullable=False)
    position = Column(Integer, nullable=False, default=0)  # index within the cart
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)  # unit price at order time
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    order = relationship("Order", back_populates="items", lazy="raise")
    menu_item = relationship("MenuItem", lazy="raise")

    @property
    def line_total(self):
        return self.price * self.quantity

    @property
    def name(self):
        return self.menu_item.name

    @property
    def image_url(self):
        return self.menu_item.image_url

    def __repr__(self):
        return f"<OrderItem {self.quantity}x {self.menu_item_id} @ {self.price}>"
