"""
Pydantic Schemas for Request/Response Validation
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from food_delivery.models import MAX_ITEM_QUANTITY, OrderStatus


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderItemCreate(BaseModel):
    """Single line of a cart."""
    menu_item_id: uuid.UUID
    quantity: int = Field(..., ge=1, le=MAX_ITEM_QUANTITY, examples=[2])


class OrderCreate(BaseModel):
    """Request schema for creating a new order."""

    store_id: uuid.UUID
    items: List[OrderItemCreate] = Field(..., min_length=1)
    delivery_address: str = Field(..., min_length=1, examples=["12 Harbour Road, Apt 4"])
    delivery_latitude: Optional[Decimal] = Field(None, ge=-90, le=90)
    delivery_longitude: Optional[Decimal] = Field(None, ge=-180, le=180)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator('delivery_address')
    @classmethod
    def validate_address(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('delivery_address must not be blank')
        return v.strip()


class OrderStatusUpdate(BaseModel):
    """Operator status change."""
    status: OrderStatus
    expected_status: Optional[OrderStatus] = Field(
        None,
        description="Status the operator last saw; the update is refused if it changed",
    )


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    menu_item_id: uuid.UUID
    quantity: int
    name: str
    image_url: Optional[str]
    price: Decimal
    line_total: Decimal


class OrderResponse(BaseModel):
    """Order header."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    store_id: uuid.UUID
    status: OrderStatus
    total_amount: Decimal
    delivery_address: str
    delivery_latitude: Optional[Decimal]
    delivery_longitude: Optional[Decimal]
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime


class OrderDetailResponse(OrderResponse):
    """Order header with its store and line items."""
    store_name: str
    store_logo_url: Optional[str]
    items: List[OrderItemResponse]


class AdminOrderResponse(OrderResponse):
    """Order header with the store and customer an operator needs."""
    store_name: str
    customer_name: Optional[str]
    customer_phone: str


class AdminOrderDetailResponse(OrderDetailResponse):
    customer_name: Optional[str]
    customer_phone: str


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class OrderListResponse(BaseModel):
    """Paginated admin listing."""
    success: bool = True
    data: List[AdminOrderResponse]
    pagination: Pagination


class OrderEnvelope(BaseModel):
    """Admin single-order response."""
    success: bool = True
    data: OrderResponse


class OrderDetailEnvelope(BaseModel):
    success: bool = True
    data: AdminOrderDetailResponse


class OrderAnalyticsResponse(BaseModel):
    """Order counts and revenue for a date range."""
    range: str
    total_orders: int
    total_revenue: Decimal
    average_order_value: Decimal
    status_breakdown: dict[str, int]


class AnalyticsEnvelope(BaseModel):
    success: bool = True
    data: OrderAnalyticsResponse


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    code: str
    details: Optional[dict[str, str]] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    notification_service: str
    timestamp: datetime
