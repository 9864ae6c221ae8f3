"""
FastAPI Application Entry Point

Food Delivery Order Service.

Endpoints:
    - POST /api/orders: Place an order
    - GET /api/orders: The caller's orders
    - GET /api/orders/{order_id}: One of the caller's orders with line items
    - PUT /api/orders/{order_id}/cancel: Customer cancellation
    - GET /api/admin/orders: Paginated order listing
    - GET /api/admin/orders/{order_id}: Any order with line items
    - PUT /api/admin/orders/{order_id}/status: Operator status change
    - PUT /api/admin/orders/{order_id}/cancel: Operator cancellation
    - GET /api/admin/analytics/orders: Order analytics
    - GET /health: System health check

Caller identity arrives from the authentication gateway in the
``X-User-Id`` and ``X-User-Role`` headers.
"""

import logging
import math
import uuid
from datetime import datetime
from typing import Optional
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
import redis

from food_delivery.core.config import get_settings, setup_logging
from food_delivery.core.exceptions import (
    ConcurrencyConflictError,
    InvalidTransitionError,
    NotFoundError,
    OrderServiceError,
    StorageError,
    ValidationError,
)
from food_delivery.database import async_session_maker, engine, get_db, init_db
from food_delivery.orders import CartLine, OrderService
from food_delivery.schemas import (
    AdminOrderDetailResponse,
    AdminOrderResponse,
    AnalyticsEnvelope,
    ErrorResponse,
    HealthResponse,
    OrderCreate,
    OrderDetailEnvelope,
    OrderDetailResponse,
    OrderEnvelope,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    Pagination,
)
from food_delivery.services.notifications import get_notification_service
from food_delivery.tasks import dispatch_status_notification

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


ERROR_STATUS_CODES = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    ConcurrencyConflictError: status.HTTP_409_CONFLICT,
    StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("Database initialized")

    notification_service = get_notification_service()
    logger.info(f"Notification Service: {notification_service.provider_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    logger.info("Application ready")

    yield  # Application runs

    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description="Order placement and order lifecycle API for the food delivery platform.",
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_order_service() -> OrderService:
    return OrderService(async_session_maker, notifier=dispatch_status_notification)


def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="x-user-id"),
) -> uuid.UUID:
    """Authenticated caller, as asserted by the gateway."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing caller identity")
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid caller identity")


def require_admin(
    user_id: uuid.UUID = Depends(get_current_user_id),
    x_user_role: Optional[str] = Header(None, alias="x-user-role"),
) -> uuid.UUID:
    if (x_user_role or "").lower() != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user_id


# =============================================================================
# HEALTH
# =============================================================================

@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify the database, the Celery broker and the SMS provider are reachable."""
    db_status = "healthy"
    try:
        await db.execute(select(func.now()))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    # Check Redis (Celery broker)
    redis_status = "healthy"
    try:
        r = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
        r.ping()
        r.close()
    except Exception as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    notification_service = get_notification_service()
    notification_status = "healthy" if await notification_service.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, redis_status, notification_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        notification_service=notification_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# CUSTOMER ORDER ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Create Order",
)
async def create_order(
    order_data: OrderCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Price the cart from the catalog and place the order."""
    order = await service.create_order(
        user_id=user_id,
        store_id=order_data.store_id,
        items=[
            CartLine(menu_item_id=item.menu_item_id, quantity=item.quantity)
            for item in order_data.items
        ],
        delivery_address=order_data.delivery_address,
        delivery_latitude=order_data.delivery_latitude,
        delivery_longitude=order_data.delivery_longitude,
        notes=order_data.notes,
    )
    return OrderResponse.model_validate(order)


@app.get(
    "/api/orders",
    response_model=list[OrderDetailResponse],
    tags=["Orders"],
)
async def list_my_orders(
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: OrderService = Depends(get_order_service),
) -> list[OrderDetailResponse]:
    orders = await service.list_user_orders(user_id)
    return [OrderDetailResponse.model_validate(o) for o in orders]


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderDetailResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def get_my_order(
    order_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: OrderService = Depends(get_order_service),
) -> OrderDetailResponse:
    order = await service.get_order(order_id, user_id=user_id)
    return OrderDetailResponse.model_validate(order)


@app.put(
    "/api/orders/{order_id}/cancel",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def cancel_my_order(
    order_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Cancel one of the caller's orders while it is pending or confirmed."""
    order = await service.cancel_order(order_id, user_id)
    return OrderResponse.model_validate(order)


# =============================================================================
# ADMIN ORDER ENDPOINTS
# =============================================================================

@app.get(
    "/api/admin/orders",
    response_model=OrderListResponse,
    responses=ERROR_RESPONSES,
    tags=["Admin"],
)
async def admin_list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    status_filter: Optional[str] = Query(None, alias="status"),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    _admin: uuid.UUID = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    orders, total = await service.list_orders(
        page=page,
        limit=limit,
        status=status_filter,
        start_date=start_date,
        end_date=end_date,
    )
    return OrderListResponse(
        data=[AdminOrderResponse.model_validate(o) for o in orders],
        pagination=Pagination(
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        ),
    )


@app.get(
    "/api/admin/orders/{order_id}",
    response_model=OrderDetailEnvelope,
    responses=ERROR_RESPONSES,
    tags=["Admin"],
)
async def admin_get_order(
    order_id: uuid.UUID,
    _admin: uuid.UUID = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
) -> OrderDetailEnvelope:
    order = await service.get_order(order_id, include_customer=True)
    return OrderDetailEnvelope(data=AdminOrderDetailResponse.model_validate(order))


@app.put(
    "/api/admin/orders/{order_id}/status",
    response_model=OrderEnvelope,
    responses=ERROR_RESPONSES,
    tags=["Admin"],
)
async def admin_update_status(
    order_id: uuid.UUID,
    body: OrderStatusUpdate,
    admin_id: uuid.UUID = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
) -> OrderEnvelope:
    """Move an order along its lifecycle."""
    logger.info(f"Admin {admin_id} requests order #{order_id} -> {body.status.value}")
    order = await service.advance_order_status(order_id, body.status, body.expected_status)
    return OrderEnvelope(data=OrderResponse.model_validate(order))


@app.put(
    "/api/admin/orders/{order_id}/cancel",
    response_model=OrderEnvelope,
    responses=ERROR_RESPONSES,
    tags=["Admin"],
)
async def admin_cancel_order(
    order_id: uuid.UUID,
    _admin: uuid.UUID = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
) -> OrderEnvelope:
    order = await service.cancel_order_as_operator(order_id)
    return OrderEnvelope(data=OrderResponse.model_validate(order))


@app.get(
    "/api/admin/analytics/orders",
    response_model=AnalyticsEnvelope,
    responses=ERROR_RESPONSES,
    tags=["Admin"],
)
async def admin_order_analytics(
    range_name: str = Query("today", alias="range"),
    _admin: uuid.UUID = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
) -> AnalyticsEnvelope:
    analytics = await service.order_analytics(range_name)
    return AnalyticsEnvelope(data=analytics)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(OrderServiceError)
async def order_error_handler(request: Request, exc: OrderServiceError) -> JSONResponse:
    """Map order workflow errors to HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are reported like any other ValidationError."""
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    error = ValidationError(f"{location}: {message}" if location else message)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "code": "server_error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
