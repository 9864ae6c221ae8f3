import uuid
from decimal import Decimal

import httpx
import pytest

from food_delivery.database import get_db
from food_delivery import main
from food_delivery.main import app, get_order_service
from food_delivery.models import MAX_ITEM_QUANTITY


@pytest.fixture
async def client(service, session_factory):
    async def _db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_order_service] = lambda: service
    app.dependency_overrides[get_db] = _db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def customer_headers(catalog):
    return {"X-User-Id": str(catalog.customer.id)}


@pytest.fixture
def admin_headers():
    return {"X-User-Id": str(uuid.uuid4()), "X-User-Role": "admin"}


@pytest.fixture
def cart(catalog):
    return {
        "store_id": str(catalog.s1.id),
        "items": [
            {"menu_item_id": str(catalog.a.id), "quantity": 2},
            {"menu_item_id": str(catalog.b.id), "quantity": 1},
        ],
        "delivery_address": "12 Harbour Road",
        "delivery_latitude": 51.5,
        "delivery_longitude": -0.12,
    }


async def test_create_order(client, customer_headers, cart, catalog):
    resp = await client.post("/api/orders", json=cart, headers=customer_headers)

    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "pending"
    assert Decimal(body["total_amount"]) == Decimal("13.50")
    assert body["user_id"] == str(catalog.customer.id)


async def test_create_order_requires_identity(client, cart):
    resp = await client.post("/api/orders", json=cart)
    assert resp.status_code == 401


async def test_create_order_rejects_bad_body(client, customer_headers, cart):
    cart["items"][0]["quantity"] = 0
    resp = await client.post("/api/orders", json=cart, headers=customer_headers)

    assert resp.status_code == 400
    assert resp.json()["code"] == "validation_error"


async def test_create_order_rejects_oversized_quantity(client, customer_headers, cart):
    cart["items"][0]["quantity"] = MAX_ITEM_QUANTITY + 1
    resp = await client.post("/api/orders", json=cart, headers=customer_headers)

    assert resp.status_code == 400
    assert resp.json()["code"] == "validation_error"


async def test_create_order_rejects_out_of_range_latitude(client, customer_headers, cart):
    cart["delivery_latitude"] = 123
    resp = await client.post("/api/orders", json=cart, headers=customer_headers)
    assert resp.status_code == 400


async def test_create_order_unknown_item(client, customer_headers, cart):
    cart["items"].append({"menu_item_id": str(uuid.uuid4()), "quantity": 1})
    resp = await client.post("/api/orders", json=cart, headers=customer_headers)

    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"


async def test_customer_reads_own_orders(client, customer_headers, cart, catalog):
    created = (await client.post("/api/orders", json=cart, headers=customer_headers)).json()

    listing = await client.get("/api/orders", headers=customer_headers)
    assert [o["id"] for o in listing.json()] == [created["id"]]

    detail = await client.get(f"/api/orders/{created['id']}", headers=customer_headers)
    assert detail.status_code == 200
    body = detail.json()
    assert body["store_name"] == "Burger Barn"
    assert body["store_logo_url"] == "https://cdn.example.com/burger-barn.png"
    assert [(i["name"], i["quantity"]) for i in body["items"]] == [("Cheeseburger", 2), ("Fries", 1)]
    assert body["items"][0]["image_url"] == "https://cdn.example.com/cheeseburger.png"
    assert body["items"][1]["image_url"] is None
    assert "customer_phone" not in body

    assert listing.json()[0]["items"][1]["name"] == "Fries"

    stranger = {"X-User-Id": str(catalog.other.id)}
    resp = await client.get(f"/api/orders/{created['id']}", headers=stranger)
    assert resp.status_code == 404


async def test_customer_cancel_then_admin_cannot_advance(client, customer_headers, admin_headers, cart):
    created = (await client.post("/api/orders", json=cart, headers=customer_headers)).json()

    resp = await client.put(f"/api/orders/{created['id']}/cancel", headers=customer_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"

    resp = await client.put(
        f"/api/admin/orders/{created['id']}/status",
        json={"status": "ready"},
        headers=admin_headers,
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "invalid_transition"


async def test_admin_routes_require_admin_role(client, customer_headers):
    resp = await client.get("/api/admin/orders", headers=customer_headers)
    assert resp.status_code == 403


async def test_admin_status_flow_and_listing(client, customer_headers, admin_headers, cart):
    created = (await client.post("/api/orders", json=cart, headers=customer_headers)).json()
    url = f"/api/admin/orders/{created['id']}/status"

    resp = await client.put(url, json={"status": "confirmed"}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "confirmed"

    resp = await client.put(
        url,
        json={"status": "preparing", "expected_status": "pending"},
        headers=admin_headers,
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "concurrency_conflict"

    listing = await client.get(
        "/api/admin/orders", params={"status": "confirmed"}, headers=admin_headers
    )
    body = listing.json()
    assert body["pagination"] == {"total": 1, "page": 1, "limit": 10, "total_pages": 1}
    row = body["data"][0]
    assert row["id"] == created["id"]
    assert row["store_name"] == "Burger Barn"
    assert row["customer_name"] == "Test Customer"
    assert row["customer_phone"] == "+15550001111"

    detail = await client.get(f"/api/admin/orders/{created['id']}", headers=admin_headers)
    data = detail.json()["data"]
    assert [i["name"] for i in data["items"]] == ["Cheeseburger", "Fries"]
    assert data["store_name"] == "Burger Barn"
    assert data["customer_name"] == "Test Customer"
    assert data["customer_phone"] == "+15550001111"


async def test_admin_cancel(client, customer_headers, admin_headers, cart):
    created = (await client.post("/api/orders", json=cart, headers=customer_headers)).json()

    resp = await client.put(f"/api/admin/orders/{created['id']}/cancel", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "cancelled"


async def test_admin_listing_rejects_oversized_page(client, admin_headers):
    resp = await client.get("/api/admin/orders", params={"limit": 1000}, headers=admin_headers)
    assert resp.status_code == 400


async def test_admin_analytics(client, customer_headers, admin_headers, cart):
    await client.post("/api/orders", json=cart, headers=customer_headers)
    await client.post("/api/orders", json=cart, headers=customer_headers)

    resp = await client.get(
        "/api/admin/analytics/orders", params={"range": "week"}, headers=admin_headers
    )
    data = resp.json()["data"]
    assert data["total_orders"] == 2
    assert Decimal(data["total_revenue"]) == Decimal("27.00")
    assert Decimal(data["average_order_value"]) == Decimal("13.50")
    assert data["status_breakdown"] == {"pending": 2}

    resp = await client.get(
        "/api/admin/analytics/orders", params={"range": "decade"}, headers=admin_headers
    )
    assert resp.status_code == 400


class FakeRedis:
    reachable = True

    @classmethod
    def from_url(cls, url, **kwargs):
        return cls()

    def ping(self):
        if not self.reachable:
            raise ConnectionError("Connection refused")
        return True

    def close(self):
        pass


class DownRedis(FakeRedis):
    reachable = False


async def test_health(client, monkeypatch):
    monkeypatch.setattr(main.redis, "Redis", FakeRedis)

    resp = await client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["database"] == "healthy"
    assert body["redis"] == "healthy"
    assert body["status"] == "operational"


async def test_health_reports_broker_outage(client, monkeypatch):
    monkeypatch.setattr(main.redis, "Redis", DownRedis)

    body = (await client.get("/health")).json()

    assert body["redis"].startswith("unhealthy")
    assert body["database"] == "healthy"
    assert body["status"] == "degraded"
