"""
Tests for the FastAPI surface (`api/main.py`, `api/routers`).

The fulfillment service dependency is overridden with one wired to the
in-memory database and scripted supplier. Errors surface as
{"detail": {"error", "code", "status", "details"}}.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from api.main import app
from fakes import FakeHTTPResponse, card_body, product_body, seed_order, seed_transaction
from services.fulfillment_service import get_fulfillment_service


@pytest.fixture
def client(service):
    app.dependency_overrides[get_fulfillment_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["supplier_environment"] in ("sandbox", "production")


def test_approve_delivers_gift_card(client, db, session) -> None:
    seed_order(db)
    session.add("GET", "/products/120", FakeHTTPResponse(200, product_body(fixed=[10])))
    session.add("POST", "/orders", FakeHTTPResponse(200, {"transactionId": "T-1"}))
    session.add("GET", "/orders/transactions/T-1/cards", FakeHTTPResponse(200, card_body("API-CODE")))

    response = client.post("/api/v1/orders/ord-1/approve")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["status"] == "completed"
    assert body["delivered"] is True
    assert body["transaction_id"] == "T-1"


def test_approve_price_outside_range_returns_structured_error(client, db, session) -> None:
    seed_order(db, price_at_time=100000)
    session.add("GET", "/products/120", FakeHTTPResponse(200, product_body(min_amount=5, max_amount=500)))

    response = client.post("/api/v1/orders/ord-1/approve")

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["code"] == "INVALID_PRICE_RANGE"
    assert detail["status"] == 400
    assert detail["error"] == "Invalid price. Must be between 5 and 500"
    assert float(detail["details"]["max"]) == 500.0


def test_approve_unknown_order_is_404(client, db) -> None:
    response = client.post("/api/v1/orders/missing/approve")

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "ORDER_NOT_FOUND"


def test_resend_without_code_is_404(client, db, session) -> None:
    seed_order(db, status="approved")
    seed_transaction(db, external_id="T-1")
    session.add("GET", "/orders/transactions/T-1/cards", FakeHTTPResponse(500, {"message": "down"}))

    response = client.post("/api/v1/orders/ord-1/resend-gift-card")

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "Gift card redemption details not available"


def test_resend_from_stored_code(client, db, session) -> None:
    seed_order(db, status="completed", metadata={"redemptionCode": "XYZ"})

    response = client.post("/api/v1/orders/ord-1/resend-gift-card")

    assert response.status_code == 200
    body = response.json()
    assert body["source"] == "order_metadata"
    assert body["email_sent"] is True


def test_reject(client, db) -> None:
    seed_order(db)

    response = client.post("/api/v1/orders/ord-1/reject")

    assert response.status_code == 200
    assert response.json()["status"] == "rejected"


def test_list_gift_card_orders(client, db) -> None:
    seed_order(db, order_id="ord-old", created_at="2025-01-01T00:00:00+00:00")
    seed_order(
        db,
        order_id="ord-new",
        status="completed",
        metadata={"redemptionCode": "XYZ"},
        created_at="2025-02-01T00:00:00+00:00",
    )
    seed_order(db, order_id="ord-shirt", product_type="physical", item_name="T-Shirt")

    response = client.get("/api/v1/gift-card-orders")

    assert response.status_code == 200
    body = response.json()
    assert body["total_count"] == 2
    assert [o["order_id"] for o in body["orders"]] == ["ord-new", "ord-old"]
    assert body["orders"][0]["redemption_available"] is True
    assert body["orders"][1]["redemption_available"] is False
    assert float(body["orders"][0]["amount"]) == 10.0


def test_redemption_details(client, db) -> None:
    seed_order(db, status="completed", metadata={"redemptionCode": "XYZ", "pinCode": "1"})

    response = client.get("/api/v1/orders/ord-1/redemption")

    assert response.status_code == 200
    body = response.json()
    assert body["available"] is True
    assert body["redemption_code"] == "XYZ"
    assert body["source"] == "order_metadata"


def test_redemption_details_with_unparseable_timestamp(client, db) -> None:
    seed_order(db, status="completed", metadata={"redemptionCode": "XYZ", "sentAt": "Mon Jan 01 2024 10:00:00 GMT+0000"})

    details = client.get("/api/v1/orders/ord-1/redemption")
    listing = client.get("/api/v1/gift-card-orders")

    assert details.status_code == 200
    assert details.json()["redemption_code"] == "XYZ"
    assert details.json()["delivered_at"] is None
    assert listing.status_code == 200
    assert listing.json()["orders"][0]["redemption_available"] is True
