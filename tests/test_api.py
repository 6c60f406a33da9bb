"""HTTP behaviour: status codes, error envelope and a short order-to-cash walk."""
import uuid
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from erp_core import main
from erp_core.database import get_db


@pytest.fixture
async def client(session_factory, monkeypatch):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    main.app.dependency_overrides[get_db] = override_get_db
    monkeypatch.setattr(main, "async_session_factory", session_factory)
    async with AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test") as ac:
        yield ac
    main.app.dependency_overrides.clear()


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"] == "connected"


async def test_order_to_cash(client, seed, add_stock):
    await add_stock(seed.warehouse_id, seed.product_id, 10)
    user_id = str(uuid.uuid4())

    response = await client.post(
        "/api/v1/sales-orders",
        json={
            "customer_id": str(seed.customer_id),
            "warehouse_id": str(seed.warehouse_id),
            "items": [{"product_id": str(seed.product_id), "quantity": 3}],
        },
        headers={"X-User-Id": user_id},
    )
    assert response.status_code == 201
    order = response.json()
    assert order["status"] == "PENDING"
    assert Decimal(order["total_amount"]) == Decimal("354.00")

    response = await client.get(f"/api/v1/inventory/{seed.warehouse_id}/{seed.product_id}")
    assert response.status_code == 200
    assert response.json()["reserved"] == 3
    assert response.json()["free_quantity"] == 7

    response = await client.post(f"/api/v1/sales-orders/{order['id']}/confirm")
    assert response.status_code == 200
    assert response.json()["status"] == "CONFIRMED"

    response = await client.post(f"/api/v1/sales-orders/{order['id']}/invoice")
    assert response.status_code == 201
    invoice = response.json()
    assert invoice["invoice_number"].startswith("INV")

    response = await client.post(f"/api/v1/sales-orders/{order['id']}/invoice")
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "INVOICE_EXISTS"

    response = await client.post(
        f"/api/v1/invoices/{invoice['id']}/payments",
        json={"customer_id": str(seed.customer_id), "amount": "354.00", "payment_method": "UPI"},
    )
    assert response.status_code == 201
    assert response.json()["payment_method"] == "UPI"

    response = await client.get(f"/api/v1/sales-orders/{order['id']}")
    assert response.json()["payment_status"] == "PAID"

    response = await client.get("/api/v1/sales-orders", params={"status": "PROCESSING"})
    listing = response.json()
    assert listing["total"] == 1
    assert listing["pages"] == 1


async def test_not_found_uses_error_envelope(client, seed):
    response = await client.get(f"/api/v1/sales-orders/{uuid.uuid4()}")
    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "NOT_FOUND"
    assert "timestamp" in body


async def test_missing_inventory_record(client, seed):
    response = await client.get(f"/api/v1/inventory/{seed.warehouse_id}/{seed.product_id}")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NO_INVENTORY"


async def test_shortfall_is_reported(client, seed, add_stock):
    await add_stock(seed.warehouse_id, seed.product_id, 1)
    response = await client.post(
        "/api/v1/sales-orders",
        json={
            "customer_id": str(seed.customer_id),
            "warehouse_id": str(seed.warehouse_id),
            "items": [{"product_id": str(seed.product_id), "quantity": 2}],
        },
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INSUFFICIENT_INVENTORY"

    response = await client.get("/api/v1/sales-orders")
    assert response.json()["total"] == 0


async def test_invalid_transition_is_400(client, seed, add_stock):
    await add_stock(seed.warehouse_id, seed.product_id, 5)
    response = await client.post(
        "/api/v1/transfers",
        json={
            "from_warehouse_id": str(seed.warehouse_id),
            "to_warehouse_id": str(seed.second_warehouse_id),
            "items": [{"product_id": str(seed.product_id), "quantity": 2}],
        },
    )
    assert response.status_code == 201
    transfer_id = response.json()["id"]

    response = await client.post(f"/api/v1/transfers/{transfer_id}/receive", json={})
    assert response.status_code == 400
    body = response.json()
    assert body["error"]["code"] == "INVALID_STATUS"


async def test_same_warehouse_transfer(client, seed):
    response = await client.post(
        "/api/v1/transfers",
        json={
            "from_warehouse_id": str(seed.warehouse_id),
            "to_warehouse_id": str(seed.warehouse_id),
            "items": [{"product_id": str(seed.product_id), "quantity": 1}],
        },
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "SAME_WAREHOUSE"


async def test_request_validation_is_422(client, seed):
    response = await client.post(
        "/api/v1/sales-orders",
        json={"customer_id": str(seed.customer_id), "warehouse_id": str(seed.warehouse_id), "items": []},
    )
    assert response.status_code == 422


async def test_repeated_product_on_order_is_422(client, seed):
    line = {"product_id": str(seed.product_id), "quantity": 2}
    response = await client.post(
        "/api/v1/sales-orders",
        json={"customer_id": str(seed.customer_id), "warehouse_id": str(seed.warehouse_id), "items": [line, line]},
    )
    assert response.status_code == 422


async def test_reorder_point_and_low_stock(client, seed, add_stock):
    await add_stock(seed.warehouse_id, seed.product_id, 4)
    response = await client.put(
        f"/api/v1/inventory/{seed.warehouse_id}/{seed.product_id}/reorder-point",
        json={"reorder_point": 5},
    )
    assert response.status_code == 200
    assert response.json()["is_low_stock"] is True

    response = await client.get("/api/v1/inventory/low-stock", params={"warehouse_id": str(seed.warehouse_id)})
    assert [r["product_id"] for r in response.json()] == [str(seed.product_id)]

    response = await client.get(f"/api/v1/inventory/{seed.warehouse_id}/{seed.product_id}/transactions")
    assert [t["transaction_type"] for t in response.json()] == ["INWARD"]


async def test_supplier_payment_walk(client, seed):
    response = await client.post(
        "/api/v1/purchase-orders",
        json={
            "supplier_id": str(seed.supplier_id),
            "warehouse_id": str(seed.warehouse_id),
            "items": [{"product_id": str(seed.product_id), "quantity": 5, "unit_price": "60.00"}],
        },
    )
    assert response.status_code == 201
    po_id = response.json()["id"]

    payment_body = {"supplier_id": str(seed.supplier_id), "purchase_order_id": po_id, "amount": "300.00"}
    response = await client.post("/api/v1/supplier-payments", json=payment_body)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_STATUS"

    await client.post(f"/api/v1/purchase-orders/{po_id}/submit")
    await client.post(f"/api/v1/purchase-orders/{po_id}/approve")

    response = await client.post("/api/v1/supplier-payments", json=payment_body)
    assert response.status_code == 201
    payment_id = response.json()["id"]

    response = await client.post("/api/v1/supplier-payments", json={**payment_body, "amount": "0.01"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "EXCESS_AMOUNT"

    await client.post(f"/api/v1/supplier-payments/{payment_id}/approve")
    response = await client.post(f"/api/v1/supplier-payments/{payment_id}/process")
    assert response.status_code == 200
    assert response.json()["status"] == "PROCESSED"

    response = await client.get(f"/api/v1/purchase-orders/{po_id}")
    assert Decimal(response.json()["paid_amount"]) == Decimal("300.00")

    response = await client.post(f"/api/v1/purchase-orders/{po_id}/cancel")
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "HAS_PAYMENTS"
