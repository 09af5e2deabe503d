from __future__ import annotations

import sys
from pathlib import Path

from fastapi.testclient import TestClient

sys.path.append(str(Path(__file__).resolve().parents[1]))

from orderdesk.application import OrderService, configure_order_service
from orderdesk.core.query_builder import OrderQueryBuilder
from orderdesk.core.schema import VERIFIED_CONFIRMED
from orderdesk.infrastructure import DuckDBWarehouse
from orderdesk.settings import WarehouseSettings

VERIFY_ROW = {
    "SO_No": "SO-1",
    "Customer": "Acme Traders",
    "Item": "KRT-101",
    "Color": "RED",
    "New_Color": "MAROON",
    "Size": "40",
    "OrderQty": "10",
    "SO_Date": "05-01-2025",
    "Unexpected": "dropped",
}


def test_root_and_sales_orders(client):
    root = client.get("/")
    assert root.status_code == 200
    assert root.json()["docs"] == "/docs"

    response = client.get("/api/sales-orders", params=[("tokens", "SO-1"), ("tokens", "shrt"), ("limit", "1")])
    assert response.status_code == 200
    data = response.json()
    assert [row["SO_No"] for row in data["rows"]] == ["SO-1"]
    assert data["total"] == 2

    included = client.get(
        "/api/sales-orders",
        params=[("includeColumn", "SO_No"), ("includeValues", "SO-5"), ("startDate", "2025-01-04")],
    )
    assert "SO-5" in [row["SO_No"] for row in included.json()["rows"]]


def test_dispatch_round_trip(client):
    empty = client.get("/api/dispatch/keys")
    assert empty.status_code == 200
    assert empty.json() == {"keys": []}

    response = client.post(
        "/api/dispatch",
        json={
            "rows": [
                {
                    "SO_No": " SO-1 ",
                    "Customer": "Acme Traders",
                    "Item": "KRT-101",
                    "Old_Color": "RED",
                    "New_Color": "MAROON",
                    "Color": "MAROON",
                    "ProductionQty": "5",
                    "Dispatched": True,
                },
                {"SO_No": 12, "Customer": "ignored"},
            ]
        },
    )
    assert response.status_code == 200
    assert response.json() == {"inserted": 1, "table": "demo.sales.dispatched_orders"}

    keys = client.get("/api/dispatch/keys").json()["keys"]
    assert keys == ["SO-1|ACME TRADERS|KRT-101|RED"]


def test_dispatch_validation_errors(client):
    assert client.post("/api/dispatch", json={"rows": "nope"}).status_code == 400
    response = client.post("/api/dispatch", json={"rows": [{"SO_No": "   "}]})
    assert response.status_code == 400
    assert response.json()["detail"] == "No valid rows to insert (missing or invalid SO_No?)"


def test_verification_flow_merges_and_broadcasts(client, notifier):
    received = []
    notifier.subscribe(received.append)

    pending = client.post("/api/verify", json={"rows": [VERIFY_ROW]})
    assert pending.status_code == 200
    assert pending.json() == {"success": True, "inserted": 1}

    confirmed = client.post("/api/verify/confirm", json={"rows": [VERIFY_ROW]})
    assert confirmed.status_code == 200
    body = confirmed.json()
    assert body["inserted"] == 1
    record = body["rows"][0]
    assert record["verified_at"] == "2025-01-15T09:30:00.000Z"
    assert record["source"] == "sales_orders"
    assert record["OrderQty"] == 10
    assert "Unexpected" not in record

    assert received == [{"type": VERIFIED_CONFIRMED, "row": record}]

    listing = client.get("/api/verify").json()
    assert listing["total"] == 1
    merged = listing["rows"][0]
    assert merged["verified_at"] == "2025-01-15T09:30:00.000Z"
    assert merged["New_Color"] == "MAROON"


def test_verification_and_cancel_validation(client):
    assert client.post("/api/verify", json={"rows": []}).status_code == 400
    assert client.post("/api/verify/confirm", json={}).status_code == 400
    assert client.post("/api/sales-orders/cancel", json={}).status_code == 400

    cancelled = client.post("/api/sales-orders/cancel", json={"orderNo": "SO-1"})
    assert cancelled.status_code == 200
    assert cancelled.json() == {"success": True, "message": "Order SO-1 has been cancelled successfully"}


def test_stock_and_reference_endpoints(client):
    batch = client.post("/api/stock/batch", json={"items": ["krt-101"]}).json()
    assert sorted(row["Color"] for row in batch["rows"]) == ["BLUE", "RED"]
    assert client.post("/api/stock/batch", json={"items": []}).json() == {"rows": []}

    stock = client.get("/api/stock", params={"normalizedItem": "sar-220"}).json()
    assert stock["total"] == 1
    assert stock["rows"][0]["Closing_Stock"] == 0

    customers = client.get("/api/customers", params={"type": "Dealer"}).json()
    assert [row["Customer"] for row in customers["rows"]] == ["City Fashions [Siliguri]"]

    invoices = client.get("/api/invoice-details", params={"q": "inv-1"}).json()
    assert invoices["total"] == 1
    assert invoices["rows"][0]["parsed_date"] == "2024-12-20"

    samples = client.get("/api/sample-details", params={"limit": "1"}).json()
    assert samples["total"] == 2
    assert len(samples["rows"]) == 1


def test_missing_configuration_is_a_server_error():
    settings = WarehouseSettings(project="demo", dataset="sales", orders_table=None)
    configure_order_service(OrderService(DuckDBWarehouse(settings), OrderQueryBuilder(settings)))
    from orderdesk.app import create_app

    with TestClient(create_app()) as test_client:
        response = test_client.get("/api/sales-orders")
    assert response.status_code == 500
    assert "WAREHOUSE_TABLE_SO" in response.json()["detail"]


def test_warehouse_failures_are_reported(client, warehouse):
    warehouse._conn.execute('DROP TABLE "demo"."frono"."Sample_details"')
    response = client.get("/api/sample-details")
    assert response.status_code == 500
    assert response.json()["detail"].startswith("Warehouse query failed:")
