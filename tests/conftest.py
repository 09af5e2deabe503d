from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pandas as pd
import pytest
from fastapi.testclient import TestClient

sys.path.append(str(Path(__file__).resolve().parents[1]))

from orderdesk.application import OrderService, configure_order_service, reset_order_service
from orderdesk.core.query_builder import OrderQueryBuilder
from orderdesk.infrastructure import DuckDBWarehouse, InProcessNotifier, reset_channels
from orderdesk.infrastructure.warehouse import (
    CUSTOMER_COLUMNS,
    INVOICE_COLUMNS,
    ORDER_COLUMNS,
    SAMPLE_COLUMNS,
    STOCK_COLUMNS,
)
from orderdesk.settings import WarehouseSettings

ORDER_ROWS = [
    {
        "SO_No": "SO-1",
        "SO_Date": "05-01-2025",
        "Parent_CustomerCity": "Acme Traders [Kolkata]",
        "Broker": "Direct",
        "Item_Name_Code": "KRT-101",
        "Color_Code": "RED",
        "Brand": "Orderdesk",
        "Size": "40",
        "Total": "10",
        "Status": "Pending",
    },
    {
        "SO_No": "SO-2",
        "SO_Date": "2025-01-03",
        "Parent_CustomerCity": "Bharat Textiles [Howrah]",
        "Broker": "Ravi Agencies",
        "Item_Name_Code": "SAR-220",
        "Color_Code": "BLUE",
        "Brand": "Orderdesk",
        "Size": "42",
        "Total": "4",
        "Status": "Pending",
    },
    {
        "SO_No": "SO-3",
        "SO_Date": "10/01/2025",
        "Parent_CustomerCity": "City Fashions [Siliguri]",
        "Broker": "Direct",
        "Item_Name_Code": "SHRT-305",
        "Color_Code": "GREEN",
        "Brand": "Other",
        "Size": "38",
        "Total": "7",
        "Status": "Pending",
    },
    {
        "SO_No": "SO-4",
        "SO_Date": "02-01-2025",
        "Parent_CustomerCity": "Acme Traders [Kolkata]",
        "Broker": "Direct",
        "Item_Name_Code": "KURTA-101",
        "Color_Code": "RED",
        "Brand": "Orderdesk",
        "Size": "40",
        "Total": "3",
        "Status": "Pending",
    },
    {
        "SO_No": "SO-5",
        "SO_Date": "04-01-2025",
        "Parent_CustomerCity": "Bharat Textiles [Howrah]",
        "Broker": "Ravi Agencies",
        "Item_Name_Code": "KRT-101",
        "Color_Code": "RED",
        "Brand": "Orderdesk",
        "Size": "40",
        "Total": "2",
        "Status": "Closed",
    },
    {
        "SO_No": "SO-6",
        "SO_Date": "06-01-2025",
        "Parent_CustomerCity": "City Fashions [Siliguri]",
        "Broker": "Direct",
        "Item_Name_Code": "KRT-101",
        "Color_Code": "BLUE",
        "Brand": "Orderdesk",
        "Size": "44",
        "Total": "6",
        "Status": "Pending",
    },
    {
        "SO_No": "SO-6",
        "SO_Date": "06-01-2025",
        "Parent_CustomerCity": "Acme Traders [Kolkata]",
        "Broker": "Direct",
        "Item_Name_Code": "KRT-101",
        "Color_Code": "BLUE",
        "Brand": "Orderdesk",
        "Size": "44",
        "Total": "6",
        "Status": "Pending",
    },
]

CUSTOMER_ROWS = [
    {"Company_Name": "Acme Traders [Kolkata]", "Cust_Ved_Type": "Customer", "rk_rating": "HIGH", "City": "Kolkata", "Outstanding": 3000.0, "Created_Date": "2024-03-01"},
    {"Company_Name": "Bharat Textiles [Howrah]", "Cust_Ved_Type": "Customer", "rk_rating": "MEDIUM", "City": "Howrah", "Outstanding": 500.0, "Created_Date": "2024-05-01"},
    {"Company_Name": "City Fashions [Siliguri]", "Cust_Ved_Type": "Dealer", "rk_rating": "CASH", "City": "Siliguri", "Outstanding": 1200.0, "Created_Date": "2024-01-01"},
]

SAMPLE_ROWS = [
    {"Product_Code": "KRT-101", "Concept_2": "Classic Kurta", "Concept_3": "Cotton", "File_URL": "https://example.com/kurta.png"},
    {"Product_Code": "SAR-220", "Concept_2": "Silk Saree", "Concept_3": "Silk", "File_URL": ""},
]

STOCK_ROWS = [
    {"Item": "KRT-101", "normalized_item": "krt-101", "Color": "RED", "Closing_Stock": 5.0, "Location": "Kolkata"},
    {"Item": "KRT-101", "normalized_item": "krt-101", "Color": "BLUE", "Closing_Stock": 3.0, "Location": "Howrah"},
    {"Item": "SAR-220", "normalized_item": "sar-220", "Color": "BLUE", "Closing_Stock": 0.0, "Location": "Kolkata"},
]

INVOICE_ROWS = [
    {"Customer_Name": "Acme Traders", "Order_No": "INV-2", "Date": "2025-01-08", "Total": "12", "Item_Code": "KRT-101", "Item_Color": "RED"},
    {"Customer_Name": "City Fashions", "Order_No": "INV-1", "Date": "20-12-2024", "Total": "5", "Item_Code": "SHRT-305", "Item_Color": "GREEN"},
]

FIXED_NOW = datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def reset_state():
    reset_order_service()
    reset_channels()
    yield
    reset_order_service()
    reset_channels()


@pytest.fixture()
def settings() -> WarehouseSettings:
    return WarehouseSettings(project="demo", dataset="sales", orders_table="pending_orders")


@pytest.fixture()
def warehouse(settings):
    store = DuckDBWarehouse(settings)
    store.load_frame("sales", "pending_orders", pd.DataFrame(ORDER_ROWS), ORDER_COLUMNS)
    store.load_frame("sales", settings.invoice_table, pd.DataFrame(INVOICE_ROWS), INVOICE_COLUMNS)
    store.load_frame(settings.reference_dataset, settings.customer_table, pd.DataFrame(CUSTOMER_ROWS), CUSTOMER_COLUMNS)
    store.load_frame(settings.reference_dataset, settings.sample_table, pd.DataFrame(SAMPLE_ROWS), SAMPLE_COLUMNS)
    store.load_frame(settings.reference_dataset, settings.stock_table, pd.DataFrame(STOCK_ROWS), STOCK_COLUMNS)
    yield store
    store.close()


@pytest.fixture()
def notifier() -> InProcessNotifier:
    return InProcessNotifier()


@pytest.fixture()
def service(warehouse, settings, notifier) -> OrderService:
    return OrderService(warehouse, OrderQueryBuilder(settings), notifier, clock=lambda: FIXED_NOW)


@pytest.fixture()
def client(service):
    configure_order_service(service)
    from orderdesk.app import create_app

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
