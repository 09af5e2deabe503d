#!/usr/bin/env python
from __future__ import annotations

import argparse
import sys
from datetime import date, timedelta
from pathlib import Path

import pandas as pd

sys.path.append(str(Path(__file__).resolve().parents[1]))

from orderdesk.infrastructure import DuckDBWarehouse  # noqa: E402
from orderdesk.infrastructure.warehouse import (  # noqa: E402
    CUSTOMER_COLUMNS,
    DISPATCH_COLUMNS,
    INVOICE_COLUMNS,
    ORDER_COLUMNS,
    SAMPLE_COLUMNS,
    STOCK_COLUMNS,
    VERIFICATION_COLUMNS,
)
from orderdesk.settings import WarehouseSettings  # noqa: E402

CUSTOMERS = [
    ("Acme Traders", "Kolkata", "HIGH"),
    ("Bharat Textiles", "Howrah", "MEDIUM"),
    ("City Fashions", "Siliguri", "CASH"),
]
ITEMS = [("KRT-101", "Kurta Classic"), ("SAR-220", "Silk Saree"), ("SHRT-305", "Linen Shirt")]
COLORS = ["RED", "BLUE", "GREEN"]


def build_frames(today: date, orders: int) -> dict[str, pd.DataFrame]:
    order_rows = []
    for index in range(orders):
        customer, city, _ = CUSTOMERS[index % len(CUSTOMERS)]
        code, _ = ITEMS[index % len(ITEMS)]
        order_rows.append(
            {
                "SO_No": f"SO-{1000 + index}",
                "SO_Date": (today - timedelta(days=index)).strftime("%d-%m-%Y"),
                "Parent_CustomerCity": f"{customer} [{city}]",
                "Broker": "Ravi Agencies" if index % 2 else "Direct",
                "Item_Name_Code": code,
                "Color_Code": COLORS[index % len(COLORS)],
                "Brand": "Orderdesk",
                "Size": str(38 + 2 * (index % 4)),
                "Total": str(5 + index % 7),
                "Expected_Date": (today + timedelta(days=7)).isoformat(),
                "Status": "Pending",
            }
        )

    stock_rows = [
        {
            "Item": code,
            "normalized_item": code.lower(),
            "Color": color,
            "Size": "40",
            "Closing_Stock": float((position + shade) % 3 * 10),
            "Location": "Kolkata",
            "Concept": name,
        }
        for position, (code, name) in enumerate(ITEMS)
        for shade, color in enumerate(COLORS)
    ]

    customer_rows = [
        {
            "Company_Name": f"{name} [{city}]",
            "Cust_Ved_Type": "Customer",
            "rk_rating": rating,
            "City": city,
            "Outstanding": 1000.0 * (position + 1),
            "Broker": "Direct",
            "Created_Date": (today - timedelta(days=30 * position)).isoformat(),
        }
        for position, (name, city, rating) in enumerate(CUSTOMERS)
    ]

    sample_rows = [
        {"Product_Code": code, "Concept_2": name, "Concept_3": "Festive", "File_URL": ""}
        for code, name in ITEMS
    ]

    invoice_rows = [
        {
            "Customer_Name": CUSTOMERS[0][0],
            "Area": CUSTOMERS[0][1],
            "Order_No": "INV-1",
            "Date": (today - timedelta(days=40)).isoformat(),
            "Total": "12",
            "Item_Code": ITEMS[0][0],
            "Item_Color": COLORS[0],
        }
    ]

    return {
        "orders": pd.DataFrame(order_rows),
        "stock": pd.DataFrame(stock_rows),
        "customers": pd.DataFrame(customer_rows),
        "samples": pd.DataFrame(sample_rows),
        "invoices": pd.DataFrame(invoice_rows),
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed a local duckdb warehouse with demo sales orders")
    parser.add_argument("--output", required=True, help="duckdb database file to create")
    parser.add_argument("--project", default="demo", help="catalog name (WAREHOUSE_PROJECT)")
    parser.add_argument("--dataset", default="sales", help="schema name (WAREHOUSE_DATASET)")
    parser.add_argument("--table", default="pending_orders", help="orders table (WAREHOUSE_TABLE_SO)")
    parser.add_argument("--orders", type=int, default=24, help="number of order lines")
    args = parser.parse_args()

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)

    settings = WarehouseSettings(
        project=args.project,
        dataset=args.dataset,
        orders_table=args.table,
        database=str(output),
    )
    settings.require(orders=True)
    warehouse = DuckDBWarehouse(settings)
    frames = build_frames(date.today(), args.orders)
    try:
        warehouse.load_frame(args.dataset, args.table, frames["orders"], ORDER_COLUMNS)
        warehouse.load_frame(args.dataset, settings.invoice_table, frames["invoices"], INVOICE_COLUMNS)
        ref = settings.reference_dataset
        warehouse.load_frame(ref, settings.stock_table, frames["stock"], STOCK_COLUMNS)
        warehouse.load_frame(ref, settings.customer_table, frames["customers"], CUSTOMER_COLUMNS)
        warehouse.load_frame(ref, settings.sample_table, frames["samples"], SAMPLE_COLUMNS)
        warehouse.ensure_table(args.dataset, settings.dispatched_table, DISPATCH_COLUMNS)
        warehouse.ensure_table(args.dataset, settings.verified_table, VERIFICATION_COLUMNS)
    finally:
        warehouse.close()

    print(f"Sample warehouse written: {output}")
    print(f"WAREHOUSE_DATABASE={output} WAREHOUSE_PROJECT={args.project} "
          f"WAREHOUSE_DATASET={args.dataset} WAREHOUSE_TABLE_SO={args.table}")


if __name__ == "__main__":
    main()
