from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from orderdesk.application import get_order_service
from orderdesk.core.query_builder import OrderQueryParams

router = APIRouter(prefix="/sales-orders", tags=["sales-orders"])


@router.get("")
async def list_sales_orders(
    q: str | None = Query(default=None),
    tokens: list[str] | None = Query(default=None),
    brand: str | None = Query(default=None),
    city: str | None = Query(default=None),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    limit: str | None = Query(default=None),
    offset: str | None = Query(default=None),
    include_column: str | None = Query(default=None, alias="includeColumn"),
    include_values: list[str] | None = Query(default=None, alias="includeValues"),
) -> dict:
    params = OrderQueryParams(
        q=q,
        tokens=tokens or [],
        brand=brand,
        city=city,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
        include_column=include_column,
        include_values=include_values or [],
    )
    service = get_order_service()
    return service.list_orders(params)


@router.post("/cancel")
async def cancel_sales_order(payload: dict) -> dict:
    order_no = payload.get("orderNo")
    if not isinstance(order_no, str) or not order_no.strip():
        raise HTTPException(status_code=400, detail="orderNo is required")
    service = get_order_service()
    return service.cancel_order(order_no)
