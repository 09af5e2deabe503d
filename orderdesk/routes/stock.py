from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from orderdesk.application import get_order_service

router = APIRouter(prefix="/stock", tags=["stock"])


@router.post("/batch")
async def stock_batch(payload: dict) -> dict:
    items = payload.get("items") or []
    if not isinstance(items, list):
        raise HTTPException(status_code=400, detail="items must be an array")
    service = get_order_service()
    return service.stock_batch(items)


@router.get("")
async def list_stock(
    q: str | None = Query(default=None),
    item: str | None = Query(default=None),
    normalized_item: str | None = Query(default=None, alias="normalizedItem"),
    location: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    offset: str | None = Query(default=None),
    sort_by: str | None = Query(default=None, alias="sortBy"),
    order: str | None = Query(default=None),
) -> dict:
    service = get_order_service()
    return service.list_stock(
        q=q,
        item=item,
        normalized_item=normalized_item,
        location=location,
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        order=order,
    )
