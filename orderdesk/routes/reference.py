from __future__ import annotations

from fastapi import APIRouter, Query

from orderdesk.application import get_order_service

router = APIRouter(tags=["reference"])


@router.get("/invoice-details")
async def list_invoice_details(
    q: str | None = Query(default=None),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    limit: str | None = Query(default=None),
    offset: str | None = Query(default=None),
) -> dict:
    service = get_order_service()
    return service.list_invoices(q=q, start_date=start_date, end_date=end_date, limit=limit, offset=offset)


@router.get("/customers")
async def list_customers(
    q: str | None = Query(default=None),
    customer_type: str | None = Query(default=None, alias="type"),
    city: str | None = Query(default=None),
    min_outstanding: str | None = Query(default=None, alias="minOutstanding"),
    limit: str | None = Query(default=None),
    offset: str | None = Query(default=None),
    sort_by: str | None = Query(default=None, alias="sortBy"),
    order: str | None = Query(default=None),
) -> dict:
    service = get_order_service()
    return service.list_customers(
        q=q,
        customer_type=customer_type,
        city=city,
        min_outstanding=min_outstanding,
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        order=order,
    )


@router.get("/sample-details")
async def list_sample_details(
    q: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    offset: str | None = Query(default=None),
) -> dict:
    service = get_order_service()
    return service.list_samples(q=q, limit=limit, offset=offset)
