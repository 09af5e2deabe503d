from __future__ import annotations

from fastapi import APIRouter, HTTPException

from orderdesk.application import get_order_service

router = APIRouter(prefix="/dispatch", tags=["dispatch"])


@router.get("/keys")
async def list_dispatch_keys() -> dict:
    service = get_order_service()
    return service.dispatch_keys()


@router.post("")
async def record_dispatch(payload: dict) -> dict:
    rows = payload.get("rows")
    if not isinstance(rows, list):
        raise HTTPException(status_code=400, detail="Body must be { rows: [...] }")
    service = get_order_service()
    try:
        return service.record_dispatch(rows)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
