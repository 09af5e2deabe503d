from __future__ import annotations

from fastapi import APIRouter, HTTPException

from orderdesk.application import get_order_service

router = APIRouter(prefix="/verify", tags=["verify"])


def _rows(payload: dict) -> list:
    rows = payload.get("rows")
    if not isinstance(rows, list) or not rows:
        raise HTTPException(status_code=400, detail="No rows provided")
    return rows


@router.get("")
async def list_verifications() -> dict:
    service = get_order_service()
    return service.list_verifications()


@router.post("")
async def request_verification(payload: dict) -> dict:
    rows = _rows(payload)
    service = get_order_service()
    try:
        return service.request_verification(rows)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/confirm")
async def confirm_verification(payload: dict) -> dict:
    rows = _rows(payload)
    service = get_order_service()
    try:
        return service.confirm_verification(rows)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
