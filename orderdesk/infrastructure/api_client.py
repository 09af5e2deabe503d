"""Async HTTP client for the order-desk API, used by the dashboard workers."""
from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence

import httpx

from orderdesk.domain.orders import Filters


class BoundaryError(RuntimeError):
    """Raised when an API endpoint answers with a non-2xx status."""

    def __init__(self, path: str, status_code: int, body: str) -> None:
        super().__init__(f"{path} failed with status {status_code}: {body}")
        self.path = path
        self.status_code = status_code
        self.body = body


class OrdersApiClient:
    """Client for the sales-order, dispatch, verify, stock and invoice endpoints."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, self._url(path), **kwargs)
        if response.is_error:
            raise BoundaryError(path, response.status_code, response.text)
        return response.json()

    @staticmethod
    def order_params(filters: Filters, offset: int) -> list[tuple[str, str]]:
        params: list[tuple[str, str]] = [
            ("limit", str(filters.limit)),
            ("offset", str(offset)),
        ]
        optional = {
            "q": filters.q,
            "brand": filters.brand,
            "city": filters.city,
            "startDate": filters.start_date,
            "endDate": filters.end_date,
        }
        params.extend((name, value) for name, value in optional.items() if value)
        params.extend(("tokens", token) for token in filters.tokens)
        return params

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    async def fetch_orders(self, filters: Filters, offset: int = 0) -> dict[str, Any]:
        data = await self._request("GET", "/api/sales-orders", params=self.order_params(filters, offset))
        return data if isinstance(data, dict) else {}

    async def fetch_dispatched_keys(self) -> list[str]:
        data = await self._request("GET", "/api/dispatch/keys")
        keys = (data or {}).get("keys") or []
        return [str(key) for key in keys if key is not None]

    async def fetch_verifications(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "/api/verify")
        return list((data or {}).get("rows") or [])

    async def fetch_invoices(self, limit: int = 1000) -> list[dict[str, Any]]:
        data = await self._request("GET", "/api/invoice-details", params={"limit": str(limit)})
        return list((data or {}).get("rows") or [])

    async def fetch_stock_batch(self, items: Iterable[str]) -> list[dict[str, Any]]:
        data = await self._request("POST", "/api/stock/batch", json={"items": list(items)})
        return list((data or {}).get("rows") or [])

    # ------------------------------------------------------------------
    # commands
    # ------------------------------------------------------------------
    async def request_verification(self, rows: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
        return await self._request("POST", "/api/verify", json={"rows": [dict(row) for row in rows]})

    async def save_dispatch(self, rows: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
        return await self._request("POST", "/api/dispatch", json={"rows": [dict(row) for row in rows]})

    async def cancel_order(self, order_no: str) -> dict[str, Any]:
        return await self._request("POST", "/api/sales-orders/cancel", json={"orderNo": order_no})

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
