from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from orderdesk.core.row_shape import clean_value, coerce_int, coerce_number

VERIFIED_CONFIRMED = "verified:confirmed"


def _optional_text(value: Any) -> str | None:
    cleaned = clean_value(value)
    if cleaned is None:
        return None
    return str(cleaned)


def _string_only(value: Any) -> str | None:
    return value if isinstance(value, str) else None


class OrderRow(BaseModel):
    """One pending sales-order line as seen by the dashboard."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    so_date: str | None = Field(default=None, alias="SO_Date")
    so_no: str | None = Field(default=None, alias="SO_No")
    customer: str | None = Field(default=None, alias="Customer")
    customer_city: str | None = Field(default=None, alias="CustomerCity")
    customer_type: str | None = Field(default=None, alias="Customer_Type")
    rating: str | None = Field(default=None, alias="Rating")
    broker: str | None = Field(default=None, alias="Broker")
    item: str | None = Field(default=None, alias="Item")
    item_code: str | None = Field(default=None, alias="ItemCode")
    color: str | None = Field(default=None, alias="Color")
    new_color: str | None = Field(default=None, alias="New_Color")
    size: str | None = Field(default=None, alias="Size")
    order_qty: int | None = Field(default=None, alias="OrderQty")
    expected_date: str | None = Field(default=None, alias="Expected_Date")
    status: str | None = Field(default=None, alias="Status")
    concept: str | None = Field(default=None, alias="Concept")
    fabric: str | None = Field(default=None, alias="Fabric")
    file_url: str | None = Field(default=None, alias="File_URL")
    so_date_parsed: str | None = None

    stock: float | None = Field(default=None, alias="Stock")
    stock_by_color: dict[str, float] | None = Field(default=None, alias="StockByColor")
    production_qty: float | None = Field(default=None, alias="ProductionQty")

    uid: str | None = None
    pending: bool = False
    verified: bool = False
    last_invoice_date: str | None = None
    invoice_days_ago: int | None = None

    @field_validator(
        "so_date",
        "so_no",
        "customer",
        "customer_city",
        "customer_type",
        "rating",
        "broker",
        "item",
        "item_code",
        "color",
        "new_color",
        "size",
        "expected_date",
        "status",
        "concept",
        "fabric",
        "file_url",
        "so_date_parsed",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> str | None:
        return _optional_text(value)

    @field_validator("order_qty", mode="before")
    @classmethod
    def _quantity(cls, value: Any) -> int | None:
        return coerce_int(value)

    @field_validator("stock", "production_qty", mode="before")
    @classmethod
    def _number(cls, value: Any) -> float | None:
        return coerce_number(value)


class VerificationRow(BaseModel):
    """Whitelisted column set of the verification log table."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    so_no: str = Field(default="", alias="SO_No")
    customer: str | None = Field(default=None, alias="Customer")
    item: str | None = Field(default=None, alias="Item")
    color: str | None = Field(default=None, alias="Color")
    new_color: str | None = Field(default=None, alias="New_Color")
    size: str | None = Field(default=None, alias="Size")
    order_qty: int | None = Field(default=None, alias="OrderQty")
    so_date: str | None = Field(default=None, alias="SO_Date")
    verified_at: str | None = None
    source: str = "sales_orders"

    @field_validator("so_no", mode="before")
    @classmethod
    def _order_number(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("customer", "item", "color", "new_color", "size", "so_date", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str | None:
        return None if value is None else str(value)

    @field_validator("order_qty", mode="before")
    @classmethod
    def _quantity(cls, value: Any) -> int | None:
        return coerce_int(value)

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class DispatchRow(BaseModel):
    """Whitelisted column set of the dispatch log table."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    so_no: str = Field(alias="SO_No")
    customer: str | None = Field(default=None, alias="Customer")
    item: str | None = Field(default=None, alias="Item")
    color: str | None = Field(default=None, alias="Color")
    old_color: str | None = Field(default=None, alias="Old_Color")
    new_color: str | None = Field(default=None, alias="New_Color")
    production_qty: float | None = Field(default=None, alias="ProductionQty")
    dispatched: bool = Field(default=False, alias="Dispatched")
    dispatched_at: str | None = Field(default=None, alias="Dispatched_At")

    @field_validator("customer", "item", "color", "old_color", "new_color", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str | None:
        return _string_only(value)

    @field_validator("production_qty", mode="before")
    @classmethod
    def _quantity(cls, value: Any) -> float | None:
        if isinstance(value, bool):
            return None
        return coerce_number(value)

    @field_validator("dispatched", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        return bool(value)

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class CrossTabEvent(BaseModel):
    type: str
    row: dict[str, Any] | None = None
