"""Parameterized warehouse SQL for the sales-order dashboard.

Every builder returns a :class:`Query` whose ``params`` hold exactly the
named ``$parameters`` referenced by its SQL text. Only configuration
identifiers (validated by :meth:`WarehouseSettings.require`) and clamped
integers are interpolated into the SQL; user input always travels as a
parameter.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field

from orderdesk.core.dates import parse_date
from orderdesk.core.keys import customer_compare_key
from orderdesk.settings import WarehouseSettings

logger = logging.getLogger(__name__)

ORDER_LIMIT_DEFAULT = 25
ORDER_LIMIT_MAX = 500
LIST_LIMIT_DEFAULT = 100
LIST_LIMIT_MAX = 1000
REFERENCE_LIMIT_DEFAULT = 50

_BRACKET_PATTERN = r"\s*\[.*?\]"
_INVOICE_DATE = 't."Date"'

STOCK_SORT_COLUMNS = ("Closing_Stock", "Item", "normalized_item", "Product_type")
CUSTOMER_SORT_COLUMNS = ("Created_Date", "Outstanding", "Company_Name")


@dataclass(frozen=True)
class Query:
    sql: str
    params: dict[str, Any] = field(default_factory=dict)


class IncludeColumn(str, Enum):
    """Client-facing names accepted by the include escape hatch."""

    SO_NO = "SO_No"
    ITEM_NAME_CODE = "Item_Name_Code"
    PARENT_CUSTOMER_CITY = "Parent_CustomerCity"
    COLOR_CODE = "Color_Code"
    BROKER = "Broker"
    CUSTOMER = "Customer"

    @property
    def column(self) -> str:
        return _INCLUDE_COLUMNS[self]

    @classmethod
    def resolve(cls, name: str | None) -> IncludeColumn | None:
        if not name:
            return None
        try:
            return cls(name)
        except ValueError:
            logger.warning("Ignored invalid includeColumn: %s", name)
            return None

    def prepare(self, values: Iterable[Any]) -> list[str]:
        prepared = ["" if value is None else str(value) for value in values]
        if self is IncludeColumn.CUSTOMER:
            return [customer_compare_key(value) for value in prepared]
        return prepared


_INCLUDE_COLUMNS = {
    IncludeColumn.SO_NO: "SO_No",
    IncludeColumn.ITEM_NAME_CODE: "Item_Name_Code",
    IncludeColumn.PARENT_CUSTOMER_CITY: "Parent_CustomerCity_raw",
    IncludeColumn.COLOR_CODE: "Color_Code",
    IncludeColumn.BROKER: "Broker",
    IncludeColumn.CUSTOMER: "customer_norm",
}


class OrderQueryParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    q: str | None = None
    tokens: list[str] = Field(default_factory=list)
    brand: str | None = None
    city: str | None = None
    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")
    limit: Any = None
    offset: Any = None
    include_column: str | None = Field(default=None, alias="includeColumn")
    include_values: list[str] = Field(default_factory=list, alias="includeValues")


def _finite_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def clamp_limit(value: Any, default: int = ORDER_LIMIT_DEFAULT, maximum: int = ORDER_LIMIT_MAX) -> int:
    number = _finite_number(value)
    if number is None or number <= 0:
        return default
    floored = math.floor(number)
    if floored < 1:
        return default
    return min(maximum, floored)


def clamp_offset(value: Any) -> int:
    number = _finite_number(value)
    if number is None or number < 0:
        return 0
    return math.floor(number)


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def table_ref(project: str, dataset: str, table: str) -> str:
    return ".".join(quote_identifier(part) for part in (project, dataset, table))


def parsed_date_sql(column: str) -> str:
    """Multi-format date parse of a text column; unparseable values are NULL."""

    text = f"TRIM(CAST({column} AS VARCHAR))"
    return (
        "COALESCE("
        f"TRY_CAST({column} AS DATE), "
        f"CAST(TRY_CAST({text} AS TIMESTAMP) AS DATE), "
        f"CAST(TRY_STRPTIME({text}, '%d-%m-%Y') AS DATE), "
        f"CAST(TRY_STRPTIME({text}, '%d/%m/%Y') AS DATE)"
        ")"
    )


def normalized_name_sql(column: str) -> str:
    return f"LOWER(TRIM(regexp_replace(COALESCE({column}, ''), '{_BRACKET_PATTERN}', '', 'g')))"


def rating_priority_sql(column: str = "Rating") -> str:
    """Five-tier customer rating rank, 1 being the most preferred."""

    rating = f"UPPER(TRIM(COALESCE({column}, '')))"
    return (
        "CASE "
        f"WHEN {rating} = 'HIGH' THEN 1 "
        f"WHEN {rating} = 'HIGH - CASH' THEN 2 "
        f"WHEN {rating} = 'CASH' THEN 3 "
        f"WHEN {rating} = 'CASH - NEW CLIENT' THEN 4 "
        "ELSE 5 END"
    )


def _like(value: str) -> str:
    return f"%{value}%"


def _date_param(raw: str | None, name: str) -> Any:
    if not raw:
        return None
    parsed = parse_date(raw)
    if parsed is None:
        logger.warning("Ignored unparseable %s: %s", name, raw)
    return parsed


def _order_search_sql(param: str) -> str:
    return (
        f"(LOWER(COALESCE(ps.SO_No, '')) LIKE LOWER(${param}) "
        f"OR LOWER(COALESCE(ps.Item_Name_Code, '')) LIKE LOWER(${param}) "
        f"OR LOWER(COALESCE(ps.Parent_CustomerCity_raw, '')) LIKE LOWER(${param}))"
    )


class OrderQueryBuilder:
    """Builds every query the API issues against the warehouse."""

    def __init__(self, settings: WarehouseSettings) -> None:
        self.settings = settings

    # ------------------------------------------------------------------
    # table references
    # ------------------------------------------------------------------
    def _ref(self, dataset: str, table: str) -> str:
        return table_ref(str(self.settings.project), dataset, table)

    @property
    def orders_ref(self) -> str:
        self.settings.require(orders=True)
        return self._ref(str(self.settings.dataset), str(self.settings.orders_table))

    @property
    def sample_ref(self) -> str:
        self.settings.require()
        return self._ref(self.settings.reference_dataset, self.settings.sample_table)

    @property
    def customer_ref(self) -> str:
        self.settings.require()
        return self._ref(self.settings.reference_dataset, self.settings.customer_table)

    @property
    def stock_ref(self) -> str:
        self.settings.require()
        return self._ref(self.settings.reference_dataset, self.settings.stock_table)

    @property
    def dispatched_ref(self) -> str:
        self.settings.require()
        return self._ref(str(self.settings.dataset), self.settings.dispatched_table)

    @property
    def verified_ref(self) -> str:
        self.settings.require()
        return self._ref(str(self.settings.dataset), self.settings.verified_table)

    @property
    def invoice_ref(self) -> str:
        self.settings.require()
        return self._ref(str(self.settings.dataset), self.settings.invoice_table)

    # ------------------------------------------------------------------
    # sales orders
    # ------------------------------------------------------------------
    def _order_predicate(self, params: OrderQueryParams) -> tuple[str, dict[str, Any]]:
        filters: list[str] = []
        bound: dict[str, Any] = {}

        if params.q:
            filters.append(_order_search_sql("q"))
            bound["q"] = _like(params.q)

        tokens = [token for token in params.tokens if token and token.strip()]
        if tokens:
            clauses = []
            for idx, token in enumerate(tokens):
                name = f"token{idx}"
                clauses.append(_order_search_sql(name))
                bound[name] = _like(token.strip())
            filters.append("(" + " OR ".join(clauses) + ")")

        if params.brand:
            filters.append("ps.Brand = $brand")
            bound["brand"] = params.brand
        if params.city:
            filters.append(
                "(LOWER(ps.Parent_CustomerCity_raw) = LOWER($city) "
                "OR LOWER(ps.Child_Customer_City) = LOWER($city))"
            )
            bound["city"] = params.city

        start = _date_param(params.start_date, "startDate")
        if start is not None:
            filters.append("ps.so_date_parsed >= $start_date")
            bound["start_date"] = start
        end = _date_param(params.end_date, "endDate")
        if end is not None:
            filters.append("ps.so_date_parsed <= $end_date")
            bound["end_date"] = end

        base = " AND ".join(filters) if filters else "TRUE"
        predicate = (
            f"({base}) AND length(TRIM(ps.Item_Name_Code)) <= 8 "
            "AND UPPER(TRIM(ps.Status)) = 'PENDING'"
        )

        include = IncludeColumn.resolve(params.include_column)
        if include is not None and params.include_values:
            predicate = f"({predicate}) OR list_contains($include_values, ps.{include.column})"
            bound["include_values"] = include.prepare(params.include_values)

        return predicate, bound

    def _order_ctes(self) -> str:
        return f"""
        WITH parsed_sales AS (
            SELECT
                Parent_CustomerCity AS Parent_CustomerCity_raw,
                Child_Customer_City,
                Broker,
                SO_No,
                SO_Date,
                Item_Name_Code,
                Color_Code,
                Brand,
                Size,
                Total,
                Expected_Date,
                Status,
                {parsed_date_sql("SO_Date")} AS so_date_parsed,
                {normalized_name_sql("Parent_CustomerCity")} AS customer_norm
            FROM {self.orders_ref}
        ),
        sample_best AS (
            SELECT Product_Code, Concept_2, Concept_3, File_URL, product_code_norm
            FROM (
                SELECT
                    Product_Code,
                    Concept_2,
                    Concept_3,
                    File_URL,
                    LOWER(TRIM(Product_Code)) AS product_code_norm,
                    ROW_NUMBER() OVER (
                        PARTITION BY LOWER(TRIM(Product_Code)) ORDER BY Product_Code
                    ) AS rn
                FROM {self.sample_ref}
            ) AS sample_raw
            WHERE rn = 1
        ),
        customers_best AS (
            SELECT Company_Name, Cust_Ved_Type, rk_rating, company_norm
            FROM (
                SELECT
                    Company_Name,
                    Cust_Ved_Type,
                    rk_rating,
                    {normalized_name_sql("Company_Name")} AS company_norm,
                    ROW_NUMBER() OVER (
                        PARTITION BY {normalized_name_sql("Company_Name")} ORDER BY Company_Name
                    ) AS rn
                FROM {self.customer_ref}
            ) AS customers_raw
            WHERE rn = 1
        )"""

    def build_select(self, params: OrderQueryParams) -> Query:
        predicate, bound = self._order_predicate(params)
        limit = clamp_limit(params.limit)
        offset = clamp_offset(params.offset)
        rank = rating_priority_sql("Rating")
        sql = f"""{self._order_ctes()},
        joined AS (
            SELECT
                CASE
                    WHEN ps.so_date_parsed IS NOT NULL THEN strftime(ps.so_date_parsed, '%d-%m-%Y')
                    ELSE CAST(ps.SO_Date AS VARCHAR)
                END AS SO_Date,
                ps.SO_No,
                ps.Parent_CustomerCity_raw AS Customer,
                cb.Cust_Ved_Type AS Customer_Type,
                cb.rk_rating AS Rating,
                ps.Broker,
                ps.Item_Name_Code AS Item,
                ps.Color_Code AS Color,
                CAST(ps.Size AS VARCHAR) AS Size,
                TRY_CAST(ps.Total AS BIGINT) AS OrderQty,
                ps.Expected_Date,
                ps.Status,
                s.Concept_2 AS Concept,
                s.Concept_3 AS Fabric,
                s.Product_Code AS ItemCode,
                s.File_URL AS File_URL,
                CAST(ps.so_date_parsed AS VARCHAR) AS so_date_parsed
            FROM parsed_sales ps
            LEFT JOIN sample_best s
                ON LOWER(TRIM(ps.Item_Name_Code)) = s.product_code_norm
            LEFT JOIN customers_best cb
                ON cb.company_norm = ps.customer_norm
            WHERE {predicate}
        ),
        deduped AS (
            SELECT
                *,
                ROW_NUMBER() OVER (
                    PARTITION BY COALESCE(SO_No, ''), LOWER(TRIM(Item)), COALESCE(Color, '')
                    ORDER BY
                        {rank} ASC,
                        TRY_CAST(so_date_parsed AS DATE) ASC NULLS LAST,
                        COALESCE(SO_No, '') ASC
                ) AS rn
            FROM joined
        )
        SELECT
            SO_Date,
            SO_No,
            Customer,
            Customer_Type,
            Rating,
            Broker,
            Item,
            Color,
            Size,
            OrderQty,
            Expected_Date,
            Status,
            Concept,
            Fabric,
            ItemCode,
            File_URL,
            so_date_parsed
        FROM deduped
        WHERE rn = 1
        ORDER BY
            {rank} ASC,
            TRY_CAST(so_date_parsed AS DATE) ASC NULLS LAST,
            COALESCE(SO_No, '') ASC
        LIMIT {limit} OFFSET {offset}
        """
        return Query(sql=sql, params=bound)

    def build_count(self, params: OrderQueryParams) -> Query:
        predicate, bound = self._order_predicate(params)
        sql = f"""{self._order_ctes()}
        SELECT
            COUNT(DISTINCT CONCAT(
                COALESCE(ps.SO_No, ''), '|',
                COALESCE(LOWER(TRIM(ps.Item_Name_Code)), ''), '|',
                COALESCE(ps.Color_Code, '')
            )) AS cnt
        FROM parsed_sales ps
        LEFT JOIN sample_best s
            ON LOWER(TRIM(ps.Item_Name_Code)) = s.product_code_norm
        LEFT JOIN customers_best cb
            ON cb.company_norm = ps.customer_norm
        WHERE {predicate}
        """
        return Query(sql=sql, params=bound)

    # ------------------------------------------------------------------
    # dispatch and verification logs
    # ------------------------------------------------------------------
    def build_dispatch_keys(self) -> Query:
        def part(column: str) -> str:
            return f"UPPER(TRIM(regexp_replace(COALESCE({column}, ''), '{_BRACKET_PATTERN}', '', 'g')))"

        sql = f"""
        SELECT DISTINCT
            CONCAT(
                {part("SO_No")}, '|',
                {part("Customer")}, '|',
                {part("Item")}, '|',
                {part("COALESCE(NULLIF(TRIM(Old_Color), ''), Color)")}
            ) AS dispatch_key
        FROM {self.dispatched_ref}
        WHERE SO_No IS NOT NULL
        """
        return Query(sql=sql)

    def build_verification_list(self) -> Query:
        sql = f"""
        SELECT SO_No, Customer, Item, Color, New_Color, Size, OrderQty, SO_Date, verified_at, source
        FROM {self.verified_ref}
        ORDER BY TRY_CAST(verified_at AS TIMESTAMP) DESC NULLS LAST
        """
        return Query(sql=sql)

    # ------------------------------------------------------------------
    # stock
    # ------------------------------------------------------------------
    def build_stock_batch(self, items: Iterable[Any]) -> Query | None:
        keys = [str(item).strip().lower() for item in items if item is not None and str(item).strip()]
        if not keys:
            return None
        sql = f"""
        SELECT
            Item,
            normalized_item,
            Color,
            Closing_Stock,
            Location,
            Product_type,
            Concept,
            Fabric,
            file_URL
        FROM {self.stock_ref}
        WHERE list_contains($items, LOWER(TRIM(normalized_item)))
           OR list_contains($items, LOWER(TRIM(Item)))
        """
        return Query(sql=sql, params={"items": keys})

    def _stock_predicate(
        self,
        q: str | None,
        item: str | None,
        normalized_item: str | None,
        location: str | None,
    ) -> tuple[str, dict[str, Any]]:
        clauses: list[str] = []
        bound: dict[str, Any] = {}
        if q:
            clauses.append(
                "(LOWER(COALESCE(Item, '')) LIKE LOWER($q) "
                "OR LOWER(COALESCE(normalized_item, '')) LIKE LOWER($q) "
                "OR LOWER(COALESCE(Concept, '')) LIKE LOWER($q) "
                "OR LOWER(COALESCE(Fabric, '')) LIKE LOWER($q))"
            )
            bound["q"] = _like(q)
        if normalized_item:
            clauses.append("LOWER(COALESCE(normalized_item, '')) = LOWER($normalized_item)")
            bound["normalized_item"] = normalized_item.strip()
        if item:
            clauses.append("LOWER(COALESCE(Item, '')) = LOWER($item)")
            bound["item"] = item.strip()
        if location:
            clauses.append("LOWER(COALESCE(Location, '')) = LOWER($location)")
            bound["location"] = location
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, bound

    def build_stock_list(
        self,
        *,
        q: str | None = None,
        item: str | None = None,
        normalized_item: str | None = None,
        location: str | None = None,
        limit: Any = None,
        offset: Any = None,
        sort_by: str | None = None,
        order: str | None = None,
    ) -> tuple[Query, Query]:
        where, bound = self._stock_predicate(q, item, normalized_item, location)
        sort_column = sort_by if sort_by in STOCK_SORT_COLUMNS else "Item"
        direction = "DESC" if (order or "asc").lower() == "desc" else "ASC"
        page_limit = clamp_limit(limit, REFERENCE_LIMIT_DEFAULT, LIST_LIMIT_MAX)
        page_offset = clamp_offset(offset)
        select = f"""
        SELECT
            Item,
            Color,
            Size,
            Opening_Stock,
            Closing_Stock,
            normalized_item,
            Location,
            Product_type,
            Concept,
            Fabric,
            file_URL,
            SNP,
            WSP,
            stock_status,
            cost_price,
            adjusted_cost_price
        FROM {self.stock_ref}
        {where}
        ORDER BY {sort_column} {direction}
        LIMIT {page_limit} OFFSET {page_offset}
        """
        count = f"SELECT COUNT(1) AS cnt FROM {self.stock_ref} {where}"
        return Query(sql=select, params=dict(bound)), Query(sql=count, params=dict(bound))

    # ------------------------------------------------------------------
    # invoices
    # ------------------------------------------------------------------
    def _invoice_predicate(
        self,
        q: str | None,
        start_date: str | None,
        end_date: str | None,
    ) -> tuple[str, dict[str, Any]]:
        clauses: list[str] = []
        bound: dict[str, Any] = {}
        if q:
            clauses.append(
                "(LOWER(COALESCE(t.Customer_Name, '')) LIKE LOWER($q) "
                "OR LOWER(COALESCE(t.Order_No, '')) LIKE LOWER($q) "
                "OR LOWER(COALESCE(t.Item_Code, '')) LIKE LOWER($q))"
            )
            bound["q"] = _like(q)
        start = _date_param(start_date, "startDate")
        if start is not None:
            clauses.append(f"{parsed_date_sql(_INVOICE_DATE)} >= $start_date")
            bound["start_date"] = start
        end = _date_param(end_date, "endDate")
        if end is not None:
            clauses.append(f"{parsed_date_sql(_INVOICE_DATE)} <= $end_date")
            bound["end_date"] = end
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, bound

    def build_invoice_list(
        self,
        q: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        limit: Any = None,
        offset: Any = None,
    ) -> tuple[Query, Query]:
        where, bound = self._invoice_predicate(q, start_date, end_date)
        page_limit = clamp_limit(limit, LIST_LIMIT_DEFAULT, LIST_LIMIT_MAX)
        page_offset = clamp_offset(offset)
        select = f"""
        WITH parsed AS (
            SELECT
                t.Customer_Name,
                t.Area,
                t.Broker_Name,
                t.Order_No,
                t."Date",
                {parsed_date_sql(_INVOICE_DATE)} AS parsed_date,
                t.Total,
                t.Item_Code,
                t.Item_Color
            FROM {self.invoice_ref} AS t
            {where}
        )
        SELECT
            Customer_Name,
            Area,
            Broker_Name,
            Order_No,
            CAST("Date" AS VARCHAR) AS "Date",
            strftime(parsed_date, '%Y-%m-%d') AS parsed_date,
            TRY_CAST(Total AS DOUBLE) AS Total,
            Item_Code,
            Item_Color
        FROM parsed
        ORDER BY parsed.parsed_date ASC NULLS LAST, Order_No ASC
        LIMIT {page_limit} OFFSET {page_offset}
        """
        count = f"SELECT COUNT(1) AS cnt FROM {self.invoice_ref} AS t {where}"
        return Query(sql=select, params=dict(bound)), Query(sql=count, params=dict(bound))

    # ------------------------------------------------------------------
    # reference listings
    # ------------------------------------------------------------------
    def build_customer_list(
        self,
        *,
        q: str | None = None,
        customer_type: str | None = None,
        city: str | None = None,
        min_outstanding: Any = None,
        limit: Any = None,
        offset: Any = None,
        sort_by: str | None = None,
        order: str | None = None,
    ) -> tuple[Query, Query]:
        clauses: list[str] = []
        bound: dict[str, Any] = {}
        if q:
            clauses.append(
                "(LOWER(CAST(Company_Name AS VARCHAR)) LIKE LOWER($q) "
                "OR LOWER(CAST(City AS VARCHAR)) LIKE LOWER($q) "
                "OR LOWER(CAST(Area AS VARCHAR)) LIKE LOWER($q) "
                "OR LOWER(CAST(Broker AS VARCHAR)) LIKE LOWER($q))"
            )
            bound["q"] = _like(q)
        if customer_type:
            clauses.append("Cust_Ved_Type = $customer_type")
            bound["customer_type"] = customer_type
        if city:
            clauses.append("City = $city")
            bound["city"] = city
        threshold = _finite_number(min_outstanding)
        if threshold is not None:
            clauses.append("TRY_CAST(Outstanding AS DOUBLE) >= $min_outstanding")
            bound["min_outstanding"] = threshold
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        sort_column = sort_by if sort_by in CUSTOMER_SORT_COLUMNS else "Created_Date"
        direction = "ASC" if (order or "desc").lower() == "asc" else "DESC"
        page_limit = clamp_limit(limit, REFERENCE_LIMIT_DEFAULT, LIST_LIMIT_MAX)
        page_offset = clamp_offset(offset)
        select = f"""
        SELECT
            Company_Name,
            Area,
            City,
            State,
            Outstanding,
            Type,
            Broker,
            Contact_Name,
            Number,
            Created_Date,
            abmulance_corridor,
            customer_status,
            Company_Name AS Customer,
            Cust_Ved_Type AS Customer_Type,
            rk_rating AS Rating
        FROM {self.customer_ref}
        {where}
        ORDER BY {sort_column} {direction}
        LIMIT {page_limit} OFFSET {page_offset}
        """
        count = f"SELECT COUNT(1) AS cnt FROM {self.customer_ref} {where}"
        return Query(sql=select, params=dict(bound)), Query(sql=count, params=dict(bound))

    def build_sample_list(
        self,
        *,
        q: str | None = None,
        limit: Any = None,
        offset: Any = None,
    ) -> tuple[Query, Query]:
        bound: dict[str, Any] = {}
        where = ""
        if q:
            where = (
                "WHERE (LOWER(Product_Code) LIKE LOWER($q) "
                "OR LOWER(Concept_2) LIKE LOWER($q) "
                "OR LOWER(Concept_3) LIKE LOWER($q))"
            )
            bound["q"] = _like(q)
        page_limit = clamp_limit(limit, LIST_LIMIT_DEFAULT, LIST_LIMIT_MAX)
        page_offset = clamp_offset(offset)
        select = f"""
        SELECT
            Concept_2 AS Concept,
            Concept_3 AS Fabric,
            Product_Code AS Item,
            File_URL
        FROM {self.sample_ref}
        {where}
        ORDER BY Product_Code
        LIMIT {page_limit} OFFSET {page_offset}
        """
        count = f"SELECT COUNT(1) AS cnt FROM {self.sample_ref} {where}"
        return Query(sql=select, params=dict(bound)), Query(sql=count, params=dict(bound))
