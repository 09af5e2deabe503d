"""Application services."""

from .filters import Draft, FilterController
from .orders import (
    OrderService,
    build_order_service,
    configure_order_service,
    get_order_service,
    reset_order_service,
)

__all__ = [
    "Draft",
    "FilterController",
    "OrderService",
    "build_order_service",
    "configure_order_service",
    "get_order_service",
    "reset_order_service",
]
