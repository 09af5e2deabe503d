"""Infrastructure layer exports."""

from .api_client import BoundaryError, OrdersApiClient
from .notifier import (
    CrossTabNotifier,
    InProcessNotifier,
    configure_notifier,
    get_channel,
    get_notifier,
    reset_channels,
)
from .warehouse import DuckDBWarehouse, Warehouse, WarehouseError

__all__ = [
    "BoundaryError",
    "CrossTabNotifier",
    "DuckDBWarehouse",
    "InProcessNotifier",
    "OrdersApiClient",
    "Warehouse",
    "WarehouseError",
    "configure_notifier",
    "get_channel",
    "get_notifier",
    "reset_channels",
]
