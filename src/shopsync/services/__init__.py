from .inventory_service import InventoryService
from .sales_service import SalesService
from .settings_service import SettingsService
from .operations_service import OperationsService

__all__ = [
    "InventoryService",
    "SalesService",
    "SettingsService",
    "OperationsService",
]
