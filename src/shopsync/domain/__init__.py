from .models import Item, Sale, SaleLine, StockMovement, ShopSettings, SyncStatus, MovementKind
from .errors import (
    ValidationError,
    NotFoundError,
    InsufficientStockError,
    DuplicateKeyError,
    StoreError,
)

__all__ = [
    "Item",
    "Sale",
    "SaleLine",
    "StockMovement",
    "ShopSettings",
    "SyncStatus",
    "MovementKind",
    "ValidationError",
    "NotFoundError",
    "InsufficientStockError",
    "DuplicateKeyError",
    "StoreError",
]
