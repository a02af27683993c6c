from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class SyncStatus(str, Enum):
    SYNCED = "synced"
    PENDING = "pending"
    FAILED = "failed"


class MovementKind(str, Enum):
    INTAKE = "intake"
    SALE = "sale"
    ADJUSTMENT = "adjustment"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Item:
    id: int
    client_ref: str
    name: str
    sku: str
    barcode: Optional[str]
    quantity: int
    price: float
    cost_price: Optional[float]
    supplier: str
    category: Optional[str]
    last_updated: datetime
    sync_status: SyncStatus
    remote_id: Optional[str] = None
    revision: int = 0


@dataclass(frozen=True)
class Sale:
    id: int
    client_ref: str
    timestamp: datetime
    total_amount: float
    notes: Optional[str]
    customer_id: Optional[str]
    sync_status: SyncStatus
    remote_id: Optional[str] = None
    revision: int = 0


@dataclass(frozen=True)
class SaleLine:
    id: int
    sale_id: int
    item_id: int
    quantity: int
    sale_price: float


@dataclass(frozen=True)
class StockMovement:
    """Append-only ledger entry; ``quantity`` is the signed effect on stock."""

    id: int
    client_ref: str
    item_id: int
    quantity: int
    kind: MovementKind
    timestamp: datetime
    notes: Optional[str]
    sync_status: SyncStatus
    remote_id: Optional[str] = None
    revision: int = 0


@dataclass(frozen=True)
class ShopSettings:
    name: str
    currency: str = "USD"
    low_stock_threshold: int = 5
    location: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
