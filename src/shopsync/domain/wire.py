"""Local <-> remote record mapping.

The remote store uses snake_case column names and ISO-8601 text timestamps.
Every record crossing the boundary goes through one of the ``Remote*`` types
below; nothing else in the package builds remote payloads by hand.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Optional

from shopsync.domain.models import Item, Sale, SaleLine, StockMovement, format_timestamp, parse_timestamp

ITEMS = "items"
SALES = "sales"
SALE_ITEMS = "sale_items"
STOCK_MOVEMENTS = "stock_movements"


@dataclass(frozen=True)
class RemoteItem:
    client_ref: str
    name: str
    sku: str
    barcode: Optional[str]
    quantity: int
    supplier: str
    price: float
    cost_price: Optional[float]
    category: Optional[str]
    last_updated: str
    id: Optional[str] = None


@dataclass(frozen=True)
class RemoteSale:
    client_ref: str
    timestamp: str
    total_amount: float
    notes: Optional[str]
    customer_id: Optional[str]


@dataclass(frozen=True)
class RemoteSaleLine:
    sale_id: str
    item_id: str
    quantity: int
    sale_price: float


@dataclass(frozen=True)
class RemoteStockMovement:
    client_ref: str
    item_id: Optional[str]
    item_client_ref: str
    quantity: int
    type: str
    timestamp: str
    notes: Optional[str]


def to_payload(record: Any) -> dict[str, Any]:
    """Field dict for an insert/update body. The remote identity is never sent."""
    data = asdict(record)
    data.pop("id", None)
    return data


def item_to_remote(item: Item) -> RemoteItem:
    return RemoteItem(
        client_ref=item.client_ref,
        name=item.name,
        sku=item.sku,
        barcode=item.barcode,
        quantity=int(item.quantity),
        supplier=item.supplier,
        price=float(item.price),
        cost_price=(float(item.cost_price) if item.cost_price is not None else None),
        category=item.category,
        last_updated=format_timestamp(item.last_updated),
    )


def sale_to_remote(sale: Sale) -> RemoteSale:
    return RemoteSale(
        client_ref=sale.client_ref,
        timestamp=format_timestamp(sale.timestamp),
        total_amount=float(sale.total_amount),
        notes=sale.notes,
        customer_id=sale.customer_id,
    )


def sale_line_to_remote(line: SaleLine, remote_sale_id: str, remote_item_id: str) -> RemoteSaleLine:
    return RemoteSaleLine(
        sale_id=str(remote_sale_id),
        item_id=str(remote_item_id),
        quantity=int(line.quantity),
        sale_price=float(line.sale_price),
    )


def movement_to_remote(
    movement: StockMovement, remote_item_id: Optional[str], item_client_ref: str
) -> RemoteStockMovement:
    return RemoteStockMovement(
        client_ref=movement.client_ref,
        item_id=(str(remote_item_id) if remote_item_id else None),
        item_client_ref=item_client_ref,
        quantity=int(movement.quantity),
        type=movement.kind.value,
        timestamp=format_timestamp(movement.timestamp),
        notes=movement.notes,
    )


def remote_item_from_row(row: dict[str, Any]) -> RemoteItem:
    """Parse one row of the remote ``items`` collection.

    Raises ``KeyError``/``ValueError`` for rows missing required columns.
    """
    remote_id = row["id"]
    if remote_id is None or str(remote_id) == "":
        raise ValueError("Remote item row has no id.")
    cost = row.get("cost_price")
    last_updated = row.get("last_updated")
    return RemoteItem(
        id=str(remote_id),
        client_ref=str(row.get("client_ref") or ""),
        name=str(row["name"]),
        sku=str(row["sku"]),
        barcode=(str(row["barcode"]) if row.get("barcode") else None),
        quantity=int(row.get("quantity") or 0),
        supplier=str(row.get("supplier") or ""),
        price=float(row.get("price") or 0),
        cost_price=(float(cost) if cost is not None else None),
        category=(str(row["category"]) if row.get("category") else None),
        last_updated=(format_timestamp(parse_timestamp(last_updated)) if last_updated else ""),
    )
