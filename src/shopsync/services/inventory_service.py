from __future__ import annotations

from typing import Callable, Optional

from shopsync.domain.errors import DuplicateKeyError, NotFoundError, ValidationError
from shopsync.domain.models import Item, MovementKind, StockMovement, utc_now
from shopsync.repositories.unit_of_work import SqliteUnitOfWork, UnitOfWork


def _clean(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


class InventoryService:
    """Item flows. Every write leaves the touched records ``pending`` for sync."""

    def __init__(self, repo, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))

    def list_items(self) -> list[Item]:
        return self.repo.list_items()

    def get_item(self, item_id: int) -> Item:
        item = self.repo.get_item(int(item_id))
        if not item:
            raise NotFoundError("Item not found.")
        return item

    def find_by_code(self, code: str) -> Item:
        """Scanner lookup: barcode first, then SKU."""
        code = (code or "").strip()
        if not code:
            raise ValidationError("Code is required.")
        item = self.repo.get_item_by_barcode(code) or self.repo.get_item_by_sku(code)
        if not item:
            raise NotFoundError(f"No item found with barcode/SKU: {code}")
        return item

    def low_stock_items(self) -> list[Item]:
        threshold = self.repo.get_settings().low_stock_threshold
        return self.repo.low_stock_items(threshold)

    def movements_for_item(self, item_id: int) -> list[StockMovement]:
        return self.repo.movements_for_item(int(item_id))

    def _check_unique(self, uow, sku: Optional[str], barcode: Optional[str], item_id: int | None = None) -> None:
        if sku is not None:
            other = uow.find_item("sku", sku)
            if other and other.id != item_id:
                raise DuplicateKeyError("This SKU already exists.")
        if barcode is not None:
            other = uow.find_item("barcode", barcode)
            if other and other.id != item_id:
                raise DuplicateKeyError("This barcode already exists.")

    def add_item(
        self,
        name: str,
        sku: str,
        price: float,
        quantity: int = 0,
        barcode: str | None = None,
        cost_price: float | None = None,
        supplier: str = "",
        category: str | None = None,
    ) -> int:
        name = (name or "").strip()
        sku = (sku or "").strip()
        barcode = _clean(barcode)
        if not name or not sku:
            raise ValidationError("Name and SKU are required.")
        if int(quantity) < 0:
            raise ValidationError("Quantity must be >= 0.")
        if float(price) < 0:
            raise ValidationError("Price must be >= 0.")
        if cost_price is not None and float(cost_price) < 0:
            raise ValidationError("Cost price must be >= 0.")

        now = utc_now()
        with self.uow_factory() as uow:
            self._check_unique(uow, sku, barcode)
            item_id = uow.add_item(
                name=name,
                sku=sku,
                barcode=barcode,
                quantity=int(quantity),
                price=float(price),
                cost_price=(float(cost_price) if cost_price is not None else None),
                supplier=(supplier or "").strip(),
                category=_clean(category),
                last_updated=now,
            )
            if int(quantity) > 0:
                uow.add_movement(item_id, int(quantity), MovementKind.INTAKE, now, "Initial stock")
        return item_id

    def update_item(self, item_id: int, **fields) -> None:
        editable = {"name", "sku", "barcode", "price", "cost_price", "supplier", "category"}
        unknown = set(fields) - editable
        if unknown:
            raise ValidationError(f"Cannot edit field(s): {', '.join(sorted(unknown))}")
        if "name" in fields and not (fields["name"] or "").strip():
            raise ValidationError("Name is required.")
        if "sku" in fields and not (fields["sku"] or "").strip():
            raise ValidationError("SKU is required.")
        if "price" in fields and float(fields["price"]) < 0:
            raise ValidationError("Price must be >= 0.")
        if fields.get("cost_price") is not None and float(fields["cost_price"]) < 0:
            raise ValidationError("Cost price must be >= 0.")

        cleaned = dict(fields)
        for key in ("name", "sku", "supplier"):
            if key in cleaned:
                cleaned[key] = (cleaned[key] or "").strip()
        for key in ("barcode", "category"):
            if key in cleaned:
                cleaned[key] = _clean(cleaned[key])

        with self.uow_factory() as uow:
            if not uow.get_item(item_id):
                raise NotFoundError("Item not found.")
            self._check_unique(uow, cleaned.get("sku"), cleaned.get("barcode"), item_id=int(item_id))
            uow.update_item(int(item_id), cleaned, utc_now())

    def receive_stock(self, item_id: int, qty: int, notes: str | None = "Added via scanner") -> int:
        """Intake of ``qty`` units. Returns the new quantity."""
        if int(qty) <= 0:
            raise ValidationError("Quantity to add must be > 0.")
        return self._apply_movement(item_id, int(qty), MovementKind.INTAKE, notes)

    def adjust_stock(self, item_id: int, delta: int, notes: str | None = None) -> int:
        """Manual correction by a signed ``delta``. Returns the new quantity."""
        if int(delta) == 0:
            raise ValidationError("Adjustment must not be zero.")
        return self._apply_movement(item_id, int(delta), MovementKind.ADJUSTMENT, notes)

    def _apply_movement(self, item_id: int, delta: int, kind: MovementKind, notes: str | None) -> int:
        now = utc_now()
        with self.uow_factory() as uow:
            item = uow.get_item(item_id)
            if not item:
                raise NotFoundError("Item not found.")
            if not uow.change_quantity(item.id, delta, now):
                raise ValidationError(f"Not enough stock. Available: {item.quantity}")
            uow.add_movement(item.id, delta, kind, now, notes)
        return item.quantity + delta

    def delete_item(self, item_id: int) -> None:
        """Remove an item together with its stock movements and sale lines."""
        with self.uow_factory() as uow:
            if not uow.delete_item(int(item_id)):
                raise NotFoundError("Item not found.")
