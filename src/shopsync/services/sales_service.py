from __future__ import annotations

import logging
from collections import Counter
from typing import Callable, Iterable, Optional

from shopsync.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from shopsync.domain.models import MovementKind, Sale, SaleLine, utc_now
from shopsync.repositories.unit_of_work import SqliteUnitOfWork, UnitOfWork

log = logging.getLogger("shopsync.sales")


class SalesService:
    def __init__(self, repo, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))

    def create_sale(
        self,
        lines: Iterable[dict],
        notes: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> int:
        """
        lines: [{item_id, quantity, sale_price?}]  (sale_price defaults to the item's price)
        """
        lines = list(lines)
        if not lines:
            raise ValidationError("Cart is empty.")

        # One line per item; the remote keys lines by (sale, item).
        qty_by_item: Counter[int] = Counter()
        price_by_item: dict[int, Optional[float]] = {}
        for ln in lines:
            item_id = int(ln["item_id"])
            qty = int(ln["quantity"])
            price = ln.get("sale_price")
            if qty <= 0:
                raise ValidationError("Quantity must be >= 1.")
            if price is not None and float(price) < 0:
                raise ValidationError("Sale price must be >= 0.")
            if item_id in price_by_item and price_by_item[item_id] != price:
                raise ValidationError("Same item listed twice with different prices.")
            qty_by_item[item_id] += qty
            price_by_item[item_id] = price

        now = utc_now()
        with self.uow_factory() as uow:
            priced: list[tuple[int, int, float]] = []
            for item_id, qty in qty_by_item.items():
                item = uow.get_item(item_id)
                if not item:
                    raise NotFoundError("Item not found.")
                if qty > item.quantity:
                    raise InsufficientStockError(f"Not enough stock for {item.sku}. Available: {item.quantity}")
                price = price_by_item[item_id]
                priced.append((item_id, qty, float(price) if price is not None else float(item.price)))

            total = sum(qty * price for _item_id, qty, price in priced)
            sale_id = uow.add_sale(now, total, (notes or "").strip() or None, (customer_id or "").strip() or None)
            for item_id, qty, price in priced:
                uow.add_sale_line(sale_id, item_id, qty, price)
                if not uow.change_quantity(item_id, -qty, now):
                    raise InsufficientStockError("Stock changed while the sale was being recorded.")
                uow.add_movement(item_id, -qty, MovementKind.SALE, now, f"Sale #{sale_id}")

        log.info("sale_created sale_id=%s lines=%s total=%.2f", sale_id, len(priced), total)
        return sale_id

    def cancel_sale(self, sale_id: int) -> None:
        """Undo a sale: restore stock, record the restorations, delete the sale and its lines."""
        now = utc_now()
        with self.uow_factory() as uow:
            sale = uow.get_sale(sale_id)
            if not sale:
                raise NotFoundError("Sale not found.")
            lines = uow.sale_lines(sale.id)
            for ln in lines:
                if not uow.change_quantity(ln.item_id, ln.quantity, now):
                    raise NotFoundError(f"Item {ln.item_id} of sale #{sale.id} not found.")
                uow.add_movement(ln.item_id, ln.quantity, MovementKind.ADJUSTMENT, now, f"Sale #{sale.id} cancelled")
            uow.delete_sale(sale.id)

        log.info("sale_cancelled sale_id=%s lines=%s remote_id=%s", sale.id, len(lines), sale.remote_id)

    def get_sale(self, sale_id: int) -> Sale:
        sale = self.repo.get_sale(int(sale_id))
        if not sale:
            raise NotFoundError("Sale not found.")
        return sale

    def sale_lines(self, sale_id: int) -> list[SaleLine]:
        return self.repo.sale_lines(int(sale_id))

    def list_sales(self) -> list[Sale]:
        return self.repo.list_sales()
