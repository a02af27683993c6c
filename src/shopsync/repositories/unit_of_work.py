from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol

from shopsync.domain.models import Item, MovementKind, Sale, SaleLine


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def get_item(self, item_id: int) -> Optional[Item]: ...
    def find_item(self, column: str, value: object) -> Optional[Item]: ...
    def add_item(self, **fields) -> int: ...
    def update_item(self, item_id: int, fields: dict, now: datetime) -> bool: ...
    def change_quantity(self, item_id: int, delta: int, now: datetime) -> bool: ...
    def delete_item(self, item_id: int) -> bool: ...
    def add_movement(self, item_id: int, quantity: int, kind: MovementKind, timestamp: datetime, notes: Optional[str]) -> int: ...
    def add_sale(self, timestamp: datetime, total_amount: float, notes: Optional[str], customer_id: Optional[str]) -> int: ...
    def add_sale_line(self, sale_id: int, item_id: int, quantity: int, sale_price: float) -> int: ...
    def get_sale(self, sale_id: int) -> Optional[Sale]: ...
    def sale_lines(self, sale_id: int) -> list[SaleLine]: ...
    def delete_sale(self, sale_id: int) -> bool: ...


@dataclass
class SqliteUnitOfWork:
    """One sqlite transaction spanning items, sales, sale lines and stock movements.

    Everything done between ``__enter__`` and ``__exit__`` commits together or
    not at all.
    """

    repo: object
    _conn: Optional[sqlite3.Connection] = field(default=None, init=False, repr=False)
    _cur: Optional[sqlite3.Cursor] = field(default=None, init=False, repr=False)

    def __enter__(self) -> "SqliteUnitOfWork":
        self._conn = self.repo._conn()
        self._cur = self._conn.cursor()
        self._cur.execute("BEGIN IMMEDIATE")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None:
                self._conn.commit()
            else:
                self._conn.rollback()
        finally:
            self._conn.close()
            self._conn = None
            self._cur = None

    @property
    def cur(self) -> sqlite3.Cursor:
        if self._cur is None:
            raise RuntimeError("Unit of work used outside its 'with' block.")
        return self._cur

    # items
    def get_item(self, item_id: int) -> Optional[Item]:
        return self.repo._fetch_item(self.cur, "id", int(item_id))

    def find_item(self, column: str, value: object) -> Optional[Item]:
        if column not in ("sku", "barcode", "remote_id", "client_ref"):
            raise ValueError(f"Not a lookup key: {column}")
        return self.repo._fetch_item(self.cur, column, value)

    def add_item(self, **fields) -> int:
        return self.repo._insert_item(self.cur, **fields)

    def update_item(self, item_id: int, fields: dict, now: datetime) -> bool:
        return self.repo._update_item_fields(self.cur, item_id, fields, now)

    def change_quantity(self, item_id: int, delta: int, now: datetime) -> bool:
        return self.repo._change_quantity(self.cur, item_id, delta, now)

    def delete_item(self, item_id: int) -> bool:
        return self.repo._delete_item(self.cur, item_id)

    # movements
    def add_movement(self, item_id: int, quantity: int, kind: MovementKind, timestamp: datetime, notes: Optional[str]) -> int:
        return self.repo._insert_movement(self.cur, item_id, quantity, kind, timestamp, notes)

    # sales
    def add_sale(self, timestamp: datetime, total_amount: float, notes: Optional[str], customer_id: Optional[str]) -> int:
        return self.repo._insert_sale(self.cur, timestamp, total_amount, notes, customer_id)

    def add_sale_line(self, sale_id: int, item_id: int, quantity: int, sale_price: float) -> int:
        return self.repo._insert_sale_line(self.cur, sale_id, item_id, quantity, sale_price)

    def get_sale(self, sale_id: int) -> Optional[Sale]:
        return self.repo._fetch_sale(self.cur, sale_id)

    def sale_lines(self, sale_id: int) -> list[SaleLine]:
        return self.repo._fetch_sale_lines(self.cur, sale_id)

    def delete_sale(self, sale_id: int) -> bool:
        return self.repo._delete_sale(self.cur, sale_id)
