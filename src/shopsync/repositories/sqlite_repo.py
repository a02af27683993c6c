from __future__ import annotations

import shutil
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from shopsync.domain.errors import StoreError
from shopsync.domain.models import (
    Item,
    MovementKind,
    Sale,
    SaleLine,
    ShopSettings,
    StockMovement,
    SyncStatus,
    format_timestamp,
    parse_timestamp,
    utc_now,
)
from shopsync.domain.wire import RemoteItem

ITEM_COLUMNS = (
    "id, client_ref, remote_id, name, sku, barcode, quantity, price, cost_price, "
    "supplier, category, last_updated, sync_status, revision"
)
SALE_COLUMNS = "id, client_ref, remote_id, timestamp, total_amount, notes, customer_id, sync_status, revision"
MOVEMENT_COLUMNS = "id, client_ref, remote_id, item_id, quantity, kind, timestamp, notes, sync_status, revision"

# Collections that carry their own sync state.
SYNCED_COLLECTIONS = ("items", "sales", "stock_movements")


def new_client_ref() -> str:
    return str(uuid.uuid4())


def _item_from_row(r: sqlite3.Row) -> Item:
    return Item(
        id=int(r["id"]),
        client_ref=str(r["client_ref"]),
        remote_id=(str(r["remote_id"]) if r["remote_id"] is not None else None),
        name=str(r["name"]),
        sku=str(r["sku"]),
        barcode=(str(r["barcode"]) if r["barcode"] is not None else None),
        quantity=int(r["quantity"]),
        price=float(r["price"]),
        cost_price=(float(r["cost_price"]) if r["cost_price"] is not None else None),
        supplier=str(r["supplier"]),
        category=(str(r["category"]) if r["category"] is not None else None),
        last_updated=parse_timestamp(r["last_updated"]),
        sync_status=SyncStatus(r["sync_status"]),
        revision=int(r["revision"]),
    )


def _sale_from_row(r: sqlite3.Row) -> Sale:
    return Sale(
        id=int(r["id"]),
        client_ref=str(r["client_ref"]),
        remote_id=(str(r["remote_id"]) if r["remote_id"] is not None else None),
        timestamp=parse_timestamp(r["timestamp"]),
        total_amount=float(r["total_amount"]),
        notes=r["notes"],
        customer_id=r["customer_id"],
        sync_status=SyncStatus(r["sync_status"]),
        revision=int(r["revision"]),
    )


def _movement_from_row(r: sqlite3.Row) -> StockMovement:
    return StockMovement(
        id=int(r["id"]),
        client_ref=str(r["client_ref"]),
        remote_id=(str(r["remote_id"]) if r["remote_id"] is not None else None),
        item_id=int(r["item_id"]),
        quantity=int(r["quantity"]),
        kind=MovementKind(r["kind"]),
        timestamp=parse_timestamp(r["timestamp"]),
        notes=r["notes"],
        sync_status=SyncStatus(r["sync_status"]),
        revision=int(r["revision"]),
    )


def _line_from_row(r: sqlite3.Row) -> SaleLine:
    return SaleLine(
        id=int(r["id"]),
        sale_id=int(r["sale_id"]),
        item_id=int(r["item_id"]),
        quantity=int(r["quantity"]),
        sale_price=float(r["sale_price"]),
    )


_ROW_MAPPERS = {
    "items": (ITEM_COLUMNS, _item_from_row),
    "sales": (SALE_COLUMNS, _sale_from_row),
    "stock_movements": (MOVEMENT_COLUMNS, _movement_from_row),
}


def _collection(name: str):
    try:
        return _ROW_MAPPERS[name]
    except KeyError:
        raise ValueError(f"Unknown synced collection: {name}") from None


class SqliteRepository:
    """Local Store: items, sales, sale lines, stock movements and shop settings.

    Public methods open their own connection. Multi-collection writes go through
    :meth:`transaction` (see ``SqliteUnitOfWork``) and the cursor-level helpers
    prefixed with ``_``.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute("BEGIN IMMEDIATE")
            yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_db(self) -> None:
        self.run_migrations()
        conn = self._conn()
        try:
            conn.execute("PRAGMA journal_mode=WAL")
        finally:
            conn.close()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_base),
                (2, self._migration_v2_indexes),
                (3, self._migration_v3_settings),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise StoreError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            client_ref TEXT NOT NULL UNIQUE,
            remote_id TEXT UNIQUE,
            name TEXT NOT NULL,
            sku TEXT NOT NULL UNIQUE,
            barcode TEXT UNIQUE,
            quantity INTEGER NOT NULL DEFAULT 0 CHECK(quantity >= 0),
            price REAL NOT NULL CHECK(price >= 0),
            cost_price REAL CHECK(cost_price IS NULL OR cost_price >= 0),
            supplier TEXT NOT NULL DEFAULT '',
            category TEXT,
            last_updated TEXT NOT NULL,
            sync_status TEXT NOT NULL DEFAULT 'pending' CHECK(sync_status IN ('synced','pending','failed')),
            revision INTEGER NOT NULL DEFAULT 0
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS sales (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            client_ref TEXT NOT NULL UNIQUE,
            remote_id TEXT UNIQUE,
            timestamp TEXT NOT NULL,
            total_amount REAL NOT NULL CHECK(total_amount >= 0),
            notes TEXT,
            customer_id TEXT,
            sync_status TEXT NOT NULL DEFAULT 'pending' CHECK(sync_status IN ('synced','pending','failed')),
            revision INTEGER NOT NULL DEFAULT 0
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS sale_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sale_id INTEGER NOT NULL,
            item_id INTEGER NOT NULL,
            quantity INTEGER NOT NULL CHECK(quantity > 0),
            sale_price REAL NOT NULL CHECK(sale_price >= 0),
            FOREIGN KEY(sale_id) REFERENCES sales(id) ON DELETE CASCADE,
            FOREIGN KEY(item_id) REFERENCES items(id)
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS stock_movements (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            client_ref TEXT NOT NULL UNIQUE,
            remote_id TEXT UNIQUE,
            item_id INTEGER NOT NULL,
            quantity INTEGER NOT NULL CHECK(quantity != 0),
            kind TEXT NOT NULL CHECK(kind IN ('intake','sale','adjustment')),
            timestamp TEXT NOT NULL,
            notes TEXT,
            sync_status TEXT NOT NULL DEFAULT 'pending' CHECK(sync_status IN ('synced','pending','failed')),
            revision INTEGER NOT NULL DEFAULT 0,
            FOREIGN KEY(item_id) REFERENCES items(id)
        )
        """
        )

    def _migration_v2_indexes(self, cur: sqlite3.Cursor) -> None:
        indexes = {
            "items": ("name", "supplier", "category", "quantity", "sync_status"),
            "sales": ("timestamp", "customer_id", "sync_status"),
            "sale_items": ("sale_id", "item_id"),
            "stock_movements": ("item_id", "timestamp", "kind", "sync_status"),
        }
        for table, columns in indexes.items():
            for column in columns:
                cur.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_{column} ON {table}({column})")

    def _migration_v3_settings(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS shop_settings (
                id INTEGER PRIMARY KEY CHECK(id = 1),
                name TEXT NOT NULL,
                location TEXT,
                currency TEXT NOT NULL DEFAULT 'USD',
                low_stock_threshold INTEGER NOT NULL DEFAULT 5 CHECK(low_stock_threshold >= 0),
                contact_email TEXT,
                contact_phone TEXT
            )
            """
        )
        cur.execute("INSERT OR IGNORE INTO shop_settings (id, name) VALUES (1, 'My Shop')")

    def integrity_check(self) -> str:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("PRAGMA integrity_check")
        row = cur.fetchone()
        conn.close()
        return str(row[0]) if row else "unknown"

    # ---------- Items ----------
    def _fetch_item(self, cur: sqlite3.Cursor, where: str, value: object) -> Optional[Item]:
        cur.execute(f"SELECT {ITEM_COLUMNS} FROM items WHERE {where} = ?", (value,))
        r = cur.fetchone()
        return _item_from_row(r) if r else None

    def _get_item(self, where: str, value: object) -> Optional[Item]:
        conn = self._conn()
        try:
            return self._fetch_item(conn.cursor(), where, value)
        finally:
            conn.close()

    def get_item(self, item_id: int) -> Optional[Item]:
        return self._get_item("id", int(item_id))

    def get_item_by_sku(self, sku: str) -> Optional[Item]:
        return self._get_item("sku", sku)

    def get_item_by_barcode(self, barcode: str) -> Optional[Item]:
        return self._get_item("barcode", barcode)

    def get_item_by_remote_id(self, remote_id: str) -> Optional[Item]:
        return self._get_item("remote_id", str(remote_id))

    def list_items(self) -> list[Item]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {ITEM_COLUMNS} FROM items ORDER BY name, id")
        rows = cur.fetchall()
        conn.close()
        return [_item_from_row(r) for r in rows]

    def low_stock_items(self, threshold: int) -> list[Item]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"SELECT {ITEM_COLUMNS} FROM items WHERE quantity <= ? ORDER BY quantity ASC, name ASC",
            (int(threshold),),
        )
        rows = cur.fetchall()
        conn.close()
        return [_item_from_row(r) for r in rows]

    def _insert_item(
        self,
        cur: sqlite3.Cursor,
        *,
        name: str,
        sku: str,
        barcode: Optional[str],
        quantity: int,
        price: float,
        cost_price: Optional[float],
        supplier: str,
        category: Optional[str],
        last_updated: datetime,
        sync_status: SyncStatus = SyncStatus.PENDING,
        remote_id: Optional[str] = None,
        client_ref: Optional[str] = None,
    ) -> int:
        cur.execute(
            """
            INSERT INTO items (
                client_ref, remote_id, name, sku, barcode, quantity, price, cost_price,
                supplier, category, last_updated, sync_status
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                client_ref or new_client_ref(),
                remote_id,
                name,
                sku,
                barcode,
                int(quantity),
                float(price),
                cost_price,
                supplier,
                category,
                format_timestamp(last_updated),
                sync_status.value,
            ),
        )
        return int(cur.lastrowid)

    def _update_item_fields(self, cur: sqlite3.Cursor, item_id: int, fields: dict, now: datetime) -> bool:
        """Local edit: bumps revision and marks the item for sync."""
        allowed = ("name", "sku", "barcode", "price", "cost_price", "supplier", "category")
        sets = [f"{k}=?" for k in fields if k in allowed]
        params = [fields[k] for k in fields if k in allowed]
        sets += ["last_updated=?", "sync_status='pending'", "revision=revision+1"]
        params += [format_timestamp(now), int(item_id)]
        cur.execute(f"UPDATE items SET {', '.join(sets)} WHERE id=?", params)
        return cur.rowcount > 0

    def _change_quantity(self, cur: sqlite3.Cursor, item_id: int, delta: int, now: datetime) -> bool:
        """Apply a signed stock delta. Returns False if it would leave quantity below zero."""
        cur.execute(
            """
            UPDATE items
            SET quantity = quantity + ?, last_updated=?, sync_status='pending', revision=revision+1
            WHERE id=? AND quantity + ? >= 0
            """,
            (int(delta), format_timestamp(now), int(item_id), int(delta)),
        )
        return cur.rowcount > 0

    def _delete_item(self, cur: sqlite3.Cursor, item_id: int) -> bool:
        cur.execute("DELETE FROM stock_movements WHERE item_id=?", (int(item_id),))
        cur.execute("DELETE FROM sale_items WHERE item_id=?", (int(item_id),))
        cur.execute("DELETE FROM items WHERE id=?", (int(item_id),))
        return cur.rowcount > 0

    # ---------- Stock movements ----------
    def _insert_movement(
        self,
        cur: sqlite3.Cursor,
        item_id: int,
        quantity: int,
        kind: MovementKind,
        timestamp: datetime,
        notes: Optional[str],
    ) -> int:
        cur.execute(
            """
            INSERT INTO stock_movements (client_ref, item_id, quantity, kind, timestamp, notes, sync_status)
            VALUES (?, ?, ?, ?, ?, ?, 'pending')
            """,
            (new_client_ref(), int(item_id), int(quantity), kind.value, format_timestamp(timestamp), notes),
        )
        return int(cur.lastrowid)

    def movements_for_item(self, item_id: int) -> list[StockMovement]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"SELECT {MOVEMENT_COLUMNS} FROM stock_movements WHERE item_id=? ORDER BY timestamp DESC, id DESC",
            (int(item_id),),
        )
        rows = cur.fetchall()
        conn.close()
        return [_movement_from_row(r) for r in rows]

    # ---------- Sales ----------
    def _insert_sale(
        self,
        cur: sqlite3.Cursor,
        timestamp: datetime,
        total_amount: float,
        notes: Optional[str],
        customer_id: Optional[str],
    ) -> int:
        cur.execute(
            """
            INSERT INTO sales (client_ref, timestamp, total_amount, notes, customer_id, sync_status)
            VALUES (?, ?, ?, ?, ?, 'pending')
            """,
            (new_client_ref(), format_timestamp(timestamp), float(total_amount), notes, customer_id),
        )
        return int(cur.lastrowid)

    def _insert_sale_line(self, cur: sqlite3.Cursor, sale_id: int, item_id: int, quantity: int, sale_price: float) -> int:
        cur.execute(
            "INSERT INTO sale_items (sale_id, item_id, quantity, sale_price) VALUES (?, ?, ?, ?)",
            (int(sale_id), int(item_id), int(quantity), float(sale_price)),
        )
        return int(cur.lastrowid)

    def _fetch_sale(self, cur: sqlite3.Cursor, sale_id: int) -> Optional[Sale]:
        cur.execute(f"SELECT {SALE_COLUMNS} FROM sales WHERE id=?", (int(sale_id),))
        r = cur.fetchone()
        return _sale_from_row(r) if r else None

    def _fetch_sale_lines(self, cur: sqlite3.Cursor, sale_id: int) -> list[SaleLine]:
        cur.execute(
            "SELECT id, sale_id, item_id, quantity, sale_price FROM sale_items WHERE sale_id=? ORDER BY id",
            (int(sale_id),),
        )
        return [_line_from_row(r) for r in cur.fetchall()]

    def _delete_sale(self, cur: sqlite3.Cursor, sale_id: int) -> bool:
        cur.execute("DELETE FROM sale_items WHERE sale_id=?", (int(sale_id),))
        cur.execute("DELETE FROM sales WHERE id=?", (int(sale_id),))
        return cur.rowcount > 0

    def get_sale(self, sale_id: int) -> Optional[Sale]:
        conn = self._conn()
        try:
            return self._fetch_sale(conn.cursor(), sale_id)
        finally:
            conn.close()

    def sale_lines(self, sale_id: int) -> list[SaleLine]:
        conn = self._conn()
        try:
            return self._fetch_sale_lines(conn.cursor(), sale_id)
        finally:
            conn.close()

    def list_sales(self) -> list[Sale]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {SALE_COLUMNS} FROM sales ORDER BY timestamp DESC, id DESC")
        rows = cur.fetchall()
        conn.close()
        return [_sale_from_row(r) for r in rows]

    # ---------- Sync state ----------
    def list_unsynced(self, collection: str) -> list:
        """Records of ``collection`` whose sync state is not ``synced``, in local id order."""
        columns, mapper = _collection(collection)
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {columns} FROM {collection} WHERE sync_status != 'synced' ORDER BY id")
        rows = cur.fetchall()
        conn.close()
        return [mapper(r) for r in rows]

    def mark_synced(self, collection: str, record_id: int, revision: int, remote_id: Optional[str] = None) -> bool:
        """Record a successful upload of the snapshot taken at ``revision``.

        The remote identity is stored if the record has none yet; it is never
        reassigned. The state only flips to ``synced`` when no local write
        happened since the snapshot. Returns True if it did.
        """
        _collection(collection)
        with self.transaction() as cur:
            cur.execute(
                f"""
                UPDATE {collection}
                SET remote_id = COALESCE(remote_id, ?),
                    sync_status = CASE WHEN revision = ? THEN 'synced' ELSE sync_status END
                WHERE id = ?
                """,
                (remote_id, int(revision), int(record_id)),
            )
            if cur.rowcount == 0:
                return False
            cur.execute(f"SELECT sync_status FROM {collection} WHERE id=?", (int(record_id),))
            return str(cur.fetchone()[0]) == SyncStatus.SYNCED.value

    def mark_failed(self, collection: str, record_id: int, revision: int) -> bool:
        _collection(collection)
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"UPDATE {collection} SET sync_status='failed' WHERE id=? AND revision=?",
            (int(record_id), int(revision)),
        )
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return bool(changed)

    def count_by_status(self, collection: str) -> dict[str, int]:
        _collection(collection)
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT sync_status, COUNT(*) FROM {collection} GROUP BY sync_status")
        rows = cur.fetchall()
        conn.close()
        counts = {s.value: 0 for s in SyncStatus}
        for status, n in rows:
            counts[str(status)] = int(n)
        return counts

    def apply_remote_item(self, remote: RemoteItem) -> str:
        """Pull one authoritative remote item into the local store.

        The remote copy wins: a matched local item takes every remote field and
        becomes ``synced``, whatever its local state. The revision is bumped so an
        upload of the replaced local version cannot settle the record afterwards.
        Returns one of ``updated``, ``adopted`` or ``inserted``.
        """
        if not remote.id:
            raise ValueError("Remote item has no id.")
        fields = (
            remote.name,
            remote.sku,
            remote.barcode,
            int(remote.quantity),
            float(remote.price),
            remote.cost_price,
            remote.supplier,
            remote.category,
            remote.last_updated or format_timestamp(utc_now()),
        )
        with self.transaction() as cur:
            local = self._fetch_item(cur, "remote_id", remote.id)
            outcome = "updated"
            if local is None and remote.client_ref:
                local = self._fetch_item(cur, "client_ref", remote.client_ref)
                outcome = "adopted"
            if local is None:
                self._insert_item(
                    cur,
                    name=remote.name,
                    sku=remote.sku,
                    barcode=remote.barcode,
                    quantity=remote.quantity,
                    price=remote.price,
                    cost_price=remote.cost_price,
                    supplier=remote.supplier,
                    category=remote.category,
                    last_updated=parse_timestamp(fields[-1]),
                    sync_status=SyncStatus.SYNCED,
                    remote_id=remote.id,
                    client_ref=remote.client_ref or None,
                )
                return "inserted"

            cur.execute(
                """
                UPDATE items
                SET name=?, sku=?, barcode=?, quantity=?, price=?, cost_price=?, supplier=?, category=?,
                    last_updated=?, remote_id=COALESCE(remote_id, ?), sync_status='synced',
                    revision=revision+1
                WHERE id=?
                """,
                fields + (remote.id, local.id),
            )
            return outcome

    # ---------- Settings ----------
    def get_settings(self) -> ShopSettings:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "SELECT name, currency, low_stock_threshold, location, contact_email, contact_phone FROM shop_settings WHERE id=1"
        )
        r = cur.fetchone()
        conn.close()
        if not r:
            return ShopSettings(name="My Shop")
        return ShopSettings(
            name=str(r["name"]),
            currency=str(r["currency"]),
            low_stock_threshold=int(r["low_stock_threshold"]),
            location=r["location"],
            contact_email=r["contact_email"],
            contact_phone=r["contact_phone"],
        )

    def save_settings(self, settings: ShopSettings) -> None:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO shop_settings (id, name, location, currency, low_stock_threshold, contact_email, contact_phone)
            VALUES (1, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name=excluded.name, location=excluded.location, currency=excluded.currency,
                low_stock_threshold=excluded.low_stock_threshold,
                contact_email=excluded.contact_email, contact_phone=excluded.contact_phone
            """,
            (
                settings.name,
                settings.location,
                settings.currency,
                int(settings.low_stock_threshold),
                settings.contact_email,
                settings.contact_phone,
            ),
        )
        conn.commit()
        conn.close()
