from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from shopsync.domain.models import format_timestamp
from shopsync.repositories.sqlite_repo import SYNCED_COLLECTIONS

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class HealthReport:
    sqlite_integrity: str
    db_size_bytes: int
    logs_count: int
    sync_backlog: dict[str, dict[str, int]]
    generated_at: str

    @property
    def unsynced_total(self) -> int:
        return sum(c.get("pending", 0) + c.get("failed", 0) for c in self.sync_backlog.values())


_BACKLOG_SHEETS = {
    "items": (
        ["local_id", "sku", "name", "quantity", "sync_status", "remote_id", "last_updated"],
        lambda r: [r.id, r.sku, r.name, r.quantity, r.sync_status.value, r.remote_id, format_timestamp(r.last_updated)],
    ),
    "sales": (
        ["local_id", "timestamp", "total_amount", "customer_id", "sync_status", "remote_id"],
        lambda r: [r.id, format_timestamp(r.timestamp), r.total_amount, r.customer_id, r.sync_status.value, r.remote_id],
    ),
    "stock_movements": (
        ["local_id", "item_id", "kind", "quantity", "timestamp", "sync_status", "remote_id"],
        lambda r: [r.id, r.item_id, r.kind.value, r.quantity, format_timestamp(r.timestamp), r.sync_status.value, r.remote_id],
    ),
}


class OperationsService:
    def __init__(self, repo, db_path: Path | str, logs_dir: Path | str):
        self.repo = repo
        self.db_path = Path(db_path)
        self.logs_dir = Path(logs_dir)

    def sync_backlog(self) -> dict[str, dict[str, int]]:
        return {c: self.repo.count_by_status(c) for c in SYNCED_COLLECTIONS}

    def run_health_check(self) -> HealthReport:
        integrity = self.repo.integrity_check()
        logs_count = len(list(self.logs_dir.glob("*.log"))) if self.logs_dir.exists() else 0
        size = self.db_path.stat().st_size if self.db_path.exists() else 0
        return HealthReport(
            sqlite_integrity=integrity,
            db_size_bytes=size,
            logs_count=logs_count,
            sync_backlog=self.sync_backlog(),
            generated_at=datetime.now().isoformat(timespec="seconds"),
        )

    def export_backlog_excel(self, path: Path | str) -> Path:
        """Workbook with a summary sheet and one sheet of unsynced records per collection."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        wb = Workbook()

        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = "Sync backlog"
        ws["A1"].font = Font(bold=True, size=14)
        ws["A2"] = f"Generated {datetime.now().isoformat(timespec='seconds')}"
        ws.append([])
        ws.append(["collection", "synced", "pending", "failed"])
        for c in ws[ws.max_row]:
            c.font = Font(bold=True)
        for collection, counts in self.sync_backlog().items():
            ws.append([collection, counts["synced"], counts["pending"], counts["failed"]])
        ws.column_dimensions["A"].width = 20

        for collection, (headers, to_row) in _BACKLOG_SHEETS.items():
            sheet = wb.create_sheet(collection)
            sheet.append(headers)
            for c in sheet[1]:
                c.font = Font(bold=True)
            records = self.repo.list_unsynced(collection)
            for record in records:
                sheet.append(to_row(record))
            for idx in range(1, len(headers) + 1):
                sheet.column_dimensions[get_column_letter(idx)].width = 18
            if records:
                ref = f"A1:{get_column_letter(len(headers))}{len(records) + 1}"
                tab = Table(displayName=f"Backlog_{collection}", ref=ref)
                tab.tableStyleInfo = TableStyleInfo(name="TableStyleMedium9", showRowStripes=True, showColumnStripes=False)
                sheet.add_table(tab)

        wb.save(target)
        log.info("backlog_exported path=%s", target)
        return target
