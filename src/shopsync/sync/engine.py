from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from shopsync.domain.errors import NotFoundError
from shopsync.domain.models import Item, Sale, StockMovement
from shopsync.domain.wire import (
    ITEMS,
    SALE_ITEMS,
    SALES,
    STOCK_MOVEMENTS,
    item_to_remote,
    movement_to_remote,
    remote_item_from_row,
    sale_line_to_remote,
    sale_to_remote,
    to_payload,
)
from shopsync.remote.client import RemoteResult, RemoteStore
from shopsync.sync.network import NetworkStatusMonitor
from shopsync.sync.selection import select_for_push

log = logging.getLogger("shopsync.sync")


@dataclass
class PhaseReport:
    phase: str
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    lines_failed: int = 0
    outcomes: Counter = field(default_factory=Counter)
    error: Optional[str] = None


class SyncEngine:
    """Reconciles the local store with the remote store.

    One cycle pushes items, sales (with their lines) and stock movements, and
    pulls items, as four concurrent phases. Inside a phase records go one at a
    time and each outcome is written back before the next upload starts.
    Failures stay with their record (state ``failed``) and never escape
    :meth:`reconcile`.

    Overlapping calls coalesce: a call made while a cycle is in flight waits
    for it and schedules one more cycle right after, so two cycles never
    interleave their write-backs.
    """

    def __init__(self, repo, remote: Optional[RemoteStore], network: NetworkStatusMonitor):
        self.repo = repo
        self.remote = remote
        self.network = network
        self.last_report: dict[str, PhaseReport] = {}
        self._inflight: Optional[asyncio.Future] = None
        self._rerun = False

    @property
    def is_syncing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def reconcile(self) -> bool:
        """Run a reconciliation cycle. Returns False when skipped (offline or no remote)."""
        if self.is_syncing:
            self._rerun = True
            log.info("sync_coalesced")
            return await asyncio.shield(self._inflight)
        self._inflight = asyncio.ensure_future(self._drive())
        return await asyncio.shield(self._inflight)

    async def _drive(self) -> bool:
        try:
            ran = await self._cycle()
            while self._rerun:
                self._rerun = False
                ran = await self._cycle() or ran
            return ran
        finally:
            self._inflight = None
            self._rerun = False

    async def _cycle(self) -> bool:
        if self.remote is None:
            log.warning("sync_skipped_unconfigured")
            return False
        if not self.network.is_online:
            log.info("sync_skipped_offline")
            return False

        log.info("sync_started")
        reports = await asyncio.gather(
            self._phase("push_items", self._push_items),
            self._phase("push_sales", self._push_sales),
            self._phase("push_stock_movements", self._push_movements),
            self._phase("pull_items", self._pull_items),
        )
        self.last_report = {r.phase: r for r in reports}
        log.info(
            "sync_finished %s",
            " ".join(f"{r.phase}={r.succeeded}/{r.attempted}" for r in reports),
        )
        return True

    async def _io(self, fn: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.to_thread(fn, *args)

    async def _phase(self, name: str, run: Callable[[PhaseReport], Any]) -> PhaseReport:
        report = PhaseReport(phase=name)
        try:
            await run(report)
        except Exception as e:
            report.error = str(e)
            log.exception("sync_phase_error phase=%s", name)
        return report

    # ---------- push ----------
    async def _push_items(self, report: PhaseReport) -> None:
        items = select_for_push(await self._io(self.repo.list_unsynced, ITEMS))
        for item in items:
            await self._push_one(report, ITEMS, item, item_to_remote)

    async def _push_sales(self, report: PhaseReport) -> None:
        sales = select_for_push(await self._io(self.repo.list_unsynced, SALES))
        for sale in sales:
            remote_id = await self._push_one(report, SALES, sale, sale_to_remote)
            if remote_id is not None:
                await self._push_sale_lines(report, sale, remote_id)

    async def _push_movements(self, report: PhaseReport) -> None:
        movements = select_for_push(await self._io(self.repo.list_unsynced, STOCK_MOVEMENTS))
        for movement in movements:
            await self._push_one(report, STOCK_MOVEMENTS, movement, self._movement_to_remote)

    def _movement_to_remote(self, movement: StockMovement):
        item = self.repo.get_item(movement.item_id)
        if item is None:
            raise NotFoundError(f"Item {movement.item_id} of stock movement {movement.id} not found.")
        return movement_to_remote(movement, item.remote_id, item.client_ref)

    async def _push_one(self, report: PhaseReport, collection: str, record, to_remote: Callable) -> Optional[str]:
        """Upload one record and persist the outcome. Returns its remote id on success."""
        report.attempted += 1
        try:
            payload = to_payload(await self._io(to_remote, record))
            if record.remote_id:
                result: RemoteResult = await self._io(self.remote.update, collection, record.remote_id, payload)
                remote_id = record.remote_id
            else:
                result = await self._io(self.remote.insert, collection, payload)
                remote_id = _remote_id(result)

            if not result.ok or remote_id is None:
                log.warning(
                    "push_failed collection=%s local_id=%s error=%s",
                    collection,
                    record.id,
                    result.error or "no remote id returned",
                )
                await self._io(self.repo.mark_failed, collection, record.id, record.revision)
                report.failed += 1
                return None

            settled = await self._io(self.repo.mark_synced, collection, record.id, record.revision, remote_id)
            report.succeeded += 1
            report.outcomes["synced" if settled else "changed_during_push"] += 1
            log.info("push_ok collection=%s local_id=%s remote_id=%s", collection, record.id, remote_id)
            return remote_id
        except Exception:
            log.exception("push_error collection=%s local_id=%s", collection, record.id)
            report.failed += 1
            await self._mark_failed_after_error(collection, record)
            return None

    async def _mark_failed_after_error(self, collection: str, record) -> None:
        try:
            await self._io(self.repo.mark_failed, collection, record.id, record.revision)
        except Exception:
            log.exception("mark_failed_error collection=%s local_id=%s", collection, record.id)

    async def _push_sale_lines(self, report: PhaseReport, sale: Sale, remote_sale_id: str) -> None:
        # Lines are best effort; their failures never touch the sale's own state.
        lines = await self._io(self.repo.sale_lines, sale.id)
        for line in lines:
            try:
                item: Optional[Item] = await self._io(self.repo.get_item, line.item_id)
                if item is None or not item.remote_id:
                    log.warning(
                        "sale_line_skipped sale_id=%s item_id=%s reason=item_not_uploaded", sale.id, line.item_id
                    )
                    report.lines_failed += 1
                    continue
                payload = to_payload(sale_line_to_remote(line, remote_sale_id, item.remote_id))
                result = await self._io(self.remote.upsert, SALE_ITEMS, payload, "sale_id,item_id")
                if not result.ok:
                    log.warning("sale_line_failed sale_id=%s line_id=%s error=%s", sale.id, line.id, result.error)
                    report.lines_failed += 1
            except Exception:
                log.exception("sale_line_error sale_id=%s line_id=%s", sale.id, line.id)
                report.lines_failed += 1

    # ---------- pull ----------
    async def _pull_items(self, report: PhaseReport) -> None:
        result: RemoteResult = await self._io(self.remote.select_all, ITEMS)
        if not result.ok:
            log.warning("pull_failed collection=%s error=%s", ITEMS, result.error)
            report.error = result.error
            return
        for row in result.data or []:
            report.attempted += 1
            try:
                remote_item = remote_item_from_row(row)
                outcome = await self._io(self.repo.apply_remote_item, remote_item)
                report.succeeded += 1
                report.outcomes[outcome] += 1
            except Exception:
                log.exception("pull_item_error remote_id=%s", row.get("id") if isinstance(row, dict) else None)
                report.failed += 1
        log.info("pull_applied %s", dict(report.outcomes))


def _remote_id(result: RemoteResult) -> Optional[str]:
    if not result.ok or not isinstance(result.data, dict):
        return None
    value = result.data.get("id")
    return str(value) if value not in (None, "") else None
