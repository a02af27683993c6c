from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from shopsync.sync.engine import SyncEngine
from shopsync.sync.network import NetworkStatusMonitor

log = logging.getLogger("shopsync.sync")


class AutoSync:
    """Starts a reconciliation whenever the monitor goes from offline to online.

    Status callbacks may arrive on any thread; the cycle is always scheduled on
    ``loop``.
    """

    def __init__(self, engine: SyncEngine, monitor: NetworkStatusMonitor, loop: asyncio.AbstractEventLoop):
        self.engine = engine
        self.monitor = monitor
        self.loop = loop
        self._last_online = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._tasks: set[asyncio.Task] = set()

    def start(self) -> None:
        if self._unsubscribe is not None:
            return
        self._last_online = False
        self._unsubscribe = self.monitor.subscribe(self._on_status)
        self._on_status(self.monitor.is_online)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_status(self, online: bool) -> None:
        was_online, self._last_online = self._last_online, online
        if online and not was_online:
            log.info("sync_triggered reason=online")
            self.loop.call_soon_threadsafe(self._spawn)

    def _spawn(self) -> None:
        task = self.loop.create_task(self.engine.reconcile())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_idle(self) -> None:
        # Let callbacks queued with call_soon_threadsafe create their tasks first.
        await asyncio.sleep(0)
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def sync_now(self) -> bool:
        """Manual trigger. Refused while offline or while a cycle is already running."""
        if not self.monitor.is_online or self.engine.is_syncing:
            log.info("manual_sync_refused online=%s syncing=%s", self.monitor.is_online, self.engine.is_syncing)
            return False
        log.info("sync_triggered reason=manual")
        return await self.engine.reconcile()
