from __future__ import annotations

from typing import Iterable, TypeVar

from shopsync.domain.models import SyncStatus

R = TypeVar("R")


def select_for_push(records: Iterable[R]) -> list[R]:
    """Records to upload this cycle: everything not ``synced``, oldest local id first.

    ``failed`` records are retried every cycle alongside ``pending`` ones; there
    is no backoff and no retry limit.
    """
    chosen = [r for r in records if SyncStatus(getattr(r, "sync_status")) is not SyncStatus.SYNCED]
    return sorted(chosen, key=lambda r: int(getattr(r, "id")))
