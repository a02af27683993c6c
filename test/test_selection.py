from types import SimpleNamespace

from shopsync.domain.models import SyncStatus
from shopsync.sync.selection import select_for_push


def _rec(record_id: int, status: SyncStatus):
    return SimpleNamespace(id=record_id, sync_status=status)


def test_selects_pending_and_failed_in_local_id_order():
    records = [
        _rec(7, SyncStatus.FAILED),
        _rec(2, SyncStatus.SYNCED),
        _rec(3, SyncStatus.PENDING),
        _rec(1, SyncStatus.PENDING),
    ]

    chosen = select_for_push(records)

    assert [r.id for r in chosen] == [1, 3, 7]


def test_nothing_to_push_when_everything_is_synced():
    assert select_for_push([_rec(1, SyncStatus.SYNCED), _rec(2, SyncStatus.SYNCED)]) == []
    assert select_for_push([]) == []


def test_accepts_raw_status_strings():
    chosen = select_for_push([_rec(1, "synced"), _rec(2, "failed")])
    assert [r.id for r in chosen] == [2]
