import sys
import threading
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from shopsync.remote.client import RemoteResult  # noqa: E402


class FakeRemote:
    """In-memory remote store.

    ``fail_if(op, collection, fields)`` returning True makes that call return an
    error result; ``raise_if`` makes it raise. ``on_call`` runs before every call.
    """

    def __init__(self):
        self.tables: dict[str, dict[str, dict]] = {}
        self.calls: list[tuple[str, str, object, dict]] = []
        self.fail_if = None
        self.raise_if = None
        self.on_call = None
        self._seq: dict[str, int] = {}
        self._lock = threading.Lock()

    def _table(self, collection: str) -> dict[str, dict]:
        return self.tables.setdefault(collection, {})

    def _before(self, op: str, collection: str, record_id, fields: dict):
        with self._lock:
            self.calls.append((op, collection, record_id, dict(fields)))
        if self.on_call is not None:
            self.on_call(op, collection, fields)
        if self.raise_if is not None and self.raise_if(op, collection, fields):
            raise RuntimeError(f"remote exploded on {op} {collection}")
        if self.fail_if is not None and self.fail_if(op, collection, fields):
            return RemoteResult.failure(f"{op} rejected")
        return None

    def _new_id(self, collection: str) -> str:
        with self._lock:
            self._seq[collection] = self._seq.get(collection, 0) + 1
            return f"r{self._seq[collection]}"

    def calls_of(self, op: str, collection: str | None = None) -> list:
        return [c for c in self.calls if c[0] == op and (collection is None or c[1] == collection)]

    def seed(self, collection: str, row: dict) -> dict:
        row = dict(row)
        row.setdefault("id", self._new_id(collection))
        self._table(collection)[row["id"]] = row
        return row

    def insert(self, collection: str, fields: dict) -> RemoteResult:
        failed = self._before("insert", collection, None, fields)
        if failed:
            return failed
        table = self._table(collection)
        ref = fields.get("client_ref")
        for row in table.values():
            if ref and row.get("client_ref") == ref:
                row.update(fields)
                return RemoteResult.success(dict(row))
        row = dict(fields, id=self._new_id(collection))
        table[row["id"]] = row
        return RemoteResult.success(dict(row))

    def update(self, collection: str, record_id: str, fields: dict) -> RemoteResult:
        failed = self._before("update", collection, record_id, fields)
        if failed:
            return failed
        row = self._table(collection).get(record_id)
        if row is None:
            return RemoteResult.failure(f"no remote record with id {record_id}")
        row.update(fields)
        return RemoteResult.success(dict(row))

    def upsert(self, collection: str, fields: dict, on_conflict: str) -> RemoteResult:
        failed = self._before("upsert", collection, None, fields)
        if failed:
            return failed
        keys = on_conflict.split(",")
        table = self._table(collection)
        for row in table.values():
            if all(row.get(k) == fields.get(k) for k in keys):
                row.update(fields)
                return RemoteResult.success(dict(row))
        row = dict(fields, id=self._new_id(collection))
        table[row["id"]] = row
        return RemoteResult.success(dict(row))

    def select_all(self, collection: str) -> RemoteResult:
        failed = self._before("select_all", collection, None, {})
        if failed:
            return failed
        return RemoteResult.success([dict(r) for r in self._table(collection).values()])


def make_store(tmp_path: Path, name: str = "shop.db"):
    from shopsync.repositories.sqlite_repo import SqliteRepository

    repo = SqliteRepository(tmp_path / name)
    repo.init_db()
    return repo
