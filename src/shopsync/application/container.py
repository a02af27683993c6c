from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from shopsync.config import RemoteSettings, get_remote_settings
from shopsync.remote.client import PostgrestClient, RemoteStore
from shopsync.repositories.sqlite_repo import SqliteRepository
from shopsync.services.inventory_service import InventoryService
from shopsync.services.operations_service import OperationsService
from shopsync.services.sales_service import SalesService
from shopsync.services.settings_service import SettingsService
from shopsync.sync.engine import SyncEngine
from shopsync.sync.network import NetworkStatusMonitor


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    network: NetworkStatusMonitor
    remote: Optional[RemoteStore]
    engine: SyncEngine
    inventory: InventoryService
    sales: SalesService
    settings: SettingsService
    operations: OperationsService


def build_container(
    db_path: Path | str,
    remote_settings: RemoteSettings | None = None,
    *,
    remote: RemoteStore | None = None,
    network: NetworkStatusMonitor | None = None,
) -> AppContainer:
    repo = SqliteRepository(db_path)
    repo.init_db()

    remote_settings = remote_settings or get_remote_settings()
    if remote is None and remote_settings.is_configured:
        remote = PostgrestClient(remote_settings)
    # Offline until the connectivity probe reports otherwise.
    network = network or NetworkStatusMonitor(initial=False)

    engine = SyncEngine(repo, remote, network)
    inventory = InventoryService(repo)
    sales = SalesService(repo)
    settings = SettingsService(repo)
    operations = OperationsService(repo, db_path=db_path, logs_dir=Path(db_path).parent / "logs")

    return AppContainer(
        repo=repo,
        network=network,
        remote=remote,
        engine=engine,
        inventory=inventory,
        sales=sales,
        settings=settings,
        operations=operations,
    )
