import asyncio
import threading
from pathlib import Path

from conftest import FakeRemote, make_store

from shopsync.domain.models import SyncStatus
from shopsync.services.inventory_service import InventoryService
from shopsync.sync.auto import AutoSync
from shopsync.sync.engine import SyncEngine
from shopsync.sync.network import ConnectivityProbe, NetworkStatusMonitor


def test_overlapping_reconcile_calls_never_double_insert(tmp_path: Path):
    repo = make_store(tmp_path)
    item_id = InventoryService(repo).add_item("Once", "O-1", price=1.0)
    remote = FakeRemote()
    engine = SyncEngine(repo, remote, NetworkStatusMonitor(initial=True))

    async def scenario():
        return await asyncio.gather(engine.reconcile(), engine.reconcile(), engine.reconcile())

    results = asyncio.run(scenario())

    assert results == [True, True, True]
    assert len(remote.calls_of("insert", "items")) == 1
    # The in-flight cycle plus one trailing cycle for the calls that arrived meanwhile.
    assert len(remote.calls_of("select_all", "items")) == 2
    assert repo.get_item(item_id).sync_status is SyncStatus.SYNCED
    assert engine.is_syncing is False


def test_manual_sync_is_refused_while_a_cycle_runs(tmp_path: Path):
    repo = make_store(tmp_path)
    remote = FakeRemote()
    monitor = NetworkStatusMonitor(initial=True)
    engine = SyncEngine(repo, remote, monitor)
    release = threading.Event()

    def hold_pull(op, collection, fields):
        if op == "select_all":
            release.wait(timeout=5)

    remote.on_call = hold_pull

    async def scenario():
        auto = AutoSync(engine, monitor, asyncio.get_running_loop())
        running = asyncio.create_task(engine.reconcile())
        await asyncio.sleep(0)
        assert engine.is_syncing
        refused = await auto.sync_now()
        release.set()
        ran = await running
        return refused, ran

    refused, ran = asyncio.run(scenario())
    assert refused is False
    assert ran is True
    assert len(remote.calls_of("select_all")) == 1


def test_manual_sync_is_refused_offline(tmp_path: Path):
    repo = make_store(tmp_path)
    remote = FakeRemote()
    monitor = NetworkStatusMonitor(initial=False)
    engine = SyncEngine(repo, remote, monitor)

    async def scenario():
        auto = AutoSync(engine, monitor, asyncio.get_running_loop())
        return await auto.sync_now()

    assert asyncio.run(scenario()) is False
    assert remote.calls == []


def test_manual_sync_runs_when_idle_and_online(tmp_path: Path):
    repo = make_store(tmp_path)
    item_id = InventoryService(repo).add_item("Manual", "M-1", price=1.0)
    remote = FakeRemote()
    monitor = NetworkStatusMonitor(initial=True)
    engine = SyncEngine(repo, remote, monitor)

    async def scenario():
        auto = AutoSync(engine, monitor, asyncio.get_running_loop())
        return await auto.sync_now()

    assert asyncio.run(scenario()) is True
    assert repo.get_item(item_id).sync_status is SyncStatus.SYNCED


def test_auto_sync_runs_once_per_offline_to_online_transition(tmp_path: Path):
    repo = make_store(tmp_path)
    remote = FakeRemote()
    monitor = NetworkStatusMonitor(initial=False)
    engine = SyncEngine(repo, remote, monitor)

    async def scenario():
        auto = AutoSync(engine, monitor, asyncio.get_running_loop())
        auto.start()
        await auto.wait_idle()
        assert remote.calls == []

        monitor.set_online(True)
        monitor.set_online(True)
        await auto.wait_idle()
        assert len(remote.calls_of("select_all")) == 1

        monitor.set_online(False)
        monitor.set_online(True)
        await auto.wait_idle()
        assert len(remote.calls_of("select_all")) == 2

        auto.stop()
        monitor.set_online(False)
        monitor.set_online(True)
        await auto.wait_idle()

    asyncio.run(scenario())
    assert len(remote.calls_of("select_all")) == 2


def test_auto_sync_starts_a_cycle_when_already_online(tmp_path: Path):
    repo = make_store(tmp_path)
    item_id = InventoryService(repo).add_item("Boot", "BOOT-1", price=1.0)
    remote = FakeRemote()
    monitor = NetworkStatusMonitor(initial=True)
    engine = SyncEngine(repo, remote, monitor)

    async def scenario():
        auto = AutoSync(engine, monitor, asyncio.get_running_loop())
        auto.start()
        await auto.wait_idle()
        auto.stop()

    asyncio.run(scenario())
    assert repo.get_item(item_id).sync_status is SyncStatus.SYNCED


def test_status_change_from_another_thread_schedules_on_the_loop(tmp_path: Path):
    repo = make_store(tmp_path)
    remote = FakeRemote()
    monitor = NetworkStatusMonitor(initial=False)
    engine = SyncEngine(repo, remote, monitor)

    async def scenario():
        auto = AutoSync(engine, monitor, asyncio.get_running_loop())
        auto.start()
        worker = threading.Thread(target=monitor.set_online, args=(True,))
        worker.start()
        await asyncio.to_thread(worker.join)
        await auto.wait_idle()
        auto.stop()

    asyncio.run(scenario())
    assert len(remote.calls_of("select_all")) == 1


def test_monitor_publishes_every_change_to_subscribers():
    monitor = NetworkStatusMonitor(initial=True)
    seen: list[bool] = []
    unsubscribe = monitor.subscribe(seen.append)

    monitor.set_online(False)
    monitor.set_online(False)
    monitor.set_online(True)
    unsubscribe()
    monitor.set_online(False)

    assert seen == [False, False, True]
    assert monitor.is_online is False


def test_failing_listener_does_not_stop_others():
    monitor = NetworkStatusMonitor(initial=False)
    seen: list[bool] = []

    def broken(_online):
        raise RuntimeError("listener bug")

    monitor.subscribe(broken)
    monitor.subscribe(seen.append)
    monitor.set_online(True)

    assert seen == [True]


def test_connectivity_check_errors_count_as_offline():
    monitor = NetworkStatusMonitor(initial=True)

    def check():
        raise OSError("no route to host")

    probe = ConnectivityProbe(monitor, check)
    assert probe.probe_once() is False
    assert monitor.is_online is False

    probe.check = lambda: True
    assert probe.probe_once() is True
    assert monitor.is_online is True
