from __future__ import annotations

import asyncio
import logging

import click

from shopsync.application.container import AppContainer, build_container
from shopsync.config import RemoteSettings, get_app_paths, get_remote_settings
from shopsync.logging_config import setup_logging
from shopsync.sync.auto import AutoSync
from shopsync.sync.network import ConnectivityProbe

log = logging.getLogger(__name__)


def _reachability_check(container: AppContainer):
    ping = getattr(container.remote, "ping", None)
    return ping if ping is not None else (lambda: False)


async def _run_once(container: AppContainer) -> bool:
    probe = ConnectivityProbe(container.network, _reachability_check(container))
    await asyncio.to_thread(probe.probe_once)
    return await container.engine.reconcile()


async def _start_agent(container: AppContainer, settings: RemoteSettings) -> tuple[AutoSync, ConnectivityProbe]:
    """Seed the monitor from a first probe, then hook the automatic trigger to it."""
    auto = AutoSync(container.engine, container.network, asyncio.get_running_loop())
    probe = ConnectivityProbe(container.network, _reachability_check(container), interval=settings.probe_interval)
    await asyncio.to_thread(probe.start)
    auto.start()
    return auto, probe


async def _serve(container: AppContainer, settings: RemoteSettings) -> None:
    auto, probe = await _start_agent(container, settings)
    log.info("agent_started probe_interval=%s", settings.probe_interval)
    try:
        await asyncio.Event().wait()
    finally:
        probe.stop()
        auto.stop()
        await auto.wait_idle()
        log.info("agent_stopped")


@click.command()
@click.option("--db", "db_path", type=click.Path(dir_okay=False), default=None, help="Local store path.")
@click.option("--once", is_flag=True, help="Run a single reconciliation and exit.")
@click.option("--backlog-xlsx", type=click.Path(dir_okay=False), default=None, help="Export unsynced records and exit.")
@click.option("--verbose", is_flag=True, help="Also log to stderr.")
def main(db_path: str | None, once: bool, backlog_xlsx: str | None, verbose: bool) -> None:
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO, console=verbose)

    settings = get_remote_settings()
    container = build_container(db_path or paths.db_path, settings)
    if not settings.is_configured:
        click.echo("Remote store not configured (SHOPSYNC_REMOTE_URL / SHOPSYNC_REMOTE_KEY); sync will be skipped.")

    if backlog_xlsx:
        out = container.operations.export_backlog_excel(backlog_xlsx)
        click.echo(f"Backlog written to {out}")
        return

    if once:
        ran = asyncio.run(_run_once(container))
        backlog = container.operations.sync_backlog()
        click.echo(f"Sync {'completed' if ran else 'skipped'}. Backlog: {backlog}")
        raise SystemExit(0 if ran else 1)

    try:
        asyncio.run(_serve(container, settings))
    except KeyboardInterrupt:
        click.echo("Stopped.")


if __name__ == "__main__":
    main()
