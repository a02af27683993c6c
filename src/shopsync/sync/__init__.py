from .network import NetworkStatusMonitor, ConnectivityProbe
from .selection import select_for_push
from .engine import SyncEngine, PhaseReport
from .auto import AutoSync

__all__ = [
    "NetworkStatusMonitor",
    "ConnectivityProbe",
    "select_for_push",
    "SyncEngine",
    "PhaseReport",
    "AutoSync",
]
