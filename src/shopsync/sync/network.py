from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

log = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class NetworkStatusMonitor:
    """Observable online/offline flag.

    Every ``set_online`` call is published to all listeners, including repeats
    of the current value; listeners must tolerate duplicates.
    """

    def __init__(self, initial: bool = True):
        self._online = bool(initial)
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, status: bool) -> None:
        self._online = bool(status)
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(self._online)
            except Exception:
                log.exception("network_listener_failed")

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe


class ConnectivityProbe:
    """Feeds a monitor from a reachability check run on a daemon thread."""

    def __init__(self, monitor: NetworkStatusMonitor, check: Callable[[], bool], interval: float = 30.0):
        self.monitor = monitor
        self.check = check
        self.interval = float(interval)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def probe_once(self) -> bool:
        try:
            online = bool(self.check())
        except Exception as e:
            log.warning("connectivity_probe_failed error=%s", e)
            online = False
        if online != self.monitor.is_online:
            log.info("connectivity_changed online=%s", online)
        self.monitor.set_online(online)
        return online

    def start(self) -> None:
        if self._thread is not None:
            return
        self.probe_once()
        self._thread = threading.Thread(target=self._run, name="shopsync-probe", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval + 1)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.probe_once()
