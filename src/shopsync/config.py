from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import sys


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class RemoteSettings:
    url: str
    api_key: str
    timeout: float = 10.0
    probe_interval: float = 30.0

    @property
    def is_configured(self) -> bool:
        return bool(self.url) and bool(self.api_key)


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "ShopSync") -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    db = base / "shop.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def get_remote_settings() -> RemoteSettings:
    return RemoteSettings(
        url=os.environ.get("SHOPSYNC_REMOTE_URL", "").strip().rstrip("/"),
        api_key=os.environ.get("SHOPSYNC_REMOTE_KEY", "").strip(),
        timeout=_float_env("SHOPSYNC_REMOTE_TIMEOUT", 10.0),
        probe_interval=_float_env("SHOPSYNC_PROBE_INTERVAL", 30.0),
    )
