from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name, "") or "").strip() or default


def _int_env(name: str, default: int) -> int:
    try:
        raw = (os.getenv(name) or "").strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


def _float_env(name: str, default: float) -> float:
    try:
        raw = (os.getenv(name) or "").strip()
        return float(raw) if raw else float(default)
    except Exception:
        return float(default)


def _bool_env(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class RestoreSettings:
    world_dir: Path
    usercache_path: Path
    host_bridge_url: str = "http://127.0.0.1:8765"
    host_bridge_token: str = ""
    mojang_api_base: str = "https://api.mojang.com"
    session_api_base: str = "https://sessionserver.mojang.com"
    http_timeout: float = 10.0
    join_delay_seconds: float = 3.0  # 60 server ticks
    max_workers: int = 4
    sweep_on_startup: bool = True
    shutdown_timeout: float = 10.0


def load_settings(world_dir: Optional[str] = None) -> RestoreSettings:
    """
    Read settings from the environment.

    Blank or malformed values fall back to the defaults.
    """
    world = Path(world_dir or _env("RESTORE_WORLD_DIR", "/data/world"))
    usercache = _env("RESTORE_USERCACHE_PATH")

    return RestoreSettings(
        world_dir=world,
        usercache_path=Path(usercache) if usercache else world.parent / "usercache.json",
        host_bridge_url=_env("RESTORE_HOST_BRIDGE_URL", "http://127.0.0.1:8765"),
        host_bridge_token=_env("RESTORE_HOST_BRIDGE_TOKEN"),
        mojang_api_base=_env("RESTORE_MOJANG_API_BASE", "https://api.mojang.com"),
        session_api_base=_env("RESTORE_SESSION_API_BASE", "https://sessionserver.mojang.com"),
        http_timeout=_float_env("RESTORE_HTTP_TIMEOUT", 10.0),
        join_delay_seconds=_float_env("RESTORE_JOIN_DELAY_SECONDS", 3.0),
        max_workers=max(1, _int_env("RESTORE_MAX_WORKERS", 4)),
        sweep_on_startup=_bool_env("RESTORE_SWEEP_ON_STARTUP", True),
        shutdown_timeout=_float_env("RESTORE_SHUTDOWN_TIMEOUT", 10.0),
    )
