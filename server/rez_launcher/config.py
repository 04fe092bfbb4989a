"""Environment-based configuration for the Rez Launcher backend."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from .errors import ConfigError

SUPPORTED_STORES = ("mongo", "sqlite")


class LauncherConfig:
    """Launcher configuration loaded from environment variables."""

    def __init__(self) -> None:
        self.host = os.environ.get("REZ_LAUNCHER_HOST", "127.0.0.1")
        self.port = _int_env("REZ_LAUNCHER_PORT", 8765)

        # Storage backend
        self.store = os.environ.get("REZ_LAUNCHER_STORE", "mongo").strip().lower()
        if self.store not in SUPPORTED_STORES:
            raise ConfigError(
                f"Unsupported REZ_LAUNCHER_STORE '{self.store}'; expected one of {', '.join(SUPPORTED_STORES)}"
            )
        self.mongo_uri = os.environ.get("REZ_LAUNCHER_MONGO_URI", "mongodb://localhost:27017")
        self.db_name = os.environ.get("REZ_LAUNCHER_DB_NAME", "rez_launcher")
        self.sqlite_path = Path(
            os.environ.get("REZ_LAUNCHER_SQLITE_PATH", str(Path.home() / ".rezlauncher" / "launcher.db"))
        ).expanduser()

        # Resolver
        self.rez_bin = os.environ.get("REZ_LAUNCHER_REZ_BIN", "rez")
        self.terminal = os.environ.get("REZ_LAUNCHER_TERMINAL") or None
        self.resolve_timeout = _int_env("REZ_LAUNCHER_RESOLVE_TIMEOUT", 600)
        self.blocking_workers = _int_env("REZ_LAUNCHER_BLOCKING_WORKERS", 4)
        if self.blocking_workers < 1:
            raise ConfigError("REZ_LAUNCHER_BLOCKING_WORKERS must be at least 1")

        # Log files land next to other temp artifacts unless overridden
        self.log_dir = Path(
            os.environ.get("REZ_LAUNCHER_LOG_DIR", str(Path(tempfile.gettempdir()) / "rezlauncher_logs"))
        ).expanduser()


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid {name} value: expected integer, got '{raw}'") from exc


# Singleton
config = LauncherConfig()
