"""Tests for environment configuration parsing."""

from __future__ import annotations

from pathlib import Path

import pytest

from rez_launcher.config import LauncherConfig
from rez_launcher.errors import ConfigError


def test_defaults(monkeypatch):
    for name in (
        "REZ_LAUNCHER_STORE",
        "REZ_LAUNCHER_MONGO_URI",
        "REZ_LAUNCHER_DB_NAME",
        "REZ_LAUNCHER_REZ_BIN",
        "REZ_LAUNCHER_TERMINAL",
        "REZ_LAUNCHER_PORT",
        "REZ_LAUNCHER_BLOCKING_WORKERS",
    ):
        monkeypatch.delenv(name, raising=False)

    cfg = LauncherConfig()

    assert cfg.store == "mongo"
    assert cfg.mongo_uri == "mongodb://localhost:27017"
    assert cfg.db_name == "rez_launcher"
    assert cfg.rez_bin == "rez"
    assert cfg.terminal is None
    assert cfg.port == 8765
    assert cfg.blocking_workers == 4
    assert cfg.log_dir.name == "rezlauncher_logs"


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("REZ_LAUNCHER_STORE", "SQLite")
    monkeypatch.setenv("REZ_LAUNCHER_SQLITE_PATH", str(tmp_path / "db.sqlite"))
    monkeypatch.setenv("REZ_LAUNCHER_REZ_BIN", "/opt/rez/bin/rez")
    monkeypatch.setenv("REZ_LAUNCHER_RESOLVE_TIMEOUT", "120")
    monkeypatch.setenv("REZ_LAUNCHER_LOG_DIR", str(tmp_path / "logs"))

    cfg = LauncherConfig()

    assert cfg.store == "sqlite"
    assert cfg.sqlite_path == Path(tmp_path / "db.sqlite")
    assert cfg.rez_bin == "/opt/rez/bin/rez"
    assert cfg.resolve_timeout == 120
    assert cfg.log_dir == tmp_path / "logs"


def test_unknown_store_rejected(monkeypatch):
    monkeypatch.setenv("REZ_LAUNCHER_STORE", "postgres")
    with pytest.raises(ConfigError, match="postgres"):
        LauncherConfig()


def test_non_integer_port_rejected(monkeypatch):
    monkeypatch.setenv("REZ_LAUNCHER_STORE", "mongo")
    monkeypatch.setenv("REZ_LAUNCHER_PORT", "eighty")
    with pytest.raises(ConfigError, match="REZ_LAUNCHER_PORT"):
        LauncherConfig()


def test_zero_workers_rejected(monkeypatch):
    monkeypatch.setenv("REZ_LAUNCHER_STORE", "mongo")
    monkeypatch.setenv("REZ_LAUNCHER_BLOCKING_WORKERS", "0")
    with pytest.raises(ConfigError):
        LauncherConfig()
