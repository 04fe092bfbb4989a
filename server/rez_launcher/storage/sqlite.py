"""SQLite persistence for package collections and stages.

A single-file alternative to MongoDB for standalone workstations. Every
statement runs on one dedicated thread that owns the connection, so the
event loop never blocks on disk I/O.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import uuid
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Optional, TypeVar

from ..errors import NotFoundError, StorageError
from ..models.collections import PackageCollection
from ..models.stages import Stage
from .base import COLLECTIONS, STAGES, decode_documents, decode_names

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SqliteStageStore:
    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="rez-sqlite")

    @classmethod
    async def connect(cls, db_path: Path) -> SqliteStageStore:
        store = cls(db_path)
        await store._run(store._init_db)
        logger.info("Opened SQLite store at %s", db_path)
        return store

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS package_collections (
                version TEXT NOT NULL,
                packages TEXT NOT NULL,
                herit TEXT NOT NULL DEFAULT '',
                tools TEXT NOT NULL,
                created_at TEXT NOT NULL,
                created_by TEXT NOT NULL DEFAULT '',
                uri TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS stages (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                uri TEXT NOT NULL,
                from_version TEXT NOT NULL,
                snapshot BLOB NOT NULL,
                tools TEXT NOT NULL,
                created_at TEXT NOT NULL,
                created_by TEXT NOT NULL DEFAULT '',
                active INTEGER NOT NULL DEFAULT 0
            );

            CREATE INDEX IF NOT EXISTS idx_collections_uri_version
                ON package_collections(uri, version);
            CREATE INDEX IF NOT EXISTS idx_stages_name_uri
                ON stages(name, uri);
            """
        )
        conn.commit()

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, func, *args)
        except sqlite3.Error as exc:
            logger.error("SQLite operation failed: %s", exc)
            raise StorageError(str(exc)) from exc

    async def ping(self) -> None:
        await self._run(lambda: self._get_conn().execute("SELECT 1").fetchone())

    async def close(self) -> None:
        def _close() -> None:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

        await self._run(_close)
        self._executor.shutdown(wait=True)

    # ── Package collections ──────────────────────────────────────────────

    async def find_collections(self, uri: str | None = None) -> list[PackageCollection]:
        rows = await self._run(self._select_collections, uri)
        payloads = _row_payloads(rows, self._row_to_collection, COLLECTIONS)
        return decode_documents(PackageCollection, payloads, COLLECTIONS)

    async def insert_collection(self, record: PackageCollection) -> None:
        await self._run(self._insert_collection, record)

    async def find_collection(self, version: str, uri: str) -> PackageCollection | None:
        row = await self._run(self._select_collection, version, uri)
        if row is None:
            return None
        payloads = _row_payloads([row], self._row_to_collection, COLLECTIONS)
        found = decode_documents(PackageCollection, payloads, COLLECTIONS)
        return found[0] if found else None

    async def find_collection_tools(self, version: str, uri: str) -> list[str] | None:
        collection = await self.find_collection(version, uri)
        return collection.tools if collection is not None else None

    # ── Stages ───────────────────────────────────────────────────────────

    async def find_stages(self, uri: str, active_only: bool = False) -> list[Stage]:
        query = "SELECT * FROM stages WHERE uri = ?"
        params: list = [uri]
        if active_only:
            query += " AND active = 1"
        query += " ORDER BY rowid"
        rows = await self._run(self._fetch_rows, query, params)
        return decode_documents(Stage, _row_payloads(rows, self._row_to_stage, STAGES), STAGES)

    async def insert_stage(self, record: Stage) -> str:
        return await self._run(self._insert_stage, record)

    async def set_stages_active_by_name_uri(self, name: str, uri: str, active: bool) -> None:
        changed = await self._run(
            self._execute, "UPDATE stages SET active = ? WHERE name = ? AND uri = ?", (int(active), name, uri)
        )
        logger.info("Set active=%s on %d stage(s) named '%s' with URI '%s'", active, changed, name, uri)

    async def set_stage_active_by_id(self, stage_id: str, active: bool) -> None:
        changed = await self._run(self._execute, "UPDATE stages SET active = ? WHERE id = ?", (int(active), stage_id))
        if changed == 0:
            raise NotFoundError(f"Stage not found: {stage_id}")

    async def find_stage_by_id(self, stage_id: str) -> Stage | None:
        rows = await self._run(self._fetch_rows, "SELECT * FROM stages WHERE id = ?", [stage_id])
        found = decode_documents(Stage, _row_payloads(rows, self._row_to_stage, STAGES), STAGES)
        return found[0] if found else None

    async def find_stage_history(self, name: str, uri: str) -> list[Stage]:
        rows = await self._run(
            self._fetch_rows, "SELECT * FROM stages WHERE name = ? AND uri = ? ORDER BY rowid", [name, uri]
        )
        return decode_documents(Stage, _row_payloads(rows, self._row_to_stage, STAGES), STAGES)

    async def find_distinct_stage_names(self) -> set[str]:
        rows = await self._run(self._fetch_rows, "SELECT DISTINCT name FROM stages", [])
        return decode_names(r["name"] for r in rows)

    # ── Worker-thread helpers ────────────────────────────────────────────

    def _execute(self, statement: str, params: tuple) -> int:
        conn = self._get_conn()
        cursor = conn.execute(statement, params)
        conn.commit()
        return cursor.rowcount

    def _select_collections(self, uri: str | None) -> list[sqlite3.Row]:
        conn = self._get_conn()
        if uri:
            return conn.execute(
                "SELECT * FROM package_collections WHERE uri = ? ORDER BY rowid", (uri,)
            ).fetchall()
        return conn.execute("SELECT * FROM package_collections ORDER BY rowid").fetchall()

    def _select_collection(self, version: str, uri: str) -> sqlite3.Row | None:
        conn = self._get_conn()
        return conn.execute(
            "SELECT * FROM package_collections WHERE version = ? AND uri = ? ORDER BY rowid LIMIT 1",
            (version, uri),
        ).fetchone()

    def _insert_collection(self, record: PackageCollection) -> None:
        conn = self._get_conn()
        conn.execute(
            """INSERT INTO package_collections
               (version, packages, herit, tools, created_at, created_by, uri)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                record.version,
                json.dumps(record.packages),
                record.herit,
                json.dumps(record.tools),
                record.created_at,
                record.created_by,
                record.uri,
            ),
        )
        conn.commit()

    def _fetch_rows(self, query: str, params: list) -> list[sqlite3.Row]:
        return self._get_conn().execute(query, params).fetchall()

    def _insert_stage(self, record: Stage) -> str:
        stage_id = uuid.uuid4().hex
        conn = self._get_conn()
        conn.execute(
            """INSERT INTO stages
               (id, name, uri, from_version, snapshot, tools, created_at, created_by, active)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                stage_id,
                record.name,
                record.uri,
                record.from_version,
                record.snapshot,
                json.dumps(record.tools),
                record.created_at,
                record.created_by,
                int(record.active),
            ),
        )
        conn.commit()
        return stage_id

    @staticmethod
    def _row_to_collection(row: sqlite3.Row) -> dict[str, Any]:
        return {
            "version": row["version"],
            "packages": json.loads(row["packages"]),
            "herit": row["herit"],
            "tools": json.loads(row["tools"]),
            "created_at": row["created_at"],
            "created_by": row["created_by"],
            "uri": row["uri"],
        }

    @staticmethod
    def _row_to_stage(row: sqlite3.Row) -> dict[str, Any]:
        return {
            "id": row["id"],
            "name": row["name"],
            "uri": row["uri"],
            "from_version": row["from_version"],
            "snapshot": bytes(row["snapshot"]),
            "tools": json.loads(row["tools"]),
            "created_at": row["created_at"],
            "created_by": row["created_by"],
            "active": bool(row["active"]),
        }


def _row_payloads(
    rows: Iterable[sqlite3.Row], to_payload: Callable[[sqlite3.Row], dict[str, Any]], source: str
) -> Iterator[dict[str, Any]]:
    """Convert rows for model validation, skipping (and logging) ones with unreadable columns."""
    for row in rows:
        try:
            yield to_payload(row)
        except (ValueError, TypeError) as exc:
            logger.warning("Skipping malformed %s row: %s", source, exc)
