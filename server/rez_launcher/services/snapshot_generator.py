"""Resolve a package list into an rxt snapshot with ``rez env -o``."""

from __future__ import annotations

import asyncio
import logging
import secrets
import subprocess
import tempfile
from concurrent.futures import Executor
from datetime import datetime, timezone
from pathlib import Path

from ..errors import GenerationError

logger = logging.getLogger(__name__)


class SnapshotGenerator:
    """Runs the resolver on the blocking worker pool and returns the rxt bytes."""

    def __init__(
        self,
        rez_bin: str,
        executor: Executor,
        timeout: float | None = 600,
        tmp_dir: Path | None = None,
    ) -> None:
        self.rez_bin = rez_bin
        self.timeout = timeout
        self.tmp_dir = tmp_dir or Path(tempfile.gettempdir())
        self._executor = executor

    async def generate(self, packages: list[str]) -> bytes:
        """Resolve ``packages`` and return the serialized context."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._generate_sync, list(packages))

    def output_path(self) -> Path:
        """Allocate a collision-free output path for one resolve."""
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        return self.tmp_dir / f"rezlauncher-{stamp}-{secrets.token_hex(4)}.rxt"

    def _generate_sync(self, packages: list[str]) -> bytes:
        output_path = self.output_path()
        cmd = [self.rez_bin, "env", *packages, "-o", str(output_path)]
        logger.info("Resolving %d package(s) into %s", len(packages), output_path)

        try:
            try:
                result = subprocess.run(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    timeout=self.timeout,
                )
            except FileNotFoundError as exc:
                raise GenerationError(f"Resolver executable not found: {self.rez_bin}") from exc
            except subprocess.TimeoutExpired as exc:
                raise GenerationError(f"Resolver timed out after {self.timeout}s") from exc

            if result.returncode != 0:
                # Resolver output is not guaranteed to be valid UTF-8
                stderr = (result.stderr or b"").decode("utf-8", errors="replace").strip()
                logger.error("Resolver exited with code %d: %s", result.returncode, stderr)
                raise GenerationError(stderr or f"Resolver exited with code {result.returncode}")

            try:
                content = output_path.read_bytes()
            except OSError as exc:
                raise GenerationError(f"Failed to read resolved context {output_path}: {exc}") from exc

            logger.info("Resolved context is %d bytes", len(content))
            return content

        finally:
            try:
                output_path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Failed to remove temporary context %s: %s", output_path, exc)
