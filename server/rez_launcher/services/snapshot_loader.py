"""Open a stored snapshot in an interactive terminal with ``rez env -i``."""

from __future__ import annotations

import asyncio
import logging
import re
import shlex
import subprocess
import sys
import tempfile
from concurrent.futures import Executor
from pathlib import Path

from ..errors import EmptySnapshotError, LoadError
from ..models.stages import Stage

logger = logging.getLogger(__name__)

DEFAULT_LINUX_TERMINAL = "x-terminal-emulator"


def build_terminal_command(platform: str, rez_args: list[str], terminal: str | None = None) -> list[str]:
    """Wrap a rez command line in the platform's terminal launcher."""
    if platform.startswith("win"):
        return ["cmd", "/c", "start", "cmd", "/k", *rez_args]
    if platform == "darwin":
        script = shlex.join(rez_args).replace("\\", "\\\\").replace('"', '\\"')
        return ["osascript", "-e", f'tell application "Terminal" to do script "{script}"']
    return [*shlex.split(terminal or DEFAULT_LINUX_TERMINAL), "-e", *rez_args]


def _slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "stage"


class SnapshotLoader:
    """Spawns a terminal session on a stage's snapshot and returns right away.

    The session is never awaited or monitored; its rxt file stays on disk for
    the session to read.
    """

    def __init__(
        self,
        rez_bin: str,
        executor: Executor,
        terminal: str | None = None,
        platform: str = sys.platform,
        tmp_dir: Path | None = None,
    ) -> None:
        self.rez_bin = rez_bin
        self.terminal = terminal
        self.platform = platform
        self.tmp_dir = tmp_dir
        self._executor = executor

    async def load(self, stage: Stage) -> Path:
        """Materialize ``stage`` in a new terminal. Returns the rxt file handed to it."""
        if not stage.snapshot:
            raise EmptySnapshotError(f"Stage '{stage.name}' ({stage.id}) has no generated snapshot")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._load_sync, stage)

    def _load_sync(self, stage: Stage) -> Path:
        try:
            fd, path = tempfile.mkstemp(
                suffix=".rxt", prefix=f"rezlauncher-{_slugify(stage.name)}-", dir=self.tmp_dir
            )
            with open(fd, "wb") as f:
                f.write(stage.snapshot)
        except OSError as exc:
            raise LoadError(f"Failed to write snapshot for stage '{stage.name}': {exc}") from exc

        context_path = Path(path)
        cmd = build_terminal_command(
            self.platform, [self.rez_bin, "env", "-i", str(context_path)], self.terminal
        )
        kwargs: dict = {}
        if not self.platform.startswith("win"):
            # Keep the session alive if the launcher process exits
            kwargs["start_new_session"] = True

        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                **kwargs,
            )
        except OSError as exc:
            context_path.unlink(missing_ok=True)
            raise LoadError(f"Failed to launch terminal for stage '{stage.name}': {exc}") from exc

        logger.info("Launched stage '%s' from %s (pid %d)", stage.name, context_path, proc.pid)
        return context_path
