"""Process-wide logging: console plus one timestamped log file per run."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def configure_logging(log_dir: Path, level: int = logging.INFO) -> Path:
    """Attach console and file handlers to the root logger.

    Returns the path of the log file for this process. Handlers serialize
    writes with their own lock, so records from concurrent tasks and worker
    threads never interleave within a line.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"rezlauncher_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    root = logging.getLogger()
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    for handler in list(root.handlers):
        if getattr(handler, "_rez_launcher", False):
            root.removeHandler(handler)
            handler.close()

    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    stream_handler = logging.StreamHandler()
    for handler in (file_handler, stream_handler):
        handler.setFormatter(formatter)
        handler._rez_launcher = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    logging.getLogger(__name__).info("Logging to %s", log_path)
    return log_path
