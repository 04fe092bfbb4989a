"""Run the backend with uvicorn: ``python -m rez_launcher``."""

from __future__ import annotations

import uvicorn

from .config import config


def main() -> None:
    uvicorn.run("rez_launcher.app:app", host=config.host, port=config.port)


if __name__ == "__main__":
    main()
