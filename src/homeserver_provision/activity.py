"""Activity log: console output mirrored into an append-only file."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
CONSOLE_FORMAT = "%(levelname)s %(name)s - %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=CONSOLE_FORMAT,
    )
    # The activity logger mirrors prompts that the console already shows.
    logging.getLogger("homeserver_provision.activity").propagate = False


def attach_log_file(path: Path) -> logging.Handler:
    """Append every record, at any level, to ``path`` for the rest of the run."""
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger()
    console_level = root.level
    root.setLevel(logging.DEBUG)
    for existing in root.handlers:
        if existing.level == logging.NOTSET:
            existing.setLevel(console_level)
    root.addHandler(handler)
    logging.getLogger("homeserver_provision.activity").addHandler(handler)
    return handler


def detach_log_file(handler: Optional[logging.Handler]) -> None:
    if handler is None:
        return
    logging.getLogger().removeHandler(handler)
    logging.getLogger("homeserver_provision.activity").removeHandler(handler)
    handler.close()
