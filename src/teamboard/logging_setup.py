# src/teamboard/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Loggers that report every push; console shows them only at WARNING+.
_CHATTY = ("teamboard.sync.live",)

# SDK loggers capped everywhere (Firestore watch reconnects, HTTP pools).
_QUIET_LIBRARIES = ("google", "grpc", "urllib3")


class _ConsoleNoiseFilter(logging.Filter):
    """Console gets teamboard logs; SDKs and py.warnings only at ERROR+."""

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith("teamboard."):
            if name in _CHATTY:
                return record.levelno >= logging.WARNING
            return True
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/teamboard",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Console on stderr (filtered) plus teamboard.log in the data dir.

    The console shares the terminal with the prompt, so it stays terse;
    the file keeps DEBUG for sync traces.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = logging.FileHandler(str(log_dir / "teamboard.log"), encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)

    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)
