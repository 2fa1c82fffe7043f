"""
Process logging for the notifier.

Everything under the "notifier" logger goes to two places:
    stderr                           terse, WARNING and up by default
    <log_dir>/notifier_YYYYMMDD.log  full detail, one file per start day
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

_ROOT = "notifier"
_CONSOLE_FORMAT = "[%(levelname)s] %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(
    log_dir: Path | None = None,
    console_level: int | str = logging.WARNING,
    file_level: int | str = logging.DEBUG,
) -> logging.Logger:
    """
    (Re)configure the "notifier" logger and return it.

    Calling it again replaces the previous handlers, so the CLI can call it
    once per command without duplicating output.
    """
    directory = (log_dir or Path.home() / ".notifier" / "logs").expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / log_file_name()

    root = logging.getLogger(_ROOT)
    root.setLevel(logging.DEBUG)
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()

    root.addHandler(_handler(logging.StreamHandler(), console_level, logging.Formatter(_CONSOLE_FORMAT)))
    root.addHandler(
        _handler(
            logging.FileHandler(path, encoding="utf-8"),
            file_level,
            logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"),
        )
    )

    root.debug(f"Logging to {path}")
    return root


def log_file_name(day: datetime | None = None) -> str:
    """File name for the given day's log, today by default."""
    return f"notifier_{(day or datetime.now()):%Y%m%d}.log"


def _handler(handler: logging.Handler, level: int | str, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler
