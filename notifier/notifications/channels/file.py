"""
FileChannel — always-on sink that appends to ~/.notifier/notifications.log.

It keeps a plain-text record of every message the engine sent, and is the
only channel doing anything when no Telegram token is configured.
"""

from __future__ import annotations

import datetime
import logging
from pathlib import Path

from notifier.notifications.base import DeliveryChannel
from notifier.scheduler.record import ChatTarget

logger = logging.getLogger(__name__)


class FileChannel(DeliveryChannel):
    """Appends delivered messages to a plain-text log file."""

    def __init__(self, log_path: Path | None = None) -> None:
        self._log_path = (log_path or (Path.home() / ".notifier" / "notifications.log")).expanduser()

    @property
    def name(self) -> str:
        return "file"

    @property
    def log_path(self) -> Path:
        return self._log_path

    async def send(self, target: ChatTarget, message: str) -> bool:
        try:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            ts = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            entry = (
                f"[{ts}] [{target.name} ({target.chat_id})]\n"
                f"{message}\n"
                f"{'─' * 60}\n"
            )
            with open(self._log_path, "a", encoding="utf-8") as f:
                f.write(entry)
            return True
        except OSError as e:
            logger.warning(f"FileChannel write failed: {e}")
            return False
