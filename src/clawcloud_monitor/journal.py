from __future__ import annotations

import logging
from typing import Optional


_ICONS = {
    "info": "ℹ️",
    "step": "🔹",
    "success": "✅",
    "warning": "⚠️",
    "error": "❌",
}

_LEVELS = {
    "info": logging.INFO,
    "step": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class RunJournal:
    """
    Per-run record of human-readable progress lines.

    Passed explicitly to the flow, the balance reader and the controller; the tail ends up in the
    Telegram summary. Each line is also forwarded to `logging`.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger("clawcloud_monitor")
        self._lines: list[str] = []

    def log(self, message: str, level: str = "info") -> None:
        icon = _ICONS.get(level, "•")
        self._lines.append(f"{icon} {message}")
        self._logger.log(_LEVELS.get(level, logging.INFO), message)

    def step(self, message: str) -> None:
        self.log(message, "step")

    def success(self, message: str) -> None:
        self.log(message, "success")

    def warning(self, message: str) -> None:
        self.log(message, "warning")

    def error(self, message: str) -> None:
        self.log(message, "error")

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    def recent(self, limit: int = 6) -> str:
        if limit <= 0:
            return ""
        return "\n".join(self._lines[-limit:])
