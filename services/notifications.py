"""User-facing notification sinks (toasts) for offline and sync events."""
from __future__ import annotations

import logging
from typing import List, Tuple


LEVELS = ("info", "success", "warning", "error")

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class Notifier:
    """Fire-and-forget sink. Subclasses implement :meth:`_show`."""

    logger = logging.getLogger("hsse.notifications")

    def notify(self, level: str, message: str) -> None:
        if level not in LEVELS:
            raise ValueError(f"Unsupported notification level: {level}")
        try:
            self._show(level, message)
        except Exception as exc:
            self.logger.warning("Notification sink failed (%s): %s", level, exc)

    def info(self, message: str) -> None:
        self.notify("info", message)

    def success(self, message: str) -> None:
        self.notify("success", message)

    def warning(self, message: str) -> None:
        self.notify("warning", message)

    def error(self, message: str) -> None:
        self.notify("error", message)

    def _show(self, level: str, message: str) -> None:
        raise NotImplementedError


class LogNotifier(Notifier):
    def _show(self, level: str, message: str) -> None:
        self.logger.log(_LOG_LEVELS[level], "[%s] %s", level, message)


class MemoryNotifier(Notifier):
    """Keeps every notification; used by headless runs and tests."""

    def __init__(self) -> None:
        self.messages: List[Tuple[str, str]] = []

    def _show(self, level: str, message: str) -> None:
        self.messages.append((level, message))

    def of_level(self, level: str) -> List[str]:
        return [message for lvl, message in self.messages if lvl == level]


__all__ = ["LEVELS", "LogNotifier", "MemoryNotifier", "Notifier"]
