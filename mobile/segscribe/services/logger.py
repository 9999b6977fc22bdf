"""Bounded activity log shared by the recorder and the background workers."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import List

LOGGER = logging.getLogger("segscribe")


class LogBuffer:
    def __init__(self, maxlen: int = 200, logger: logging.Logger | None = None) -> None:
        self._lines: deque[str] = deque(maxlen=maxlen)
        self._lock = threading.Lock()
        self._logger = logger or LOGGER

    def add(self, message: str, level: int = logging.INFO) -> None:
        stamp = time.strftime("%H:%M:%S")
        with self._lock:
            self._lines.append(f"[{stamp}] {message}")
        self._logger.log(level, message)

    def lines(self) -> List[str]:
        with self._lock:
            return list(self._lines)

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging for scripts.

    Args:
        verbose: If True, enable DEBUG level logging; otherwise INFO level
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


__all__ = ["LogBuffer", "configure_logging"]
