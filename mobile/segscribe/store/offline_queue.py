"""Persistent set of segment ids waiting for connectivity."""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, List

from ..metrics import OFFLINE_QUEUE_SIZE

LOGGER = logging.getLogger("segscribe.offline_queue")


class OfflineQueueStore:
    """Durable, idempotent id set. Every mutation rewrites the backing file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        # dict keys keep insertion order so re-enqueue follows deferral order
        self._ids: Dict[str, None] = dict.fromkeys(self._load())
        OFFLINE_QUEUE_SIZE.set(len(self._ids))

    def add(self, segment_id: str) -> bool:
        with self._lock:
            if segment_id in self._ids:
                return False
            self._ids[segment_id] = None
            self._persist()
            return True

    def remove(self, segment_id: str) -> bool:
        with self._lock:
            if segment_id not in self._ids:
                return False
            del self._ids[segment_id]
            self._persist()
            return True

    def all(self) -> List[str]:
        with self._lock:
            return list(self._ids)

    def clear(self) -> None:
        with self._lock:
            self._ids = {}
            self._persist()

    def __contains__(self, segment_id: object) -> bool:
        with self._lock:
            return segment_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)

    def _load(self) -> List[str]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning("Offline queue at %s unreadable, starting empty: %s", self.path, exc)
            return []
        if not isinstance(raw, list):
            return []
        return [str(item) for item in raw]

    def _persist(self) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(list(self._ids), ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, self.path)
        OFFLINE_QUEUE_SIZE.set(len(self._ids))


__all__ = ["OfflineQueueStore"]
