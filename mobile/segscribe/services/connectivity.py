"""Connectivity monitor that re-injects offline-deferred segments on reconnect."""

from __future__ import annotations

import threading
from typing import Callable, Optional

from ..audio.types import Segment
from ..store.offline_queue import OfflineQueueStore
from .logger import LogBuffer


class NetworkMonitor:
    """Tracks online/offline transitions and debounces the offline -> online edge.

    Transitions arrive either from ``update`` (pushed by the host) or from the
    optional probe loop. Records are never touched here; re-injection goes
    through the ``enqueue`` callable only.
    """

    def __init__(
        self,
        offline_queue: OfflineQueueStore,
        resolve: Callable[[str], Optional[Segment]],
        enqueue: Callable[[Segment], bool],
        *,
        probe: Optional[Callable[[], bool]] = None,
        debounce: float = 2.0,
        probe_interval: float = 5.0,
        logger: LogBuffer | None = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ) -> None:
        self.offline_queue = offline_queue
        self.resolve = resolve
        self.enqueue = enqueue
        self.probe = probe
        self.debounce = debounce
        self.probe_interval = probe_interval
        self.logger = logger or LogBuffer()
        self.timer_factory = timer_factory
        self._lock = threading.Lock()
        self._online: Optional[bool] = None
        self._generation = 0
        self._debounce_timer: Optional[threading.Timer] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def is_online(self) -> bool:
        """Optimistic until the first observation arrives."""
        with self._lock:
            return self._online is not False

    def start(self) -> None:
        if self.probe is None or (self._thread and self._thread.is_alive()):
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._probe_loop, daemon=True, name="network-monitor")
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        with self._lock:
            self._cancel_debounce()
        if self._thread:
            self._thread.join(timeout=2)
            self._thread = None

    def report_offline(self) -> None:
        self.update(False)

    def update(self, online: bool) -> None:
        with self._lock:
            if online == self._online:
                return
            previous, self._online = self._online, online
            self._cancel_debounce()
            if not online:
                self.logger.add("Network connection lost")
                return
            if previous is None and len(self.offline_queue) == 0:
                return
            self._generation += 1
            timer = self.timer_factory(self.debounce, self._debounced_reconnect, args=(self._generation,))
            timer.daemon = True
            self._debounce_timer = timer
        self.logger.add(f"Network available; re-queueing deferred segments in {self.debounce:g}s")
        timer.start()

    def requeue_pending(self) -> int:
        """Re-enqueue every deferred id; an id leaves the store only after its enqueue succeeded."""
        requeued = 0
        for segment_id in self.offline_queue.all():
            segment = self.resolve(segment_id)
            if segment is None:
                self.logger.add(f"Dropping unknown offline entry {segment_id[:6]}")
                self.offline_queue.remove(segment_id)
                continue
            try:
                accepted = self.enqueue(segment)
            except Exception as exc:
                self.logger.add(f"Re-queue failed for {segment_id[:6]}: {exc}")
                continue
            if not accepted:
                self.logger.add(f"Segment {segment_id[:6]} not accepted yet; kept for the next reconnect")
                continue
            self.offline_queue.remove(segment_id)
            requeued += 1
        if requeued:
            self.logger.add(f"Re-queued {requeued} deferred segment(s)")
        return requeued

    def _debounced_reconnect(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._online is not True:
                return
            self._debounce_timer = None
        self.requeue_pending()

    def _cancel_debounce(self) -> None:
        if self._debounce_timer is not None:
            self._debounce_timer.cancel()
            self._debounce_timer = None
        self._generation += 1

    def _probe_loop(self) -> None:
        while not self._stop.is_set():
            try:
                online = bool(self.probe())
            except Exception as exc:
                self.logger.add(f"Connectivity probe failed: {exc}")
                online = False
            self.update(online)
            self._stop.wait(self.probe_interval)


__all__ = ["NetworkMonitor"]
