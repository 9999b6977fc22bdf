"""Single-worker FIFO queue that serializes transcription jobs."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Optional, Set

from ..audio.types import Segment
from ..errors import InvalidTransitionError
from ..store.record_store import RecordStore
from ..store.records import TranscriptionStatus
from .logger import LogBuffer
from .retry import TranscriptionJobRunner


class TranscriptionScheduler:
    """Starts a worker thread when work arrives and lets it exit once the queue drains."""

    def __init__(
        self,
        records: RecordStore,
        runner: TranscriptionJobRunner,
        *,
        logger: LogBuffer | None = None,
        inter_job_delay: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.records = records
        self.runner = runner
        self.logger = logger or LogBuffer()
        self.inter_job_delay = inter_job_delay
        self.sleep = sleep
        self._lock = threading.Lock()
        self._queue: Deque[Segment] = deque()
        self._pending: Set[str] = set()
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._idle = threading.Event()
        self._idle.set()

    @property
    def is_processing(self) -> bool:
        with self._lock:
            return self._running

    @property
    def queue_size(self) -> int:
        with self._lock:
            return len(self._queue)

    def is_pending(self, segment_id: str) -> bool:
        with self._lock:
            return segment_id in self._pending

    def enqueue(self, segment: Segment, *, explicit: bool = False) -> bool:
        """Queue a segment for transcription. Returns False when nothing was queued.

        Segments already waiting or in flight are not queued twice. Completed
        and terminally failed records are only re-queued when ``explicit``.
        Record updates (and their observers) run outside the scheduler lock.
        """
        with self._lock:
            if segment.id in self._pending:
                return False
            self._pending.add(segment.id)
        try:
            record, created = self._prepare_record(segment, explicit)
        except Exception:
            with self._lock:
                self._pending.discard(segment.id)
            raise
        if record is None:
            with self._lock:
                self._pending.discard(segment.id)
            return False
        with self._lock:
            self._queue.append(segment)
            self._idle.clear()
            if not self._running:
                self._running = True
                self._thread = threading.Thread(target=self._run, daemon=True, name="transcription-worker")
                self._thread.start()
        if created:
            self.logger.add(f"Segment {segment.id[:6]} queued for transcription")
        return True

    def _prepare_record(self, segment: Segment, explicit: bool):
        record, created = self.records.ensure_record(segment.id)
        if record.status is TranscriptionStatus.COMPLETED and not explicit:
            return None, created
        if record.status is not TranscriptionStatus.QUEUED:
            try:
                record.mark_queued(explicit=explicit)
            except InvalidTransitionError as exc:
                self.logger.add(f"Segment {segment.id[:6]} not re-queued: {exc}", logging.WARNING)
                return None, created
        self.records.save_record(record)
        return record, created

    def wait_idle(self, timeout: float | None = None) -> bool:
        return self._idle.wait(timeout)

    def _run(self) -> None:
        first = True
        while True:
            with self._lock:
                if not self._queue:
                    self._running = False
                    self._thread = None
                    self._idle.set()
                    return
                segment = self._queue.popleft()
            # the delay separates consecutive jobs; none after the last one
            if not first:
                self.sleep(self.inter_job_delay)
            first = False
            try:
                self.runner.run(segment)
            except Exception as exc:
                self._contain(segment, exc)
            finally:
                with self._lock:
                    self._pending.discard(segment.id)

    def _contain(self, segment: Segment, exc: Exception) -> None:
        """Keep a failing job from taking the worker down; record what happened."""
        self.logger.add(f"Transcription job {segment.id[:6]} crashed: {exc}", logging.ERROR)
        record = self.records.get_record(segment.id)
        if record is None or record.status is not TranscriptionStatus.PROCESSING:
            return
        try:
            record.mark_failed(f"Unexpected error: {exc}")
            self.records.save_record(record)
        except Exception as save_exc:  # pragma: no cover - storage failure while reporting
            self.logger.add(f"Could not record failure for {segment.id[:6]}: {save_exc}", logging.ERROR)


__all__ = ["TranscriptionScheduler"]
