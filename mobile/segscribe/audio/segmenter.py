"""
Timer-driven segmenter: turns a continuous buffer stream into disk-backed
segments of a nominal duration.

Segment boundaries come from a periodic trigger that is independent of buffer
arrival. Every event (buffer, timer, interruption, route change, stop) is a
method on Segmenter and runs under one re-entrant lock, so a boundary always
closes the active artifact before the next one is opened.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, List, Optional

import numpy as np

from ..errors import CaptureError
from ..metrics import SEGMENTS_FINALIZED
from ..services.logger import LogBuffer
from .artifact import ArtifactFactory, SoundFileArtifact
from .levels import compute_rms
from .types import Segment, SegmenterState


class SegmentTimer:
    """Repeating daemon timer. Each start() bumps the generation so stale fires can be ignored."""

    def __init__(self, interval: float, callback: Callable[[int], None]) -> None:
        self.interval = float(interval)
        self.callback = callback
        self._lock = threading.Lock()
        self._generation = 0
        self._stop: Optional[threading.Event] = None

    @property
    def generation(self) -> int:
        return self._generation

    def start(self, first_delay: float | None = None) -> int:
        delay = self.interval if first_delay is None else max(0.0, float(first_delay))
        with self._lock:
            if self._stop is not None:
                self._stop.set()
            self._generation += 1
            generation = self._generation
            stop = threading.Event()
            self._stop = stop
        thread = threading.Thread(
            target=self._run, args=(generation, stop, delay), daemon=True, name="segment-timer"
        )
        thread.start()
        return generation

    def cancel(self) -> None:
        # no join: the callback may be waiting on the segmenter lock held by our caller
        with self._lock:
            if self._stop is not None:
                self._stop.set()
                self._stop = None
            self._generation += 1

    def _run(self, generation: int, stop: threading.Event, delay: float) -> None:
        while not stop.wait(delay):
            self.callback(generation)
            delay = self.interval


class Segmenter:
    def __init__(
        self,
        artifacts: ArtifactFactory,
        on_segment: Callable[[Segment], None],
        *,
        session_id: str,
        segment_seconds: float = 30.0,
        capture=None,
        logger: LogBuffer | None = None,
        level_callback: Callable[[float], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        auto_timer: bool = True,
    ) -> None:
        self.artifacts = artifacts
        self.on_segment = on_segment
        self.session_id = session_id
        self.segment_seconds = float(segment_seconds)
        self.capture = capture
        self.logger = logger or LogBuffer()
        self.level_callback = level_callback
        self.on_error = on_error
        self.clock = clock
        self.level = 0.0
        self.last_error: Optional[Exception] = None

        self._lock = threading.RLock()
        self._state = SegmenterState.STOPPED
        self._artifact: Optional[SoundFileArtifact] = None
        self._index = 0
        self._segment_start = 0.0
        self._started_at = 0.0
        self._paused_total = 0.0
        self._paused_since: Optional[float] = None
        self._timer = SegmentTimer(self.segment_seconds, self._timer_fired) if auto_timer else None

    @property
    def state(self) -> SegmenterState:
        return self._state

    @property
    def segment_count(self) -> int:
        return self._index

    def elapsed(self) -> float:
        """Seconds of capture since start, excluding interruption pauses."""
        if self._state is SegmenterState.STOPPED and self._started_at == 0.0:
            return 0.0
        now = self.clock()
        paused = self._paused_total
        if self._paused_since is not None:
            paused += now - self._paused_since
        return max(0.0, now - self._started_at - paused)

    # events

    def start(self) -> None:
        with self._lock:
            if self._state is not SegmenterState.STOPPED:
                return
            self._artifact = self.artifacts.create()
            try:
                self._open_tap()
            except CaptureError:
                self._artifact.discard()
                self._artifact = None
                raise
            self._index = 0
            self._segment_start = 0.0
            self._paused_total = 0.0
            self._paused_since = None
            self._started_at = self.clock()
            self._state = SegmenterState.CAPTURING
            self._start_timer()
        self.logger.add(f"Recording started ({int(self.segment_seconds)}s segments)")

    def on_buffer(self, pcm: np.ndarray) -> None:
        level = compute_rms(pcm)
        failure: Optional[Exception] = None
        with self._lock:
            if self._state is not SegmenterState.CAPTURING or self._artifact is None:
                return
            self.level = level
            try:
                self._artifact.write(pcm)
            except (RuntimeError, OSError) as exc:
                failure = CaptureError(f"Could not write audio buffer: {exc}")
        if failure is not None:
            self._halt(failure)
            return
        if self.level_callback:
            self.level_callback(level)

    def on_segment_timer(self) -> Optional[Segment]:
        """Segment boundary: finalize the active artifact (or skip it) and open the next."""
        emitted: List[Segment] = []
        try:
            with self._lock:
                if self._state is not SegmenterState.CAPTURING:
                    return None
                self._rotate(emitted)
        except CaptureError as exc:
            self._emit(emitted)
            self._halt(exc)
            return emitted[0] if emitted else None
        self._emit(emitted)
        return emitted[0] if emitted else None

    def interruption_began(self) -> None:
        with self._lock:
            if self._state is not SegmenterState.CAPTURING:
                return
            self._cancel_timer()
            self._close_tap()
            self._paused_since = self.clock()
            self._state = SegmenterState.PAUSED_BY_INTERRUPTION
        self.logger.add("Recording paused by interruption")

    def interruption_ended(self, should_resume: bool = True) -> None:
        emitted: List[Segment] = []
        try:
            with self._lock:
                if self._state is not SegmenterState.PAUSED_BY_INTERRUPTION:
                    return
                if not should_resume:
                    self.logger.add("Interruption ended without resume; still paused")
                    return
                if self._paused_since is not None:
                    self._paused_total += self.clock() - self._paused_since
                    self._paused_since = None
                self._open_tap()
                self._state = SegmenterState.CAPTURING
                remaining = self.segment_seconds - (self.elapsed() - self._segment_start)
                if remaining <= 0:
                    self._rotate(emitted)
                    remaining = self.segment_seconds
                self._start_timer(remaining)
        except CaptureError as exc:
            self._emit(emitted)
            self._halt(exc)
            raise
        self._emit(emitted)
        self.logger.add("Recording resumed")

    def route_changed(self) -> None:
        """Input route/format change: reopen the tap without cutting a segment unless one is due."""
        emitted: List[Segment] = []
        try:
            with self._lock:
                if self._state is not SegmenterState.CAPTURING:
                    return
                self._close_tap()
                if self.elapsed() - self._segment_start >= self.segment_seconds:
                    self._rotate(emitted)
                    self._start_timer()
                self._open_tap()
        except CaptureError as exc:
            self._emit(emitted)
            self._halt(exc)
            raise
        self._emit(emitted)
        self.logger.add("Audio route changed; capture tap rebuilt")

    def stop(self) -> Optional[Segment]:
        """Stop capture and finalize-or-skip the in-flight segment before returning."""
        emitted: List[Segment] = []
        with self._lock:
            if self._state is SegmenterState.STOPPED:
                return None
            self._cancel_timer()
            self._close_tap()
            if self._paused_since is not None:
                self._paused_total += self.clock() - self._paused_since
                self._paused_since = None
            self._finalize_current(emitted)
            self._state = SegmenterState.STOPPED
        self._emit(emitted)
        self.level = 0.0
        self.logger.add("Recording stopped")
        return emitted[0] if emitted else None

    # internals, called with the lock held

    def _rotate(self, emitted: List[Segment]) -> None:
        self._finalize_current(emitted)
        self._artifact = self.artifacts.create()

    def _finalize_current(self, emitted: List[Segment]) -> None:
        artifact, self._artifact = self._artifact, None
        if artifact is None:
            return
        frames = artifact.close()
        boundary = self.elapsed()
        start_offset = self._segment_start
        self._segment_start = boundary
        if frames <= 0:
            artifact.discard()
            SEGMENTS_FINALIZED.labels(outcome="skipped").inc()
            self.logger.add("Skipping segment finalization: no audio written")
            return
        span = boundary - start_offset
        if span <= 0:
            span = frames / float(artifact.sample_rate)
        segment = Segment(
            session_id=self.session_id,
            index=self._index,
            start_offset=start_offset,
            duration=min(self.segment_seconds, span),
            path=str(artifact.path),
            sample_rate=artifact.sample_rate,
            channels=artifact.channels,
            file_size_bytes=artifact.size_bytes(),
        )
        self._index += 1
        SEGMENTS_FINALIZED.labels(outcome="emitted").inc()
        emitted.append(segment)

    def _open_tap(self) -> None:
        if self.capture is not None:
            self.capture.start(self.on_buffer)

    def _close_tap(self) -> None:
        if self.capture is not None:
            self.capture.stop()

    def _start_timer(self, first_delay: float | None = None) -> None:
        if self._timer is not None:
            self._timer.start(first_delay)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()

    def _timer_fired(self, generation: int) -> None:
        if self._timer is None or generation != self._timer.generation:
            return
        self.on_segment_timer()

    # outside the lock

    def _emit(self, segments: List[Segment]) -> None:
        for segment in segments:
            self.logger.add(
                f"Segment {segment.index} finalized ({segment.duration:.1f}s, {segment.file_size_bytes} bytes)"
            )
            try:
                self.on_segment(segment)
            except Exception as exc:  # pragma: no cover - consumer bug must not stop capture
                self.logger.add(f"Segment handler failed for {segment.id[:6]}: {exc}")

    def _halt(self, exc: Exception) -> None:
        emitted: List[Segment] = []
        with self._lock:
            if self._state is SegmenterState.STOPPED:
                return
            self._cancel_timer()
            self._close_tap()
            self._paused_since = None
            self._finalize_current(emitted)
            self._state = SegmenterState.STOPPED
            self.last_error = exc
        self._emit(emitted)
        self.logger.add(f"Recording halted: {exc}")
        if self.on_error:
            self.on_error(exc)


__all__ = ["SegmentTimer", "Segmenter"]
