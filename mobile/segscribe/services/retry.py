"""
Retry controller and job runner.

A job moves through tagged phases: remote-retrying, then local-fallback, then
terminal. The offline short-circuit leaves the remote phase as deferred
without touching the backoff schedule.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Optional

from ..audio.types import Segment
from ..errors import ErrorKind, LocalTranscriptionError, OfflineError, TranscriptionError
from ..metrics import FALLBACK_INVOCATIONS, JOB_DURATION, TRANSCRIPTION_RESULTS
from ..store.record_store import RecordStore
from ..store.records import JobPhase, RecognitionBackend, TranscriptionRecord
from .fallback import LocalFallbackEngine
from .logger import LogBuffer

LOGGER = logging.getLogger("segscribe.retry")

REMOTE_CONFIDENCE = 1.0


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after a failed attempt with the given zero-based index."""
    return float(2**attempt)


class RetryController:
    def __init__(
        self,
        client,
        *,
        max_attempts: int = 5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.max_attempts = max_attempts
        self.sleep = sleep

    def run(
        self,
        audio: bytes,
        filename: str,
        *,
        budget: Optional[int] = None,
        segment_id: Optional[str] = None,
        on_failure: Optional[Callable[[TranscriptionError], None]] = None,
    ) -> str:
        """Attempt the remote call up to ``budget`` times with exponential backoff.

        Raises:
            OfflineError: connectivity is absent; no backoff slot is consumed
            TranscriptionError: a non-retryable error, or exhausted-retries
        """
        attempts = self.max_attempts if budget is None else min(budget, self.max_attempts)
        if attempts <= 0:
            raise TranscriptionError(
                ErrorKind.EXHAUSTED_RETRIES, "Remote retry budget already spent", retryable=False
            )
        for attempt in range(attempts):
            try:
                return self.client.transcribe(audio, filename, segment_id=segment_id)
            except OfflineError:
                raise
            except TranscriptionError as exc:
                if on_failure is not None:
                    on_failure(exc)
                if not exc.retryable:
                    raise
                if attempt == attempts - 1:
                    raise TranscriptionError(
                        ErrorKind.EXHAUSTED_RETRIES,
                        f"Gave up after {attempts} attempts: {exc.message}",
                        retryable=False,
                    ) from exc
                delay = backoff_delay(attempt)
                LOGGER.info("Attempt %d failed: %s. Retrying in %.0fs", attempt + 1, exc.message, delay)
                self.sleep(delay)
        raise TranscriptionError(ErrorKind.EXHAUSTED_RETRIES, "Remote attempts exhausted", retryable=False)


class TranscriptionJobRunner:
    """Drives one segment end-to-end and writes the outcome to its record."""

    def __init__(
        self,
        records: RecordStore,
        retry: RetryController,
        fallback: LocalFallbackEngine,
        *,
        logger: LogBuffer | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.records = records
        self.retry = retry
        self.fallback = fallback
        self.logger = logger or LogBuffer()
        self.clock = clock

    def run(self, segment: Segment) -> JobPhase:
        record, _ = self.records.ensure_record(segment.id)
        record.mark_processing()
        self.records.save_record(record)
        started = self.clock()
        short_id = segment.id[:6]

        def _failed_attempt(exc: TranscriptionError) -> None:
            record.record_failed_attempt(exc.message)
            self.records.save_record(record)

        phase = JobPhase.REMOTE_RETRYING
        remote_error: Optional[TranscriptionError] = None
        try:
            audio = self._load(segment)
            text = self.retry.run(
                audio,
                Path(segment.path).name,
                budget=record.remaining_attempts,
                segment_id=segment.id,
                on_failure=_failed_attempt,
            )
        except OfflineError as exc:
            record.mark_deferred(exc.message)
            self.records.save_record(record)
            self.logger.add(f"Segment {short_id} deferred: {exc.message}")
            return JobPhase.DEFERRED
        except TranscriptionError as exc:
            if exc.kind is ErrorKind.LOAD_FAILURE:
                _failed_attempt(exc)
            remote_error = exc
            phase = JobPhase.LOCAL_FALLBACK
        else:
            record.mark_completed(text, REMOTE_CONFIDENCE, RecognitionBackend.REMOTE, self._elapsed(started))
            self.records.save_record(record)
            self._finish(record, started)
            self.logger.add(f"Segment {short_id} transcribed remotely")
            return JobPhase.TERMINAL

        self.logger.add(f"Segment {short_id} switching to local transcription ({remote_error.kind.value})")
        self._run_fallback(segment, record, remote_error, started)
        return JobPhase.TERMINAL

    def _run_fallback(
        self,
        segment: Segment,
        record: TranscriptionRecord,
        remote_error: TranscriptionError,
        started: float,
    ) -> None:
        try:
            result = self.fallback.transcribe(Path(segment.path))
        except LocalTranscriptionError as exc:
            FALLBACK_INVOCATIONS.labels(outcome=exc.kind.value).inc()
            record.mark_failed(
                f"Both remote and local transcription failed: {remote_error.message}; {exc.message}"
            )
            self.logger.add(f"Segment {segment.id[:6]} failed: {record.error_message}", logging.WARNING)
        else:
            FALLBACK_INVOCATIONS.labels(outcome=result.strategy).inc()
            record.mark_completed(
                result.text, result.confidence, RecognitionBackend.LOCAL, self._elapsed(started)
            )
            self.logger.add(f"Segment {segment.id[:6]} transcribed locally ({result.strategy})")
        self.records.save_record(record)
        self._finish(record, started)

    def _load(self, segment: Segment) -> bytes:
        try:
            return Path(segment.path).read_bytes()
        except OSError as exc:
            raise TranscriptionError(
                ErrorKind.LOAD_FAILURE, f"Could not load audio file: {exc}", retryable=False
            ) from exc

    def _elapsed(self, started: float) -> float:
        return max(0.0, self.clock() - started)

    def _finish(self, record: TranscriptionRecord, started: float) -> None:
        JOB_DURATION.observe(self._elapsed(started))
        TRANSCRIPTION_RESULTS.labels(backend=record.backend.value, status=record.status.value).inc()


__all__ = ["REMOTE_CONFIDENCE", "RetryController", "TranscriptionJobRunner", "backoff_delay"]
