"""Transcription records, recording sessions and their status machines."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import InvalidTransitionError

MAX_RETRIES = 5


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TranscriptionStatus(str, Enum):
    PENDING = "pending"
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RecognitionBackend(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


class JobPhase(str, Enum):
    """Where a single transcription job currently stands."""

    REMOTE_RETRYING = "remote-retrying"
    LOCAL_FALLBACK = "local-fallback"
    DEFERRED = "deferred"
    TERMINAL = "terminal"


class RecordingState(str, Enum):
    STOPPED = "stopped"
    RECORDING = "recording"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


_S = TranscriptionStatus

# Edges the pipeline may take on its own. Explicit re-queues by a caller
# additionally allow failed->queued past the retry limit and completed->queued.
_AUTOMATIC_EDGES = {
    _S.PENDING: {_S.QUEUED},
    _S.QUEUED: {_S.PROCESSING},
    _S.PROCESSING: {_S.COMPLETED, _S.FAILED, _S.QUEUED},
    _S.FAILED: {_S.QUEUED},
    _S.COMPLETED: set(),
}


@dataclass(slots=True)
class TranscriptionRecord:
    segment_id: str
    text: str = ""
    confidence: float = 0.0
    status: TranscriptionStatus = TranscriptionStatus.PENDING
    backend: RecognitionBackend = RecognitionBackend.REMOTE
    retry_count: int = 0
    error_message: Optional[str] = None
    processing_time: Optional[float] = None
    max_retries: int = MAX_RETRIES
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @property
    def can_retry(self) -> bool:
        return self.status is TranscriptionStatus.FAILED and self.retry_count < self.max_retries

    @property
    def remaining_attempts(self) -> int:
        return max(0, self.max_retries - self.retry_count)

    def _move(self, target: TranscriptionStatus) -> None:
        if target not in _AUTOMATIC_EDGES[self.status]:
            raise InvalidTransitionError(self.status.value, target.value)
        self.status = target
        self.updated_at = _now()

    def mark_queued(self, *, explicit: bool = False) -> None:
        if self.status is TranscriptionStatus.FAILED and not explicit and not self.can_retry:
            raise InvalidTransitionError(self.status.value, TranscriptionStatus.QUEUED.value)
        if explicit and self.status in (TranscriptionStatus.COMPLETED, TranscriptionStatus.FAILED):
            self.status = TranscriptionStatus.QUEUED
            self.updated_at = _now()
            return
        self._move(TranscriptionStatus.QUEUED)

    def mark_processing(self) -> None:
        self._move(TranscriptionStatus.PROCESSING)

    def mark_deferred(self, message: str) -> None:
        """Return to queued while waiting for connectivity."""
        self._move(TranscriptionStatus.QUEUED)
        self.error_message = message

    def record_failed_attempt(self, message: str) -> None:
        self.retry_count += 1
        self.error_message = message
        self.updated_at = _now()

    def mark_completed(
        self,
        text: str,
        confidence: float,
        backend: RecognitionBackend,
        processing_time: float | None = None,
    ) -> None:
        self._move(TranscriptionStatus.COMPLETED)
        self.text = text
        self.confidence = max(0.0, min(1.0, float(confidence)))
        self.backend = backend
        self.processing_time = processing_time
        self.error_message = None
        if backend is RecognitionBackend.REMOTE:
            self.retry_count = 0

    def mark_failed(self, message: str) -> None:
        self._move(TranscriptionStatus.FAILED)
        self.error_message = message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "segment_id": self.segment_id,
            "text": self.text,
            "confidence": self.confidence,
            "status": self.status.value,
            "backend": self.backend.value,
            "retry_count": self.retry_count,
            "error_message": self.error_message,
            "processing_time": self.processing_time,
            "max_retries": self.max_retries,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "TranscriptionRecord":
        return cls(
            id=str(raw["id"]),
            segment_id=str(raw["segment_id"]),
            text=str(raw.get("text", "")),
            confidence=float(raw.get("confidence", 0.0)),
            status=TranscriptionStatus(raw.get("status", "pending")),
            backend=RecognitionBackend(raw.get("backend", "remote")),
            retry_count=int(raw.get("retry_count", 0)),
            error_message=raw.get("error_message"),
            processing_time=raw.get("processing_time"),
            max_retries=int(raw.get("max_retries", MAX_RETRIES)),
            created_at=datetime.fromisoformat(raw["created_at"]),
            updated_at=datetime.fromisoformat(raw["updated_at"]),
        )


@dataclass(slots=True)
class RecordingSession:
    title: Optional[str] = None
    state: RecordingState = RecordingState.STOPPED
    segment_ids: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=_now)
    ended_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_recording(self) -> bool:
        return self.state is RecordingState.RECORDING

    def total_duration(self, now: datetime | None = None) -> float:
        end = self.ended_at or now or _now()
        return (end - self.started_at).total_seconds()

    def complete(self) -> None:
        self.ended_at = _now()
        self.state = RecordingState.COMPLETED

    def fail(self) -> None:
        self.ended_at = self.ended_at or _now()
        self.state = RecordingState.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "state": self.state.value,
            "segment_ids": list(self.segment_ids),
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "RecordingSession":
        ended = raw.get("ended_at")
        return cls(
            id=str(raw["id"]),
            title=raw.get("title"),
            state=RecordingState(raw.get("state", "stopped")),
            segment_ids=[str(item) for item in raw.get("segment_ids", [])],
            started_at=datetime.fromisoformat(raw["started_at"]),
            ended_at=datetime.fromisoformat(ended) if ended else None,
        )


__all__ = [
    "JobPhase",
    "MAX_RETRIES",
    "RecognitionBackend",
    "RecordingSession",
    "RecordingState",
    "TranscriptionRecord",
    "TranscriptionStatus",
]
