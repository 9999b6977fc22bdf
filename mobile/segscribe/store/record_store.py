"""JSON-backed store for sessions, segments and transcription records."""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..audio.types import Segment
from .records import RecordingSession, TranscriptionRecord, TranscriptionStatus

LOGGER = logging.getLogger("segscribe.records")

RecordObserver = Callable[[TranscriptionRecord], None]


class RecordStore:
    """Owns entity state; records are mutated by their own methods, then saved here."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._sessions: Dict[str, RecordingSession] = {}
        self._segments: Dict[str, Segment] = {}
        self._records: Dict[str, TranscriptionRecord] = {}
        self._observers: List[RecordObserver] = []
        self._load()

    # sessions

    def add_session(self, session: RecordingSession) -> None:
        with self._lock:
            self._sessions[session.id] = session
            self._persist()

    def save_session(self, session: RecordingSession) -> None:
        self.add_session(session)

    def get_session(self, session_id: str) -> Optional[RecordingSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def sessions(self) -> List[RecordingSession]:
        with self._lock:
            return sorted(self._sessions.values(), key=lambda item: item.started_at)

    # segments

    def add_segment(self, segment: Segment) -> None:
        with self._lock:
            self._segments[segment.id] = segment
            session = self._sessions.get(segment.session_id)
            if session is not None and segment.id not in session.segment_ids:
                session.segment_ids.append(segment.id)
            self._persist()

    def get_segment(self, segment_id: str) -> Optional[Segment]:
        with self._lock:
            return self._segments.get(segment_id)

    def segments_for_session(self, session_id: str) -> List[Segment]:
        with self._lock:
            items = [seg for seg in self._segments.values() if seg.session_id == session_id]
        return sorted(items, key=lambda seg: seg.start_offset)

    # transcription records

    def get_record(self, segment_id: str) -> Optional[TranscriptionRecord]:
        with self._lock:
            return self._records.get(segment_id)

    def ensure_record(self, segment_id: str) -> Tuple[TranscriptionRecord, bool]:
        with self._lock:
            record = self._records.get(segment_id)
            if record is not None:
                return record, False
            record = TranscriptionRecord(segment_id=segment_id)
            self._records[segment_id] = record
            self._persist()
        return record, True

    def save_record(self, record: TranscriptionRecord) -> None:
        with self._lock:
            self._records[record.segment_id] = record
            self._persist()
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(record)
            except Exception:  # pragma: no cover - observers must not break the pipeline
                LOGGER.exception("Record observer failed for %s", record.segment_id)

    def records_with_status(self, *statuses: TranscriptionStatus) -> List[TranscriptionRecord]:
        wanted = set(statuses)
        with self._lock:
            return [rec for rec in self._records.values() if rec.status in wanted]

    def subscribe(self, observer: RecordObserver) -> Callable[[], None]:
        with self._lock:
            self._observers.append(observer)

        def _unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return _unsubscribe

    # session level views

    def full_transcription_text(self, session_id: str) -> str:
        pieces: List[str] = []
        for segment in self.segments_for_session(session_id):
            record = self.get_record(segment.id)
            if record and record.status is TranscriptionStatus.COMPLETED and record.text:
                pieces.append(record.text.strip())
        return " ".join(piece for piece in pieces if piece)

    def transcription_progress(self, session_id: str) -> float:
        segments = self.segments_for_session(session_id)
        if not segments:
            return 0.0
        done = sum(
            1
            for seg in segments
            if (rec := self.get_record(seg.id)) and rec.status is TranscriptionStatus.COMPLETED
        )
        return done / len(segments)

    # persistence

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning("Record store %s unreadable, starting empty: %s", self.path, exc)
            return
        self._sessions = {item.id: item for item in _parse(raw.get("sessions"), RecordingSession.from_dict)}
        self._segments = {item.id: item for item in _parse(raw.get("segments"), Segment.from_dict)}
        self._records = {
            item.segment_id: item for item in _parse(raw.get("records"), TranscriptionRecord.from_dict)
        }

    def _persist(self) -> None:
        payload = {
            "sessions": [item.to_dict() for item in self._sessions.values()],
            "segments": [item.to_dict() for item in self._segments.values()],
            "records": [item.to_dict() for item in self._records.values()],
        }
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, self.path)


def _parse(items: Iterable | None, factory):
    parsed = []
    for item in items or []:
        try:
            parsed.append(factory(item))
        except (KeyError, TypeError, ValueError) as exc:
            LOGGER.warning("Skipping unreadable stored entry: %s", exc)
    return parsed


__all__ = ["RecordStore"]
