"""Headless recorder application: wires capture, storage and transcription together."""

from __future__ import annotations

import logging
import shutil
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional

import httpx

from .audio.artifact import ArtifactFactory
from .audio.capture import SoundDeviceCapture
from .audio.converter import AudioConverter
from .audio.segmenter import Segmenter
from .audio.types import AudioQuality, Segment
from .config import PipelineSettings, get_settings
from .errors import CaptureError, InsufficientStorageError
from .services.connectivity import NetworkMonitor
from .services.fallback import LocalFallbackEngine
from .services.local_engine import WhisperRecognizer
from .services.logger import LogBuffer
from .services.network import RemoteTranscriptionClient
from .services.retry import RetryController, TranscriptionJobRunner
from .services.scheduler import TranscriptionScheduler
from .store.offline_queue import OfflineQueueStore
from .store.record_store import RecordStore
from .store.records import RecordingSession, RecordingState, TranscriptionStatus
from .store.settings_store import SettingsStore

LOGGER = logging.getLogger("segscribe.app")


def has_sufficient_storage(path: Path, minimum_bytes: int) -> bool:
    try:
        available = shutil.disk_usage(path).free
    except OSError as exc:
        LOGGER.warning("Failed to check available storage: %s", exc)
        return True
    LOGGER.debug("Available space: %d MB", available // (1024 * 1024))
    return available > minimum_bytes


class RecorderApp:
    def __init__(
        self,
        settings: PipelineSettings | None = None,
        *,
        logger: LogBuffer | None = None,
        http_client: httpx.Client | None = None,
        recognizer=None,
        converter: AudioConverter | None = None,
        capture_factory: Callable[[int, int], object] | None = None,
        probe: Callable[[], bool] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        auto_timer: bool = True,
    ) -> None:
        self.settings = settings or get_settings()
        self.logger = logger or LogBuffer()
        self.auto_timer = auto_timer
        data_dir = self.settings.data_path
        data_dir.mkdir(parents=True, exist_ok=True)

        self.settings_store = SettingsStore(self.settings.settings_path)
        self.offline_queue = OfflineQueueStore(self.settings.offline_queue_path)
        self.records = RecordStore(self.settings.record_store_path)
        self.capture_factory = capture_factory or (
            lambda rate, channels: SoundDeviceCapture(rate, channels)
        )

        self.monitor = NetworkMonitor(
            self.offline_queue,
            self.records.get_segment,
            self._enqueue,
            probe=probe,
            debounce=self.settings.reconnect_debounce,
            probe_interval=self.settings.probe_interval,
            logger=self.logger,
        )
        self.client = RemoteTranscriptionClient(
            self.settings,
            credentials=self.settings_store,
            offline_queue=self.offline_queue,
            is_online=self.monitor.is_online,
            on_offline=self.monitor.report_offline,
            client=http_client,
        )
        if probe is None:
            self.monitor.probe = lambda: self.client.test_connection(self.settings.probe_url)
        self.fallback = LocalFallbackEngine(
            recognizer or WhisperRecognizer(self.settings),
            converter or AudioConverter(),
            temp_dir=data_dir / "tmp",
        )
        self.runner = TranscriptionJobRunner(
            self.records,
            RetryController(self.client, max_attempts=self.settings.max_attempts, sleep=sleep),
            self.fallback,
            logger=self.logger,
        )
        self.scheduler = TranscriptionScheduler(
            self.records,
            self.runner,
            logger=self.logger,
            inter_job_delay=self.settings.inter_job_delay,
            sleep=sleep,
        )
        self.session: Optional[RecordingSession] = None
        self.segmenter: Optional[Segmenter] = None
        self._lock = threading.Lock()

    # lifecycle

    def start(self) -> int:
        """Start connectivity monitoring and resume work left by a previous run."""
        self.monitor.start()
        return self.resume_pending()

    def shutdown(self) -> None:
        self.stop_recording()
        self.monitor.stop()
        self.client.close()

    @property
    def is_recording(self) -> bool:
        return self.session is not None and self.session.is_recording

    # recording

    def start_recording(self, title: str | None = None) -> RecordingSession:
        with self._lock:
            if self.session is not None and self.session.is_recording:
                return self.session
            if not has_sufficient_storage(self.settings.data_path, self.settings.min_free_bytes):
                self.logger.add("Not enough storage to start recording", logging.WARNING)
                raise InsufficientStorageError("Not enough free storage to start recording")

            prefs = self.settings_store.get()
            quality = AudioQuality(prefs.audio_quality or self.settings.audio_quality)
            session = RecordingSession(title=title)
            self.records.add_session(session)
            artifacts = ArtifactFactory(
                self.settings.segments_dir / session.id, quality, self.settings.channels
            )
            segmenter = Segmenter(
                artifacts,
                self._on_segment,
                session_id=session.id,
                segment_seconds=prefs.segment_seconds or self.settings.segment_seconds,
                capture=self.capture_factory(quality.sample_rate, self.settings.channels),
                logger=self.logger,
                on_error=self._on_capture_error,
                auto_timer=self.auto_timer,
            )
            try:
                segmenter.start()
            except CaptureError:
                session.fail()
                self.records.save_session(session)
                raise
            session.state = RecordingState.RECORDING
            self.records.save_session(session)
            self.session = session
            self.segmenter = segmenter
            return session

    def stop_recording(self) -> Optional[RecordingSession]:
        with self._lock:
            session, segmenter = self.session, self.segmenter
            if session is None or segmenter is None:
                return None
            segmenter.stop()
            if session.state is not RecordingState.ERROR:
                session.complete()
            self.records.save_session(session)
            self.session = None
            self.segmenter = None
            return session

    def interruption_began(self) -> None:
        if self.segmenter is not None and self.session is not None:
            self.segmenter.interruption_began()
            self.session.state = RecordingState.PAUSED
            self.records.save_session(self.session)

    def interruption_ended(self, should_resume: bool = True) -> None:
        if self.segmenter is None or self.session is None:
            return
        self.segmenter.interruption_ended(should_resume)
        if should_resume:
            self.session.state = RecordingState.RECORDING
            self.records.save_session(self.session)

    def route_changed(self) -> None:
        if self.segmenter is not None:
            self.segmenter.route_changed()

    # transcription

    def retry_segment(self, segment_id: str) -> bool:
        """Explicitly re-queue a segment regardless of its current terminal status."""
        segment = self.records.get_segment(segment_id)
        if segment is None:
            return False
        self.offline_queue.remove(segment_id)
        return self.scheduler.enqueue(segment, explicit=True)

    def resume_pending(self) -> int:
        """Re-enqueue records a previous process left queued or processing."""
        resumed = 0
        stale = self.records.records_with_status(TranscriptionStatus.QUEUED, TranscriptionStatus.PROCESSING)
        for record in stale:
            if record.segment_id in self.offline_queue:
                continue
            segment = self.records.get_segment(record.segment_id)
            if segment is not None and self.scheduler.enqueue(segment):
                resumed += 1
        if resumed:
            self.logger.add(f"Resumed {resumed} unfinished transcription(s)")
        return resumed

    def clear_offline_queue(self) -> None:
        self.offline_queue.clear()
        self.logger.add("Offline queue cleared")

    def session_transcript(self, session_id: str) -> str:
        return self.records.full_transcription_text(session_id)

    def session_progress(self, session_id: str) -> float:
        return self.records.transcription_progress(session_id)

    def session_segments(self, session_id: str) -> List[Segment]:
        return self.records.segments_for_session(session_id)

    # callbacks

    def _on_segment(self, segment: Segment) -> None:
        self.records.add_segment(segment)
        self._enqueue(segment)

    def _enqueue(self, segment: Segment) -> bool:
        return self.scheduler.enqueue(segment)

    def _on_capture_error(self, exc: Exception) -> None:
        session = self.session
        if session is not None:
            session.fail()
            self.records.save_session(session)
        self.logger.add(f"Recording failed: {exc}", logging.ERROR)


__all__ = ["RecorderApp", "has_sufficient_storage"]
