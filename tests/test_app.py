import httpx
import numpy as np
import pytest

from mobile.segscribe.app import RecorderApp, has_sufficient_storage
from mobile.segscribe.audio.types import Segment
from mobile.segscribe.config import PipelineSettings
from mobile.segscribe.errors import CaptureError, InsufficientStorageError
from mobile.segscribe.store.records import RecognitionBackend, RecordingState, TranscriptionStatus


class FakeCapture:
    def __init__(self, fail=False):
        self.fail = fail

    def start(self, on_buffer):
        if self.fail:
            raise CaptureError("no input device")

    def stop(self):
        pass


class FakeRecognizer:
    def authorize(self):
        return True

    def transcribe_path(self, path):
        return "local words"


class FakeConverter:
    def to_recognizer_format(self, src, dst):
        raise AssertionError("direct strategy should succeed")


class ImmediateTimer:
    def __init__(self, interval, fn, args=()):
        self.fn = fn
        self.args = args
        self.daemon = True

    def start(self):
        self.fn(*self.args)

    def cancel(self):
        pass


def make_app(tmp_path, handler, *, min_free_bytes=0, capture=None):
    settings = PipelineSettings(
        data_dir=str(tmp_path / "data"),
        audio_quality="low",
        api_key="k",
        language=None,
        transcription_url="https://stt.example.com/v1/audio/transcriptions",
        min_free_bytes=min_free_bytes,
    )
    app = RecorderApp(
        settings,
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        recognizer=FakeRecognizer(),
        converter=FakeConverter(),
        capture_factory=lambda rate, channels: capture or FakeCapture(),
        probe=lambda: True,
        sleep=lambda seconds: None,
        auto_timer=False,
    )
    app.monitor.timer_factory = ImmediateTimer
    return app


def record_one_segment(app):
    session = app.start_recording("meeting")
    app.segmenter.on_buffer(np.full(2205, 0.2, dtype=np.float32))
    app.stop_recording()
    return session


def test_offline_segment_is_deferred_then_requeued(tmp_path):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"text": "hello world"})

    app = make_app(tmp_path, handler)
    app.monitor.update(False)
    session = record_one_segment(app)
    assert app.scheduler.wait_idle(timeout=5)

    [segment] = app.session_segments(session.id)
    record = app.records.get_record(segment.id)
    assert record.status is TranscriptionStatus.QUEUED
    assert record.retry_count == 0
    assert app.offline_queue.all() == [segment.id]
    assert calls == []

    app.monitor.update(True)
    assert app.scheduler.wait_idle(timeout=5)
    record = app.records.get_record(segment.id)
    assert record.status is TranscriptionStatus.COMPLETED
    assert record.backend is RecognitionBackend.REMOTE
    assert app.offline_queue.all() == []
    assert app.session_transcript(session.id) == "hello world"
    assert app.session_progress(session.id) == 1.0
    assert app.records.get_session(session.id).state is RecordingState.COMPLETED


def test_auth_failure_uses_local_recognizer(tmp_path):
    app = make_app(tmp_path, lambda request: httpx.Response(401, text="bad key"))
    session = record_one_segment(app)
    assert app.scheduler.wait_idle(timeout=5)
    [segment] = app.session_segments(session.id)
    record = app.records.get_record(segment.id)
    assert record.status is TranscriptionStatus.COMPLETED
    assert record.backend is RecognitionBackend.LOCAL
    assert record.confidence == 0.9
    assert record.retry_count == 1
    assert app.session_transcript(session.id) == "local words"


def test_retry_segment_requeues_completed_work(tmp_path):
    texts = iter(["first", "second"])
    app = make_app(tmp_path, lambda request: httpx.Response(200, json={"text": next(texts)}))
    session = record_one_segment(app)
    app.scheduler.wait_idle(timeout=5)
    [segment] = app.session_segments(session.id)
    assert app.retry_segment(segment.id) is True
    app.scheduler.wait_idle(timeout=5)
    assert app.session_transcript(session.id) == "second"
    assert app.retry_segment("missing") is False


def test_resume_pending_skips_offline_entries(tmp_path):
    app = make_app(tmp_path, lambda request: httpx.Response(200, json={"text": "resumed"}))
    audio = tmp_path / "leftover.wav"
    audio.write_bytes(b"RIFF")
    stuck = Segment(session_id="old", index=0, start_offset=0.0, duration=30.0, path=str(audio))
    waiting = Segment(session_id="old", index=1, start_offset=30.0, duration=30.0, path=str(audio))
    for segment in (stuck, waiting):
        app.records.add_segment(segment)
        record, _ = app.records.ensure_record(segment.id)
        record.mark_queued()
        app.records.save_record(record)
    stuck_record = app.records.get_record(stuck.id)
    stuck_record.mark_processing()
    app.records.save_record(stuck_record)
    app.offline_queue.add(waiting.id)

    assert app.resume_pending() == 1
    app.scheduler.wait_idle(timeout=5)
    assert app.records.get_record(stuck.id).status is TranscriptionStatus.COMPLETED
    assert app.records.get_record(waiting.id).status is TranscriptionStatus.QUEUED

    app.clear_offline_queue()
    assert len(app.offline_queue) == 0


def test_insufficient_storage_blocks_recording(tmp_path):
    app = make_app(tmp_path, lambda request: httpx.Response(200, json={"text": ""}), min_free_bytes=10**18)
    with pytest.raises(InsufficientStorageError):
        app.start_recording()
    assert not app.is_recording


def test_capture_failure_marks_session_error(tmp_path):
    app = make_app(
        tmp_path, lambda request: httpx.Response(200, json={"text": ""}), capture=FakeCapture(fail=True)
    )
    with pytest.raises(CaptureError):
        app.start_recording()
    [session] = app.records.sessions()
    assert session.state is RecordingState.ERROR


def test_storage_check_tolerates_missing_path(tmp_path):
    assert has_sufficient_storage(tmp_path / "does-not-exist", 0) is True
