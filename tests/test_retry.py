import pytest

from mobile.segscribe.audio.types import Segment
from mobile.segscribe.errors import (
    ErrorKind,
    LocalTranscriptionError,
    OfflineError,
    TranscriptionError,
)
from mobile.segscribe.services.fallback import LocalResult
from mobile.segscribe.services.retry import RetryController, TranscriptionJobRunner, backoff_delay
from mobile.segscribe.store.record_store import RecordStore
from mobile.segscribe.store.records import JobPhase, RecognitionBackend, TranscriptionStatus


class ScriptedClient:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def transcribe(self, audio, filename, *, segment_id=None, language=None):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeFallback:
    def __init__(self, result=None, error=None):
        self.result = result or LocalResult(text="local text", confidence=0.9, strategy="direct")
        self.error = error
        self.calls = 0

    def transcribe(self, path):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


def server_error():
    return TranscriptionError(ErrorKind.SERVER_ERROR, "Server error (503)")


def make_runner(tmp_path, outcomes, fallback=None):
    sleeps = []
    client = ScriptedClient(outcomes)
    retry = RetryController(client, max_attempts=5, sleep=sleeps.append)
    records = RecordStore(tmp_path / "records.json")
    runner = TranscriptionJobRunner(records, retry, fallback or FakeFallback(), clock=lambda: 0.0)
    audio = tmp_path / "segment_a.wav"
    audio.write_bytes(b"RIFF....")
    segment = Segment(session_id="s", index=0, start_offset=0.0, duration=30.0, path=str(audio))
    record, _ = records.ensure_record(segment.id)
    record.mark_queued()
    records.save_record(record)
    return runner, records, segment, client, sleeps


def test_backoff_sequence():
    assert [backoff_delay(i) for i in range(5)] == [1, 2, 4, 8, 16]


def test_controller_returns_after_transient_failures():
    sleeps = []
    client = ScriptedClient([server_error(), server_error(), "done"])
    controller = RetryController(client, sleep=sleeps.append)
    assert controller.run(b"x", "a.wav") == "done"
    assert sleeps == [1.0, 2.0]


def test_controller_stops_on_non_retryable():
    failures = []
    client = ScriptedClient([TranscriptionError(ErrorKind.AUTH_FAILURE, "Authentication failed")])
    controller = RetryController(client, sleep=lambda s: None)
    with pytest.raises(TranscriptionError) as info:
        controller.run(b"x", "a.wav", on_failure=failures.append)
    assert info.value.kind is ErrorKind.AUTH_FAILURE
    assert client.calls == 1
    assert len(failures) == 1


def test_controller_with_spent_budget_makes_no_call():
    client = ScriptedClient([])
    with pytest.raises(TranscriptionError) as info:
        RetryController(client).run(b"x", "a.wav", budget=0)
    assert info.value.kind is ErrorKind.EXHAUSTED_RETRIES
    assert client.calls == 0


def test_remote_success_completes_record(tmp_path):
    runner, records, segment, client, sleeps = make_runner(tmp_path, [server_error(), "hello"])
    assert runner.run(segment) is JobPhase.TERMINAL
    record = records.get_record(segment.id)
    assert record.status is TranscriptionStatus.COMPLETED
    assert record.backend is RecognitionBackend.REMOTE
    assert record.confidence == 1.0
    assert record.retry_count == 0
    assert sleeps == [1.0]


def test_five_server_errors_fall_back_once(tmp_path):
    fallback = FakeFallback()
    runner, records, segment, client, sleeps = make_runner(
        tmp_path, [server_error() for _ in range(5)], fallback
    )
    assert runner.run(segment) is JobPhase.TERMINAL
    record = records.get_record(segment.id)
    assert client.calls == 5
    assert sleeps == [1.0, 2.0, 4.0, 8.0]
    assert fallback.calls == 1
    assert record.status is TranscriptionStatus.COMPLETED
    assert record.backend is RecognitionBackend.LOCAL
    assert record.confidence == 0.9
    assert record.retry_count == 5


def test_converted_fallback_confidence(tmp_path):
    fallback = FakeFallback(result=LocalResult(text="converted", confidence=0.8, strategy="converted"))
    runner, records, segment, _, _ = make_runner(tmp_path, [server_error() for _ in range(5)], fallback)
    runner.run(segment)
    assert records.get_record(segment.id).confidence == 0.8


def test_auth_failure_goes_straight_to_fallback(tmp_path):
    fallback = FakeFallback()
    runner, records, segment, client, sleeps = make_runner(
        tmp_path, [TranscriptionError(ErrorKind.AUTH_FAILURE, "Authentication failed")], fallback
    )
    runner.run(segment)
    record = records.get_record(segment.id)
    assert client.calls == 1
    assert sleeps == []
    assert record.retry_count == 1
    assert fallback.calls == 1
    assert record.backend is RecognitionBackend.LOCAL


def test_offline_defers_without_counting(tmp_path):
    fallback = FakeFallback()
    runner, records, segment, client, sleeps = make_runner(tmp_path, [OfflineError()], fallback)
    assert runner.run(segment) is JobPhase.DEFERRED
    record = records.get_record(segment.id)
    assert record.status is TranscriptionStatus.QUEUED
    assert record.retry_count == 0
    assert fallback.calls == 0
    assert sleeps == []


def test_both_paths_failing_marks_failed(tmp_path):
    fallback = FakeFallback(error=LocalTranscriptionError("direct: no speech; converted: no speech"))
    runner, records, segment, _, _ = make_runner(
        tmp_path, [TranscriptionError(ErrorKind.MALFORMED_INPUT, "Bad request")], fallback
    )
    runner.run(segment)
    record = records.get_record(segment.id)
    assert record.status is TranscriptionStatus.FAILED
    assert "Bad request" in record.error_message
    assert "no speech" in record.error_message


def test_unreadable_artifact_counts_one_attempt(tmp_path):
    fallback = FakeFallback()
    runner, records, segment, client, _ = make_runner(tmp_path, [], fallback)
    segment.path = str(tmp_path / "missing.wav")
    runner.run(segment)
    record = records.get_record(segment.id)
    assert client.calls == 0
    assert record.retry_count == 1
    assert fallback.calls == 1


def test_budget_follows_lifetime_retry_count(tmp_path):
    runner, records, segment, client, sleeps = make_runner(tmp_path, [server_error(), server_error()])
    record = records.get_record(segment.id)
    record.retry_count = 3
    records.save_record(record)
    runner.run(segment)
    assert client.calls == 2
    assert sleeps == [1.0]
    assert records.get_record(segment.id).retry_count == 5
