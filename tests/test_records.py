import pytest

from mobile.segscribe.errors import InvalidTransitionError
from mobile.segscribe.store.records import (
    RecognitionBackend,
    RecordingSession,
    RecordingState,
    TranscriptionRecord,
    TranscriptionStatus,
)


def _processing_record(**kwargs):
    record = TranscriptionRecord(segment_id="seg", **kwargs)
    record.mark_queued()
    record.mark_processing()
    return record


def test_happy_path_edges():
    record = _processing_record()
    record.mark_completed("hello", 1.0, RecognitionBackend.REMOTE, processing_time=0.4)
    assert record.status is TranscriptionStatus.COMPLETED
    assert record.text == "hello"
    assert record.processing_time == 0.4


def test_forbidden_edges_raise():
    record = TranscriptionRecord(segment_id="seg")
    with pytest.raises(InvalidTransitionError):
        record.mark_processing()
    with pytest.raises(InvalidTransitionError):
        record.mark_completed("x", 1.0, RecognitionBackend.REMOTE)

    record = _processing_record()
    record.mark_completed("x", 1.0, RecognitionBackend.REMOTE)
    with pytest.raises(InvalidTransitionError):
        record.mark_queued()
    with pytest.raises(InvalidTransitionError):
        record.mark_failed("late")


def test_remote_success_resets_retry_count_but_local_keeps_it():
    record = _processing_record()
    record.record_failed_attempt("Server error (503)")
    record.record_failed_attempt("Server error (503)")
    assert record.retry_count == 2
    assert record.status is TranscriptionStatus.PROCESSING
    record.mark_completed("ok", 1.0, RecognitionBackend.REMOTE)
    assert record.retry_count == 0

    record = _processing_record()
    record.record_failed_attempt("Authentication failed")
    record.mark_completed("local", 0.9, RecognitionBackend.LOCAL)
    assert record.retry_count == 1
    assert record.backend is RecognitionBackend.LOCAL


def test_failed_requeue_guarded_by_retry_limit():
    record = _processing_record(max_retries=2)
    record.record_failed_attempt("a")
    record.mark_failed("a")
    assert record.can_retry
    record.mark_queued()
    record.mark_processing()
    record.record_failed_attempt("b")
    record.mark_failed("b")
    assert not record.can_retry
    with pytest.raises(InvalidTransitionError):
        record.mark_queued()
    record.mark_queued(explicit=True)
    assert record.status is TranscriptionStatus.QUEUED


def test_explicit_requeue_of_completed_record():
    record = _processing_record()
    record.mark_completed("x", 1.0, RecognitionBackend.REMOTE)
    record.mark_queued(explicit=True)
    assert record.status is TranscriptionStatus.QUEUED


def test_deferral_returns_to_queued():
    record = _processing_record()
    record.mark_deferred("Network connection unavailable")
    assert record.status is TranscriptionStatus.QUEUED
    assert record.retry_count == 0
    assert record.error_message == "Network connection unavailable"


def test_confidence_is_clamped_and_dict_round_trip():
    record = _processing_record()
    record.mark_completed("x", 1.7, RecognitionBackend.LOCAL)
    assert record.confidence == 1.0
    restored = TranscriptionRecord.from_dict(record.to_dict())
    assert restored.status is TranscriptionStatus.COMPLETED
    assert restored.backend is RecognitionBackend.LOCAL
    assert restored.id == record.id


def test_session_complete_and_fail():
    session = RecordingSession(title="standup")
    session.state = RecordingState.RECORDING
    assert session.is_recording
    session.complete()
    assert session.state is RecordingState.COMPLETED
    assert session.ended_at is not None
    assert session.total_duration() >= 0

    failed = RecordingSession()
    failed.fail()
    assert failed.state is RecordingState.ERROR
    assert RecordingSession.from_dict(failed.to_dict()).state is RecordingState.ERROR
