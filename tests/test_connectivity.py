from mobile.segscribe.audio.types import Segment
from mobile.segscribe.services.connectivity import NetworkMonitor
from mobile.segscribe.store.offline_queue import OfflineQueueStore


class FakeTimer:
    created = []

    def __init__(self, interval, fn, args=()):
        self.interval = interval
        self.fn = fn
        self.args = args
        self.daemon = False
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.fn(*self.args)


def make_monitor(tmp_path, ids=(), known=None):
    FakeTimer.created = []
    queue = OfflineQueueStore(tmp_path / "offline_queue.json")
    for segment_id in ids:
        queue.add(segment_id)
    segments = {
        segment_id: Segment(session_id="s", index=i, start_offset=0.0, duration=30.0, path="a.wav", id=segment_id)
        for i, segment_id in enumerate(known if known is not None else ids)
    }
    enqueued = []

    def enqueue(segment):
        enqueued.append(segment.id)
        return True

    monitor = NetworkMonitor(queue, segments.get, enqueue, debounce=2.0, timer_factory=FakeTimer)
    return monitor, queue, enqueued


def test_reconnect_requeues_after_debounce(tmp_path):
    monitor, queue, enqueued = make_monitor(tmp_path, ids=["c"])
    monitor.update(False)
    assert not monitor.is_online()
    monitor.update(True)
    timer = FakeTimer.created[-1]
    assert timer.interval == 2.0
    assert timer.started
    assert enqueued == []
    timer.fire()
    assert enqueued == ["c"]
    assert queue.all() == []


def test_flapping_connection_ignores_stale_debounce(tmp_path):
    monitor, queue, enqueued = make_monitor(tmp_path, ids=["c"])
    monitor.update(False)
    monitor.update(True)
    stale = FakeTimer.created[-1]
    monitor.update(False)
    assert stale.cancelled
    stale.fire()
    assert enqueued == []
    monitor.update(True)
    FakeTimer.created[-1].fire()
    assert enqueued == ["c"]


def test_optimistic_until_first_observation(tmp_path):
    monitor, queue, enqueued = make_monitor(tmp_path)
    assert monitor.is_online()
    monitor.update(True)
    assert FakeTimer.created == []


def test_first_online_observation_drains_persisted_queue(tmp_path):
    monitor, queue, enqueued = make_monitor(tmp_path, ids=["a", "b"])
    monitor.update(True)
    FakeTimer.created[-1].fire()
    assert enqueued == ["a", "b"]


def test_unknown_ids_are_dropped_and_failed_enqueue_kept(tmp_path):
    monitor, queue, enqueued = make_monitor(tmp_path, ids=["known", "ghost"], known=["known"])
    assert monitor.requeue_pending() == 1
    assert queue.all() == []

    queue.add("known")

    def failing(segment):
        raise RuntimeError("scheduler busy")

    monitor.enqueue = failing
    assert monitor.requeue_pending() == 0
    assert queue.all() == ["known"]


def test_report_offline_flips_state(tmp_path):
    monitor, _, _ = make_monitor(tmp_path)
    monitor.report_offline()
    assert not monitor.is_online()


def test_refused_enqueue_keeps_id_in_store(tmp_path):
    monitor, queue, enqueued = make_monitor(tmp_path, ids=["busy", "free"])

    def enqueue(segment):
        enqueued.append(segment.id)
        return segment.id != "busy"

    monitor.enqueue = enqueue
    assert monitor.requeue_pending() == 1
    assert enqueued == ["busy", "free"]
    assert queue.all() == ["busy"]
