import threading
import time

from conftest import make_snapshot
from services.broadcaster import Broadcaster, MetricsContext, MonitoringLoop


class SequenceAggregator:
    """Returns the queued results in order; exceptions are raised."""

    def __init__(self, results):
        self.results = list(results)
        self.calls = 0

    def sample(self):
        self.calls += 1
        item = self.results.pop(0) if self.results else None
        if isinstance(item, Exception):
            raise item
        return item


class RecordingSend:
    def __init__(self):
        self.lock = threading.Lock()
        self.sent = []

    def __call__(self, payload, sid):
        with self.lock:
            self.sent.append((sid, payload))

    def for_sid(self, sid):
        with self.lock:
            return [p for s, p in self.sent if s == sid]


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_context_publish_replaces_whole_snapshot():
    context = MetricsContext()
    first, second = make_snapshot(isp="Acme"), make_snapshot(isp="Globex")

    context.publish(first)
    context.publish(second)

    assert context.current() is second
    assert context.publish_count == 2


def test_tick_publishes_non_null_sample():
    context = MetricsContext()
    snapshot = make_snapshot()
    loop = MonitoringLoop(SequenceAggregator([snapshot]), context)

    assert loop.tick() is snapshot
    assert context.current() is snapshot
    assert loop.state == "idle"


def test_null_sample_keeps_previous_snapshot():
    context = MetricsContext()
    snapshot = make_snapshot()
    loop = MonitoringLoop(SequenceAggregator([snapshot, None]), context)

    loop.tick()
    assert loop.tick() is None

    assert context.current() is snapshot
    assert loop.empty_cycles == 1


def test_failed_cycle_does_not_stop_the_loop():
    context = MetricsContext()
    snapshot = make_snapshot()
    aggregator = SequenceAggregator([RuntimeError("boom"), snapshot])
    loop = MonitoringLoop(aggregator, context, interval_seconds=0.5)
    loop.interval_seconds = 0.01

    loop.start()
    try:
        assert _wait_for(lambda: context.current() is snapshot)
    finally:
        loop.stop()

    assert loop.failed_cycles == 1
    assert not loop.running()


def test_restart_starts_a_new_loop_thread():
    loop = MonitoringLoop(SequenceAggregator([]), MetricsContext())
    assert not loop.running()

    loop.restart()
    try:
        assert loop.running()
    finally:
        loop.stop()


def test_overlapping_tick_is_skipped():
    started = threading.Event()
    release = threading.Event()

    class SlowAggregator:
        def sample(self):
            started.set()
            release.wait(2)
            return make_snapshot()

    loop = MonitoringLoop(SlowAggregator(), MetricsContext())
    worker = threading.Thread(target=loop.tick)
    worker.start()
    started.wait(2)

    assert loop.tick() is None

    release.set()
    worker.join(2)


def test_subscriber_gets_current_snapshot_immediately():
    context = MetricsContext()
    snapshot = make_snapshot()
    context.publish(snapshot)
    send = RecordingSend()
    broadcaster = Broadcaster(context, send, interval_seconds=60)

    broadcaster.subscribe("sid-1")
    try:
        assert send.for_sid("sid-1") == [snapshot.to_dict()]
    finally:
        broadcaster.close()


def test_nothing_is_sent_before_first_publish():
    send = RecordingSend()
    broadcaster = Broadcaster(MetricsContext(), send, interval_seconds=60)

    broadcaster.subscribe("sid-1")
    try:
        assert send.sent == []
        assert broadcaster.subscriber_count() == 1
    finally:
        broadcaster.close()


def test_periodic_push_resends_current_snapshot():
    context = MetricsContext()
    context.publish(make_snapshot())
    send = RecordingSend()
    broadcaster = Broadcaster(context, send)
    broadcaster.interval_seconds = 0.02

    broadcaster.subscribe("sid-1")
    try:
        assert _wait_for(lambda: len(send.for_sid("sid-1")) >= 3)
    finally:
        broadcaster.close()


def test_unsubscribe_only_stops_that_subscriber():
    context = MetricsContext()
    context.publish(make_snapshot())
    send = RecordingSend()
    broadcaster = Broadcaster(context, send)
    broadcaster.interval_seconds = 0.02

    broadcaster.subscribe("sid-1")
    broadcaster.subscribe("sid-2")
    broadcaster.unsubscribe("sid-1")
    try:
        time.sleep(0.05)
        count_after_unsubscribe = len(send.for_sid("sid-1"))
        assert _wait_for(lambda: len(send.for_sid("sid-2")) >= 4)
        assert len(send.for_sid("sid-1")) <= count_after_unsubscribe
        assert broadcaster.subscriber_count() == 1
    finally:
        broadcaster.close()


def test_send_failure_does_not_raise():
    context = MetricsContext()
    context.publish(make_snapshot())

    def send(payload, sid):
        raise ConnectionError("client gone")

    broadcaster = Broadcaster(context, send, interval_seconds=60)
    assert broadcaster.push("sid-1") is False
