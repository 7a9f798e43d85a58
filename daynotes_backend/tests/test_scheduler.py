import json
import threading
import time
from datetime import date

import pytest

from daynotes_backend.scheduler import BackupScheduler, SchedulerState, deliver, export_snapshot
from daynotes_backend.snapshot import deserialize
from daynotes_database import Database


class RecordingChannel:
    def __init__(self, failing=(), hanging=()):
        self.sent = {}
        self.failing = set(failing)
        self.hanging = set(hanging)
        self.release = threading.Event()
        self.delivered = threading.Event()
        self._lock = threading.Lock()

    def send_document(self, destination, filename, blob):
        if destination in self.failing:
            raise ConnectionError(f"chat {destination} unreachable")
        if destination in self.hanging:
            self.release.wait(10)
            return
        with self._lock:
            self.sent.setdefault(destination, []).append((filename, blob))
        self.delivered.set()


@pytest.fixture
def channel():
    ch = RecordingChannel()
    yield ch
    ch.release.set()


@pytest.fixture
def broken_database():
    """A database without tables, so every read fails."""
    db = Database.from_url("sqlite://")
    yield db
    db.dispose()


def test_export_delivers_snapshot_to_every_destination(database, identity, notes, channel):
    alice = identity.register("alice", "pw1")
    notes.create(alice.id, "2024-03-10", "hello")

    report = export_snapshot(database, channel, [1, 2, 3], today=date(2024, 3, 11))

    assert report.ok
    assert sorted(report.delivered) == [1, 2, 3]
    for destination in (1, 2, 3):
        [(filename, blob)] = channel.sent[destination]
        assert filename == "db_export_2024-03-11.json"
        snapshot = deserialize(blob)
        assert [n.content for n in snapshot.notes] == ["hello"]


def test_one_failing_destination_does_not_stop_the_others(database, owner):
    channel = RecordingChannel(failing={2})

    report = export_snapshot(database, channel, [1, 2, 3])

    assert not report.ok
    assert sorted(report.delivered) == [1, 3]
    assert "unreachable" in report.failed[2]


def test_slow_destination_times_out(database, owner):
    channel = RecordingChannel(hanging={"slow"})
    try:
        report = deliver(channel, ["slow", "fast"], "f.json", b"{}", timeout=0.2)
    finally:
        channel.release.set()

    assert report.delivered == ["fast"]
    assert "timed out" in report.failed["slow"]


def test_run_cycle_reports_outcome(database, owner):
    ok = BackupScheduler(database, RecordingChannel(), [1])
    assert ok.run_cycle().ok
    assert ok.last_outcome is SchedulerState.DELIVERED
    assert ok.state is SchedulerState.IDLE

    failing = BackupScheduler(database, RecordingChannel(failing={1}), [1])
    assert not failing.run_cycle().ok
    assert failing.last_outcome is SchedulerState.DELIVERY_FAILED
    assert failing.state is SchedulerState.IDLE


def test_store_failure_skips_cycle(broken_database, channel, caplog):
    scheduler = BackupScheduler(broken_database, channel, [1])

    with caplog.at_level("ERROR"):
        assert scheduler.run_cycle() is None

    assert channel.sent == {}
    assert scheduler.state is SchedulerState.IDLE
    assert "Backup cycle failed" in caplog.text


def test_scheduler_runs_immediately_and_stops_promptly(database, owner, channel):
    scheduler = BackupScheduler(database, channel, [42], interval=3600)
    scheduler.start()
    try:
        assert channel.delivered.wait(5)
        assert scheduler.running
    finally:
        scheduler.stop(timeout=5)
    assert not scheduler.running
    [(filename, blob)] = channel.sent[42]
    assert json.loads(blob)["users"][0]["username"] == "alice"


def test_scheduler_survives_failing_cycles(broken_database, channel):
    calls = []
    scheduler = BackupScheduler(broken_database, channel, [1], interval=0.01)
    original = scheduler.run_cycle

    def counting_cycle():
        calls.append(1)
        return original()

    scheduler.run_cycle = counting_cycle
    scheduler.start()
    try:
        deadline = time.monotonic() + 5
        while len(calls) < 3 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert scheduler.running
    finally:
        scheduler.stop(timeout=5)
    assert len(calls) >= 3


def test_stuck_delivery_does_not_hold_up_exit():
    seen = []
    channel = RecordingChannel(hanging={"slow"})
    original = channel.send_document

    def recording_send(destination, filename, blob):
        seen.append(threading.current_thread())
        original(destination, filename, blob)

    channel.send_document = recording_send
    try:
        report = deliver(channel, ["slow"], "f.json", b"{}", timeout=0.1)
        [worker] = seen
        assert worker.is_alive()
        assert worker.daemon
    finally:
        channel.release.set()
    assert "timed out" in report.failed["slow"]


def test_no_destinations_is_an_empty_success():
    report = deliver(RecordingChannel(), [], "f.json", b"{}", timeout=0.1)
    assert report.ok and report.delivered == []
