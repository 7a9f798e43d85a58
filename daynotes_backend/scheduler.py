"""
Periodic backup: export the whole dataset and deliver it to every destination.

One cycle is  Idle -> Running -> (Delivered | DeliveryFailed) -> Idle.
Destinations are independent: a failing or slow one is logged and the rest
still receive the file. Nothing that goes wrong inside a cycle stops the loop.
"""
import enum
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, Hashable, List, Optional, Protocol, Sequence

from daynotes_database import Database

from .config import DEFAULT_BACKUP_INTERVAL_SECONDS, DEFAULT_DELIVERY_TIMEOUT_SECONDS
from .snapshot import export_filename, load_snapshot, serialize

logger = logging.getLogger(__name__)


class NotificationChannel(Protocol):
    """Delivers a named file to one destination (e.g. a Telegram chat id)."""

    def send_document(self, destination: Hashable, filename: str, blob: bytes) -> None:
        ...


class SchedulerState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    DELIVERED = "delivered"
    DELIVERY_FAILED = "delivery_failed"


@dataclass
class DeliveryReport:
    filename: str
    delivered: List[Hashable] = field(default_factory=list)
    failed: Dict[Hashable, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def _send(channel, destination, filename, blob, outcomes):
    try:
        channel.send_document(destination, filename, blob)
    except Exception as exc:
        outcomes[destination] = exc
    else:
        outcomes[destination] = None


def deliver(
    channel: NotificationChannel,
    destinations: Sequence[Hashable],
    filename: str,
    blob: bytes,
    timeout: float = DEFAULT_DELIVERY_TIMEOUT_SECONDS,
) -> DeliveryReport:
    """
    Send `blob` to each destination in parallel, each bounded by `timeout` seconds.

    Each send runs on a daemon thread. A send still stuck past the timeout is
    reported as failed and left behind; it never delays interpreter exit.
    """
    report = DeliveryReport(filename=filename)
    outcomes: Dict[Hashable, Optional[BaseException]] = {}
    workers = [
        threading.Thread(
            target=_send,
            args=(channel, destination, filename, blob, outcomes),
            name=f"delivery-{destination}",
            daemon=True,
        )
        for destination in destinations
    ]
    for worker in workers:
        worker.start()
    deadline = time.monotonic() + timeout
    for worker in workers:
        worker.join(max(0.0, deadline - time.monotonic()))

    for destination in destinations:
        if destination not in outcomes:
            logger.error("Delivery of %s to %s timed out after %ss", filename, destination, timeout)
            report.failed[destination] = f"timed out after {timeout}s"
            continue
        exc = outcomes[destination]
        if exc is not None:
            logger.error(
                "Delivery of %s to %s failed: %s", filename, destination, exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )
            report.failed[destination] = str(exc) or type(exc).__name__
        else:
            logger.info("Delivered %s to %s", filename, destination)
            report.delivered.append(destination)
    return report


# PUBLIC_INTERFACE
def export_snapshot(
    database: Database,
    channel: NotificationChannel,
    destinations: Sequence[Hashable],
    timeout: float = DEFAULT_DELIVERY_TIMEOUT_SECONDS,
    today: Optional[date] = None,
) -> DeliveryReport:
    """Build a snapshot of the current data and deliver it as `db_export_<date>.json`."""
    snapshot = load_snapshot(database)
    blob = serialize(snapshot.users, snapshot.notes)
    filename = export_filename(today)
    logger.info(
        "Exporting %s (%d users, %d notes, %d bytes) to %d destination(s)",
        filename, len(snapshot.users), len(snapshot.notes), len(blob), len(destinations),
    )
    return deliver(channel, destinations, filename, blob, timeout=timeout)


class BackupScheduler:
    """
    Background thread that calls `export_snapshot` once per interval.

    The first cycle runs immediately on start. `stop()` interrupts the wait
    between cycles; a cycle already in progress is allowed to finish.
    """

    def __init__(
        self,
        database: Database,
        channel: NotificationChannel,
        destinations: Sequence[Hashable],
        interval: float = DEFAULT_BACKUP_INTERVAL_SECONDS,
        delivery_timeout: float = DEFAULT_DELIVERY_TIMEOUT_SECONDS,
        clock: Callable[[], date] = date.today,
    ):
        self.database = database
        self.channel = channel
        self.destinations = tuple(destinations)
        self.interval = interval
        self.delivery_timeout = delivery_timeout
        self.clock = clock
        self.state = SchedulerState.IDLE
        self.last_report: Optional[DeliveryReport] = None
        self.last_outcome: Optional[SchedulerState] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_cycle(self) -> Optional[DeliveryReport]:
        """Run one backup. Returns the report, or None if the cycle was skipped."""
        self.state = SchedulerState.RUNNING
        try:
            report = export_snapshot(
                self.database,
                self.channel,
                self.destinations,
                timeout=self.delivery_timeout,
                today=self.clock(),
            )
        except Exception:
            logger.exception("Backup cycle failed; skipping until the next interval")
            self.state = SchedulerState.IDLE
            return None

        self.last_outcome = SchedulerState.DELIVERED if report.ok else SchedulerState.DELIVERY_FAILED
        if report.ok:
            logger.info("Backup %s delivered to all %d destination(s)", report.filename, len(report.delivered))
        else:
            logger.warning(
                "Backup %s delivered to %d destination(s), failed for %d",
                report.filename, len(report.delivered), len(report.failed),
            )
        self.last_report = report
        self.state = SchedulerState.IDLE
        return report

    def run_forever(self) -> None:
        logger.info("Backup scheduler started (interval %ss)", self.interval)
        while not self._stop_event.is_set():
            self.run_cycle()
            if self._stop_event.wait(self.interval):
                break
        logger.info("Backup scheduler stopped")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run_forever, name="backup-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
