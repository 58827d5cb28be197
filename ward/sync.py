"""
Forwarding of bed transitions to the remote logging endpoint.

The endpoint is a write-only sink: requests are posted as plain text and the
response is never read, so "delivered" only means the request left without a
transport error. Delivery runs on a single worker thread, which keeps remote
events in dispatch order and never blocks the caller. Events that fail are
kept in a persisted outbox and retried with exponential backoff; while the
outbox holds anything, new events queue behind it so the backlog always
goes out first.
"""

import json
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Callable, Optional, Protocol

import requests

from ward.config import LOGGER_NAME
from ward.errors import PersistenceError, SyncTransportError
from ward.models import OutboxEntry, Patient, SyncAction, SyncEvent, SyncStatus

logger = logging.getLogger(LOGGER_NAME)

BACKOFF_BASE_SECONDS = 2.0
BACKOFF_CAP_SECONDS = 300.0


class DeliveryOutcome(str, Enum):
    OK = "ok"
    FAILED = "failed"


class Notifier(Protocol):
    def notify(self, event: SyncEvent) -> DeliveryOutcome: ...


class HttpNotifier:
    """Posts events to a fixed URL and ignores whatever comes back."""

    def __init__(self, endpoint: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, event: SyncEvent) -> None:
        body = json.dumps(event.model_dump(mode="json", by_alias=True))
        try:
            self.session.post(
                self.endpoint,
                data=body,
                headers={"Content-Type": "text/plain"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise SyncTransportError(f"Could not deliver {event.action.value} for bed {event.bed_id}: {e}") from e

    def notify(self, event: SyncEvent) -> DeliveryOutcome:
        try:
            self.send(event)
        except SyncTransportError as e:
            logger.warning(str(e))
            return DeliveryOutcome.FAILED
        return DeliveryOutcome.OK


class NullNotifier:
    """Used when no endpoint is configured."""

    def notify(self, event: SyncEvent) -> DeliveryOutcome:
        logger.debug(f"Sync disabled, not forwarding {event.action.value} for bed {event.bed_id}")
        return DeliveryOutcome.OK


def build_event(
    action: SyncAction, bed_id: int, patient: Patient, duration: str = "", notes: str = ""
) -> SyncEvent:
    """
    Flatten a transition into the record the logging endpoint expects.
    :param action: Which transition happened.
    :param bed_id: Bed the transition started from.
    :param patient: Patient involved in the transition.
    :param duration: Final length of stay, only set for discharges.
    :param notes: Appended to the diagnosis in parentheses when present.
    :return: The event to send.
    """
    return SyncEvent(
        action=action,
        bed_id=bed_id,
        name=patient.name,
        mrn=patient.mrn,
        diagnosis=f"{patient.diagnosis} ({notes})" if notes else patient.diagnosis,
        visit_date=patient.visit_date,
        visit_time=patient.visit_time,
        duration=duration or "",
    )


def backoff_seconds(attempts: int) -> float:
    return min(BACKOFF_BASE_SECONDS * 2 ** max(0, attempts - 1), BACKOFF_CAP_SECONDS)


class SyncDispatcher:
    def __init__(
        self,
        notifier: Notifier,
        adapter=None,
        max_attempts: int = 10,
        clock: Callable[[], float] = time.time,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.notifier = notifier
        self.adapter = adapter
        self.max_attempts = max_attempts
        self.clock = clock
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="ward-sync")
        self._lock = threading.Lock()
        self._status = SyncStatus.OK
        self._outbox: list[OutboxEntry] = self._load_outbox()

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def outbox(self) -> list[OutboxEntry]:
        with self._lock:
            return list(self._outbox)

    def dispatch(
        self,
        action: SyncAction,
        bed_id: int,
        patient: Patient,
        duration: str = "",
        notes: str = "",
    ) -> None:
        """Queue one event for delivery and return straight away."""
        event = build_event(action, bed_id, patient, duration, notes)
        self._status = SyncStatus.PENDING
        self._submit(self._deliver, event)

    def flush_outbox(self) -> None:
        """Queue a replay of every outbox entry, ignoring their backoff."""
        self._submit(self._replay_outbox, True)

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until everything queued so far has been attempted."""
        self._executor.submit(lambda: None).result(timeout)

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def _submit(self, fn, *args) -> Future:
        future = self._executor.submit(fn, *args)
        future.add_done_callback(self._log_crash)
        return future

    @staticmethod
    def _log_crash(future: Future) -> None:
        if not future.cancelled() and future.exception() is not None:
            logger.error(f"Sync worker crashed: {future.exception()!r}")

    def _deliver(self, event: SyncEvent) -> None:
        with self._lock:
            backlog = bool(self._outbox)
            if backlog:
                self._outbox.append(OutboxEntry(event=event))
        if backlog:
            logger.info(f"Queued {event.action.value} for bed {event.bed_id} behind unsent events")
            self._save_outbox()
            self._replay_outbox()
            if self.outbox and self._status is SyncStatus.PENDING:
                self._status = SyncStatus.FAILED
            return

        if self.notifier.notify(event) is DeliveryOutcome.OK:
            self._status = SyncStatus.OK
            logger.info(f"Synced {event.action.value} for bed {event.bed_id}")
            self._replay_outbox()
            return

        self._status = SyncStatus.FAILED
        logger.warning(f"Sync failed for {event.action.value} on bed {event.bed_id}, keeping it in the outbox")
        with self._lock:
            self._outbox.append(OutboxEntry(event=event, attempts=1, next_attempt_at=self.clock() + backoff_seconds(1)))
        self._save_outbox()

    def _replay_outbox(self, force: bool = False) -> None:
        now = self.clock()
        with self._lock:
            pending = list(self._outbox)
        if not pending:
            return

        remaining: list[OutboxEntry] = []
        for index, entry in enumerate(pending):
            if not force and entry.next_attempt_at > now:
                remaining.extend(pending[index:])
                break

            if self.notifier.notify(entry.event) is DeliveryOutcome.OK:
                self._status = SyncStatus.OK
                logger.info(f"Replayed {entry.event.action.value} for bed {entry.event.bed_id}")
                continue

            self._status = SyncStatus.FAILED
            attempts = entry.attempts + 1
            if attempts >= self.max_attempts:
                logger.error(
                    f"Dropping {entry.event.action.value} for bed {entry.event.bed_id} after {attempts} attempts"
                )
                remaining.extend(pending[index + 1 :])
            else:
                remaining.append(
                    entry.model_copy(update={"attempts": attempts, "next_attempt_at": now + backoff_seconds(attempts)})
                )
                remaining.extend(pending[index + 1 :])
            # Later entries wait so the remote log keeps its order
            break

        with self._lock:
            # Anything appended while replaying was added after the snapshot
            self._outbox = remaining + self._outbox[len(pending) :]
        self._save_outbox()

    def _load_outbox(self) -> list[OutboxEntry]:
        if self.adapter is None:
            return []
        try:
            entries = self.adapter.load_outbox()
        except PersistenceError as e:
            logger.error(f"Could not restore the sync outbox: {e}")
            return []
        if entries:
            logger.info(f"Restored {len(entries)} unsent sync events")
        return entries

    def _save_outbox(self) -> None:
        if self.adapter is None:
            return
        try:
            self.adapter.save_outbox(self.outbox)
        except PersistenceError as e:
            logger.error(f"Could not persist the sync outbox: {e}")
