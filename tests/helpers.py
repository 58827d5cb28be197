"""Test doubles shared by the test modules."""

import threading

from ward.errors import PersistenceError
from ward.sync import DeliveryOutcome

T0 = 1_769_889_600_000  # 2026-01-31 20:00:00 UTC
HOUR = 3_600_000


class FakeClock:
    def __init__(self, start: int = T0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, millis: int) -> None:
        self.now += millis

    def seconds(self) -> float:
        return self.now / 1000


class RecordingNotifier:
    """Notifier that remembers every event and answers with scripted outcomes."""

    def __init__(self, outcomes=None):
        self.events = []
        self.outcomes = list(outcomes or [])
        self.default = DeliveryOutcome.OK

    def notify(self, event):
        self.events.append(event)
        if self.outcomes:
            return self.outcomes.pop(0)
        return self.default


class BlockingNotifier(RecordingNotifier):
    def __init__(self):
        super().__init__()
        self.release = threading.Event()

    def notify(self, event):
        self.release.wait(timeout=5)
        return super().notify(event)


class RecordingDispatcher:
    """Synchronous stand-in for SyncDispatcher."""

    def __init__(self):
        self.calls = []

    def dispatch(self, action, bed_id, patient, duration="", notes=""):
        self.calls.append((action, bed_id, patient, duration, notes))


class MemoryAdapter:
    """Keeps the last saved snapshot in memory instead of a database."""

    def __init__(self, beds=None):
        self.saved = beds
        self.saves = 0
        self.fail = False

    def load(self):
        if self.saved is None:
            return None
        return [b.model_copy(deep=True) for b in self.saved]

    def save(self, beds):
        if self.fail:
            raise PersistenceError("disk full")
        self.saves += 1
        self.saved = [b.model_copy(deep=True) for b in beds]

    def load_outbox(self):
        return []

    def save_outbox(self, entries):
        pass
