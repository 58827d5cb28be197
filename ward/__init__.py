"""Bed occupancy tracking for a single ward."""

from ward.duration import Classification, Severity, classify, format_duration
from ward.errors import BedNotFoundError, InvalidStateError, PersistenceError, SyncTransportError, WardError
from ward.models import AdmissionRequest, Bed, BedStatus, Patient, SyncAction, SyncEvent, SyncStatus
from ward.store import BedStore
from ward.sync import DeliveryOutcome, HttpNotifier, NullNotifier, SyncDispatcher

__version__ = "0.1.0"

__all__ = [
    "AdmissionRequest",
    "Bed",
    "BedNotFoundError",
    "BedStatus",
    "BedStore",
    "Classification",
    "DeliveryOutcome",
    "HttpNotifier",
    "InvalidStateError",
    "NullNotifier",
    "Patient",
    "PersistenceError",
    "Severity",
    "SyncAction",
    "SyncDispatcher",
    "SyncEvent",
    "SyncStatus",
    "SyncTransportError",
    "WardError",
    "classify",
    "format_duration",
]
