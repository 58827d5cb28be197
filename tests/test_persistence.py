"""Tests for snapshot storage."""

import json
from unittest.mock import MagicMock

import pytest
from helpers import T0, FakeClock, RecordingDispatcher
from sqlalchemy.exc import OperationalError

from ward.db_operations import SCHEMA_VERSION, PersistenceAdapter
from ward.errors import PersistenceError
from ward.models import Bed, BedStatus, OutboxEntry, Patient, StateRecord, SyncAction, SyncEvent
from ward.store import BedStore


def patient(n: int) -> Patient:
    return Patient(
        name=f"Patient {n}",
        mrn=f"{n:03d}",
        diagnosis="flu",
        visit_date="1/31/2026",
        visit_time="8:00:00 PM",
        admitted_at_millis=T0 + n,
    )


def ward(occupied: set[int], total: int = 9) -> list[Bed]:
    return [
        Bed(id=i, status=BedStatus.OCCUPIED, patient=patient(i)) if i in occupied else Bed(id=i)
        for i in range(1, total + 1)
    ]


def write_raw(session_factory, key: str, value: str) -> None:
    with session_factory() as session:
        session.merge(StateRecord(key=key, value=value))
        session.commit()


def test_load_without_saved_state(adapter):
    assert adapter.load() is None


@pytest.mark.parametrize("occupied", [set(), {1, 2, 3, 4, 5, 6, 7, 8, 9}, {2, 5, 9}])
def test_save_then_load(adapter, occupied):
    """Test: Empty, full and mixed wards come back identical."""
    beds = ward(occupied)
    adapter.save(beds)
    assert adapter.load() == beds


def test_save_then_load_after_transfer(adapter, clock):
    store = BedStore(adapter, RecordingDispatcher(), total_beds=9, clock=clock)
    store.admit(1, {"name": "A", "mrn": "001", "diagnosis": "flu"})
    clock.advance(60_000)
    store.transfer(1, 6)

    loaded = adapter.load()

    assert loaded == list(store.beds)
    assert loaded[5].patient.admitted_at_millis == T0
    assert loaded[0].patient is None


def test_save_overwrites_previous_snapshot(adapter, session_factory):
    adapter.save(ward({1}))
    adapter.save(ward({2}))

    with session_factory() as session:
        assert session.query(StateRecord).count() == 1
    assert adapter.load() == ward({2})


def test_stored_layout_uses_camel_case(adapter, session_factory):
    adapter.save(ward({3}))
    with session_factory() as session:
        data = json.loads(session.get(StateRecord, "EWMS_STATE_V1").value)

    assert data["version"] == SCHEMA_VERSION
    assert data["beds"][0] == {"id": 1, "status": "empty", "patient": None}
    assert data["beds"][2]["patient"]["admittedAtMillis"] == T0 + 3
    assert data["beds"][2]["patient"]["visitDate"] == "1/31/2026"


def test_bare_list_is_read_as_version_one(adapter, session_factory):
    beds = ward({4})
    write_raw(session_factory, "EWMS_STATE_V1", json.dumps([b.model_dump(mode="json", by_alias=True) for b in beds]))
    assert adapter.load() == beds


@pytest.mark.parametrize(
    "value",
    [
        json.dumps({"version": 99, "beds": []}),
        "not json at all",
        json.dumps({"version": SCHEMA_VERSION, "beds": [{"id": 1, "status": "occupied", "patient": None}]}),
        json.dumps({"version": SCHEMA_VERSION}),
    ],
)
def test_unusable_state_means_fresh_start(adapter, session_factory, value):
    """Test: Wrong version or corrupt data is discarded rather than migrated."""
    write_raw(session_factory, "EWMS_STATE_V1", value)
    assert adapter.load() is None


def test_bed_count_mismatch_means_fresh_start(adapter):
    adapter.save(ward({1}, total=5))
    assert adapter.load() is None

    store = BedStore(adapter, RecordingDispatcher(), total_beds=9, clock=FakeClock())
    assert store.list_empty_beds() == list(range(1, 10))


def test_outbox_round_trip(adapter):
    event = SyncEvent(
        action=SyncAction.ADMIT,
        bed_id=1,
        name="A",
        mrn="001",
        diagnosis="flu",
        visit_date="1/31/2026",
        visit_time="8:00:00 PM",
    )
    entries = [OutboxEntry(event=event, attempts=2, next_attempt_at=123.5)]

    assert adapter.load_outbox() == []
    adapter.save_outbox(entries)
    assert adapter.load_outbox() == entries
    # The bed snapshot is stored separately
    assert adapter.load() is None


def test_database_errors_become_persistence_errors():
    session_factory = MagicMock(side_effect=OperationalError("INSERT", {}, Exception("disk full")))
    adapter = PersistenceAdapter(session_factory)

    with pytest.raises(PersistenceError):
        adapter.save(ward(set()))
    with pytest.raises(PersistenceError):
        adapter.load()


def test_browser_layout_with_timestamp_is_restored(adapter, session_factory):
    """Test: Beds saved by the browser app, with `timestamp` as the admission instant, are kept."""
    legacy = [{"id": i, "status": "empty", "patient": None} for i in range(1, 10)]
    legacy[0] = {
        "id": 1,
        "status": "occupied",
        "patient": {
            "name": "A",
            "mrn": "001",
            "diagnosis": "flu",
            "visitDate": "1/31/2026",
            "visitTime": "8:00:00 PM",
            "timestamp": T0,
        },
    }
    write_raw(session_factory, "EWMS_STATE_V1", json.dumps(legacy))

    loaded = adapter.load()

    assert loaded is not None
    assert loaded[0].status is BedStatus.OCCUPIED
    assert loaded[0].patient.admitted_at_millis == T0
    assert loaded[0].patient.name == "A"
    assert all(b.patient is None for b in loaded[1:])
