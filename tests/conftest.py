"""Pytest configuration for ward tests."""

import logging

import pytest
from helpers import FakeClock, RecordingNotifier

from ward.db_operations import PersistenceAdapter, create_session_factory
from ward.store import BedStore
from ward.sync import SyncDispatcher

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)8s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_factory(tmp_path):
    """SQLite file database, one per test, safe to share with the sync worker thread."""
    return create_session_factory(f"sqlite:///{tmp_path / 'ward.db'}")


@pytest.fixture
def adapter(session_factory):
    return PersistenceAdapter(session_factory, total_beds=9)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier, adapter, clock):
    dispatcher = SyncDispatcher(notifier, adapter=adapter, clock=clock.seconds)
    yield dispatcher
    dispatcher.close()


@pytest.fixture
def store(adapter, dispatcher, clock):
    return BedStore(adapter, dispatcher, total_beds=9, clock=clock)


@pytest.fixture
def flu():
    return {"name": "A", "mrn": "001", "diagnosis": "flu"}
