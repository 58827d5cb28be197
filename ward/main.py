import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import List

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query

from ward.config import LOGGER_NAME, Settings, setup_logging
from ward.db_operations import PersistenceAdapter, create_session_factory
from ward.errors import BedNotFoundError, InvalidStateError, PersistenceError
from ward.models import AdmissionRequest, BedView, DischargeResult, EmptyBeds, Patient, SyncState
from ward.store import BedStore
from ward.sync import HttpNotifier, NullNotifier, SyncDispatcher

logger = logging.getLogger(LOGGER_NAME)


def build_store(settings: Settings) -> BedStore:
    """
    Wire the persistence adapter, sync dispatcher and bed store from configuration.
    :param settings: Deployment configuration.
    :return: Ready-to-use bed store.
    """
    adapter = PersistenceAdapter(
        create_session_factory(settings.database_url),
        storage_key=settings.storage_key,
        outbox_key=settings.outbox_key,
        total_beds=settings.total_beds,
    )
    if settings.sync_endpoint:
        notifier = HttpNotifier(settings.sync_endpoint, timeout=settings.sync_timeout_seconds)
    else:
        logger.warning("SYNC_ENDPOINT is not set, transitions will not be forwarded")
        notifier = NullNotifier()
    dispatcher = SyncDispatcher(notifier, adapter=adapter, max_attempts=settings.sync_max_attempts)
    return BedStore(adapter, dispatcher, total_beds=settings.total_beds)


@lru_cache
def get_store() -> BedStore:
    return build_store(Settings.from_env())


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    yield
    if get_store.cache_info().currsize:
        get_store().dispatcher.close()


app = FastAPI(lifespan=lifespan)


def run_transition(action):
    """Run a store operation and translate engine errors into HTTP errors."""
    try:
        return action()
    except BedNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceError as e:
        logger.error(f"Persistence failure: {e}")
        raise HTTPException(
            status_code=500,
            detail=f"Change applied but could not be saved: {e}",
        )


@app.get("/beds", response_model=List[BedView])
def get_beds(store: BedStore = Depends(get_store)) -> List[BedView]:
    """
    Returns every bed with its live length-of-stay. Meant to be polled once a second.
    :return: Beds in id order.
    """
    return store.snapshot()


@app.get("/beds/empty", response_model=EmptyBeds)
def get_empty_beds(store: BedStore = Depends(get_store)) -> EmptyBeds:
    """
    Returns ids of empty beds, used to offer transfer targets.
    """
    return EmptyBeds(bed_ids=store.list_empty_beds())


@app.get("/beds/{bed_id}", response_model=BedView)
def get_bed(bed_id: int, store: BedStore = Depends(get_store)) -> BedView:
    return run_transition(lambda: store.view(store.get_bed(bed_id)))


@app.post("/beds/{bed_id}/admit", response_model=Patient)
def admit(bed_id: int, admission: AdmissionRequest, store: BedStore = Depends(get_store)) -> Patient:
    return run_transition(lambda: store.admit(bed_id, admission))


@app.post("/beds/{bed_id}/discharge", response_model=DischargeResult)
def discharge(bed_id: int, store: BedStore = Depends(get_store)) -> DischargeResult:
    """
    Discharges the patient in the bed. The client must have confirmed this with the user already.
    """
    return run_transition(lambda: store.discharge(bed_id))


@app.post("/beds/{bed_id}/transfer", response_model=Patient)
def transfer(bed_id: int, to: int = Query(...), store: BedStore = Depends(get_store)) -> Patient:
    return run_transition(lambda: store.transfer(bed_id, to))


@app.get("/sync-status", response_model=SyncState)
def get_sync_status(store: BedStore = Depends(get_store)) -> SyncState:
    dispatcher = store.dispatcher
    return SyncState(status=dispatcher.status, outbox=len(dispatcher.outbox))


@app.post("/sync/flush", response_model=SyncState)
def flush_sync(store: BedStore = Depends(get_store)) -> SyncState:
    """
    Queues a retry of every unsent event without waiting for it.
    """
    store.dispatcher.flush_outbox()
    return SyncState(status=store.dispatcher.status, outbox=len(store.dispatcher.outbox))


if __name__ == "__main__":
    uvicorn.run("ward.main:app", host="0.0.0.0", port=8000)
