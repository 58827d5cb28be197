import json
import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ward.config import LOGGER_NAME, build_database_url
from ward.errors import PersistenceError
from ward.models import Base, Bed, OutboxEntry, StateRecord

logger = logging.getLogger(LOGGER_NAME)

SCHEMA_VERSION = 1


def create_session_factory(database_url: str | None = None, **engine_kwargs) -> sessionmaker:
    """
    Create a SQLAlchemy session factory and make sure the state table exists.
    :param database_url: Connection URL, resolved from the environment when omitted.
    :return: Configured sessionmaker.
    """
    try:
        engine = create_engine(database_url or build_database_url(), **engine_kwargs)
        Base.metadata.create_all(bind=engine)
        return sessionmaker(bind=engine, autoflush=True, autocommit=False, future=True)
    except SQLAlchemyError as e:
        logger.error(f"Failed to connect: {e}")
        raise PersistenceError(f"Failed to connect: {e}") from e


def upgrade_legacy_bed(bed: dict) -> dict:
    """
    Rename the admission instant of a browser-era bed from `timestamp` to `admittedAtMillis`.
    :param bed: One bed as stored in the bare-list layout.
    :return: The bed in the current layout.
    """
    patient = bed.get("patient")
    if not isinstance(patient, dict) or "timestamp" not in patient:
        return bed
    upgraded = {k: v for k, v in patient.items() if k != "timestamp"}
    upgraded.setdefault("admittedAtMillis", patient["timestamp"])
    return {**bed, "patient": upgraded}


class PersistenceAdapter:
    """
    Whole-snapshot storage of the ward under a fixed, versioned key.

    Every save overwrites the previous snapshot; there is no diffing and no
    transaction log. The retry outbox of the sync dispatcher lives in the
    same table under its own key.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        storage_key: str = "EWMS_STATE_V1",
        outbox_key: str = "EWMS_OUTBOX_V1",
        total_beds: int | None = None,
    ):
        self.session_factory = session_factory
        self.storage_key = storage_key
        self.outbox_key = outbox_key
        self.total_beds = total_beds

    def _read(self, key: str) -> Optional[str]:
        try:
            with self.session_factory() as session:
                record = session.get(StateRecord, key)
                return record.value if record else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to read '{key}': {e}")
            raise PersistenceError(f"Failed to read '{key}': {e}") from e

    def _write(self, key: str, value: str) -> None:
        try:
            with self.session_factory() as session:
                session.merge(StateRecord(key=key, value=value, updated_at=datetime.now(timezone.utc)))
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to write '{key}': {e}")
            raise PersistenceError(f"Failed to write '{key}': {e}") from e

    def load(self) -> Optional[list[Bed]]:
        """
        Restore the bed collection.
        :return: Beds ordered by id, or None when nothing usable is stored and the caller must start fresh.
        """
        raw = self._read(self.storage_key)
        if raw is None:
            return None

        try:
            data = json.loads(raw)
            # A bare list is the browser layout written before the envelope existed
            if isinstance(data, list):
                data = {"version": SCHEMA_VERSION, "beds": [upgrade_legacy_bed(b) for b in data]}
            if data.get("version") != SCHEMA_VERSION:
                logger.warning(
                    f"Stored ward state has schema version {data.get('version')}, expected {SCHEMA_VERSION}; "
                    "discarding it"
                )
                return None
            beds = [Bed.model_validate(b) for b in data["beds"]]
        except (ValueError, KeyError, TypeError, AttributeError, ValidationError) as e:
            logger.warning(f"Stored ward state under '{self.storage_key}' is unreadable, discarding it: {e}")
            return None

        if self.total_beds is not None and len(beds) != self.total_beds:
            logger.warning(
                f"Stored ward state has {len(beds)} beds but {self.total_beds} are configured; discarding it"
            )
            return None
        if [b.id for b in beds] != list(range(1, len(beds) + 1)):
            logger.warning("Stored ward state has out-of-order bed ids; discarding it")
            return None

        return beds

    def save(self, beds: list[Bed]) -> None:
        """Overwrite the stored snapshot with the given beds."""
        payload = {"version": SCHEMA_VERSION, "beds": [b.model_dump(mode="json", by_alias=True) for b in beds]}
        self._write(self.storage_key, json.dumps(payload))

    def load_outbox(self) -> list[OutboxEntry]:
        raw = self._read(self.outbox_key)
        if raw is None:
            return []
        try:
            return [OutboxEntry.model_validate(e) for e in json.loads(raw)]
        except (ValueError, TypeError, ValidationError) as e:
            logger.warning(f"Stored outbox under '{self.outbox_key}' is unreadable, discarding it: {e}")
            return []

    def save_outbox(self, entries: list[OutboxEntry]) -> None:
        self._write(self.outbox_key, json.dumps([e.model_dump(mode="json", by_alias=True) for e in entries]))
