import logging
import threading
import time
from datetime import datetime
from typing import Callable, Optional

from ward.config import LOGGER_NAME
from ward.db_operations import PersistenceAdapter
from ward.duration import classify
from ward.errors import BedNotFoundError, InvalidStateError, PersistenceError
from ward.models import (
    AdmissionRequest,
    Bed,
    BedStatus,
    BedView,
    DischargeResult,
    Patient,
    SyncAction,
)
from ward.sync import SyncDispatcher

logger = logging.getLogger(LOGGER_NAME)


def now_millis() -> int:
    return int(time.time() * 1000)


def display_date(millis: int) -> str:
    moment = datetime.fromtimestamp(millis / 1000)
    return f"{moment.month}/{moment.day}/{moment.year}"


def display_time(millis: int) -> str:
    moment = datetime.fromtimestamp(millis / 1000)
    hour = moment.hour % 12 or 12
    return f"{hour}:{moment.minute:02d}:{moment.second:02d} {'AM' if moment.hour < 12 else 'PM'}"


class BedStore:
    """
    Owner of the ward's bed collection.

    Beds only change through admit, discharge and transfer. Each successful
    transition is saved as a full snapshot and then handed to the sync
    dispatcher. Precondition failures raise before anything is touched.
    """

    def __init__(
        self,
        adapter: PersistenceAdapter,
        dispatcher: SyncDispatcher,
        total_beds: int = 9,
        clock: Callable[[], int] = now_millis,
    ):
        if total_beds < 1:
            raise ValueError("total_beds must be positive")
        self.adapter = adapter
        self.dispatcher = dispatcher
        self.total_beds = total_beds
        self.clock = clock
        self._lock = threading.RLock()

        restored = adapter.load()
        if restored is None:
            logger.info(f"No saved ward state, starting with {total_beds} empty beds")
            self._beds = [Bed(id=i) for i in range(1, total_beds + 1)]
        else:
            logger.info(f"Restored ward state: {sum(b.is_occupied for b in restored)}/{len(restored)} beds occupied")
            self._beds = restored

    @property
    def beds(self) -> tuple[Bed, ...]:
        with self._lock:
            return tuple(self._beds)

    def get_bed(self, bed_id: int) -> Bed:
        if not 1 <= bed_id <= self.total_beds:
            raise BedNotFoundError(bed_id, self.total_beds)
        return self._beds[bed_id - 1]

    def list_empty_beds(self) -> list[int]:
        with self._lock:
            return [b.id for b in self._beds if b.status is BedStatus.EMPTY]

    def view(self, bed: Bed, now: Optional[int] = None) -> BedView:
        with self._lock:
            if not bed.is_occupied:
                return BedView(id=bed.id, status=bed.status)
            result = classify(self.clock() if now is None else now, bed.patient.admitted_at_millis)
            return BedView(
                id=bed.id, status=bed.status, patient=bed.patient, elapsed=result.text, severity=result.severity
            )

    def snapshot(self, now: Optional[int] = None) -> list[BedView]:
        """Every bed with its live length-of-stay, all measured against the same instant."""
        now = self.clock() if now is None else now
        with self._lock:
            return [self.view(b, now) for b in self._beds]

    def admit(self, bed_id: int, patient_info: AdmissionRequest | dict) -> Patient:
        """
        Put a new patient into an empty bed.
        :param bed_id: Target bed.
        :param patient_info: Name, MRN and diagnosis from the admission form.
        :return: The patient as stored.
        """
        info = AdmissionRequest.model_validate(patient_info)
        with self._lock:
            bed = self.get_bed(bed_id)
            if bed.is_occupied:
                raise InvalidStateError(f"Bed {bed_id} is already occupied by {bed.patient.name}")

            admitted_at = self.clock()
            patient = Patient(
                name=info.name,
                mrn=info.mrn,
                diagnosis=info.diagnosis,
                visit_date=display_date(admitted_at),
                visit_time=display_time(admitted_at),
                admitted_at_millis=admitted_at,
            )
            bed.status = BedStatus.OCCUPIED
            bed.patient = patient
            logger.info(f"Admitted {patient.name} ({patient.mrn}) to bed {bed_id}")
            self._commit(SyncAction.ADMIT, bed_id, patient)
        return patient

    def discharge(self, bed_id: int) -> DischargeResult:
        """
        Clear an occupied bed. The caller is responsible for having confirmed
        this with the user; the store does not ask.
        :param bed_id: Bed to clear.
        :return: The discharged patient and their final length of stay.
        """
        with self._lock:
            bed = self.get_bed(bed_id)
            if not bed.is_occupied:
                raise InvalidStateError(f"Bed {bed_id} is empty, nothing to discharge")

            patient = bed.patient
            duration = classify(self.clock(), patient.admitted_at_millis).text
            bed.status = BedStatus.EMPTY
            bed.patient = None
            logger.info(f"Discharged {patient.name} ({patient.mrn}) from bed {bed_id} after {duration}")
            self._commit(SyncAction.DISCHARGE, bed_id, patient, duration=duration)
        return DischargeResult(patient=patient, duration=duration)

    def transfer(self, from_bed_id: int, to_bed_id: int) -> Patient:
        """
        Move a patient to an empty bed, keeping their admission time.
        :param from_bed_id: Occupied bed the patient leaves.
        :param to_bed_id: Empty bed the patient moves into.
        :return: The patient, now in the destination bed.
        """
        with self._lock:
            source = self.get_bed(from_bed_id)
            target = self.get_bed(to_bed_id)
            if from_bed_id == to_bed_id:
                raise InvalidStateError(f"Cannot transfer bed {from_bed_id} onto itself")
            if not source.is_occupied:
                raise InvalidStateError(f"Bed {from_bed_id} is empty, nothing to transfer")
            if target.is_occupied:
                raise InvalidStateError(f"Bed {to_bed_id} is already occupied by {target.patient.name}")

            patient = source.patient
            target.status = BedStatus.OCCUPIED
            target.patient = patient
            source.status = BedStatus.EMPTY
            source.patient = None
            logger.info(f"Transferred {patient.name} ({patient.mrn}) from bed {from_bed_id} to bed {to_bed_id}")
            self._commit(SyncAction.TRANSFER, from_bed_id, patient, notes=f"To Bed {to_bed_id}")
        return patient

    def _commit(self, action: SyncAction, bed_id: int, patient: Patient, duration: str = "", notes: str = "") -> None:
        # The in-memory change stands even if the save fails
        try:
            self.adapter.save(self._beds)
        except PersistenceError as e:
            logger.error(f"{action.value} on bed {bed_id} applied in memory but not saved: {e}")
            self.dispatcher.dispatch(action, bed_id, patient, duration, notes)
            raise
        self.dispatcher.dispatch(action, bed_id, patient, duration, notes)
