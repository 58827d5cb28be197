from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import declarative_base

from ward.duration import Severity

Base = declarative_base()


class BedStatus(str, Enum):
    EMPTY = "empty"
    OCCUPIED = "occupied"


class SyncAction(str, Enum):
    ADMIT = "ADMIT"
    DISCHARGE = "DISCHARGE"
    TRANSFER = "TRANSFER"


class SyncStatus(str, Enum):
    PENDING = "pending"
    OK = "ok"
    FAILED = "failed"


class AdmissionRequest(BaseModel):
    """Validated admission input coming from the form layer."""

    model_config = ConfigDict(extra="forbid")

    name: str
    mrn: str
    diagnosis: str

    @field_validator("name", "mrn", "diagnosis")
    @classmethod
    def must_not_be_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class Patient(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    mrn: str
    diagnosis: str
    visit_date: str = Field(alias="visitDate")
    visit_time: str = Field(alias="visitTime")
    admitted_at_millis: int = Field(alias="admittedAtMillis")


class Bed(BaseModel):
    id: int = Field(gt=0)
    status: BedStatus = BedStatus.EMPTY
    patient: Optional[Patient] = None

    @model_validator(mode="after")
    def check_occupancy(self) -> "Bed":
        if (self.status is BedStatus.OCCUPIED) != (self.patient is not None):
            raise ValueError(f"Bed {self.id}: status '{self.status.value}' does not match patient presence")
        return self

    @property
    def is_occupied(self) -> bool:
        return self.status is BedStatus.OCCUPIED


class BedView(BaseModel):
    """A bed together with its live length-of-stay, as shown on the ward board."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    status: BedStatus
    patient: Optional[Patient] = None
    elapsed: Optional[str] = None
    severity: Optional[Severity] = None


class DischargeResult(BaseModel):
    patient: Patient
    duration: str


class EmptyBeds(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bed_ids: list[int] = Field(alias="bedIds")


class SyncEvent(BaseModel):
    """Flat record forwarded to the remote logging endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    action: SyncAction
    bed_id: int = Field(alias="bedId")
    name: str
    mrn: str
    diagnosis: str
    visit_date: str = Field(alias="visitDate")
    visit_time: str = Field(alias="visitTime")
    duration: str = ""


class OutboxEntry(BaseModel):
    event: SyncEvent
    attempts: int = 0
    next_attempt_at: float = 0.0


class SyncState(BaseModel):
    status: SyncStatus
    outbox: int


class StateRecord(Base):
    __tablename__ = "ward_state"
    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
