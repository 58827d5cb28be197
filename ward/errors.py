class WardError(Exception):
    """Base class for every error raised by the ward engine."""


class InvalidStateError(WardError):
    """A bed's current status does not allow the requested operation."""


class BedNotFoundError(InvalidStateError):
    def __init__(self, bed_id: int, total_beds: int):
        super().__init__(f"Bed {bed_id} does not exist (valid ids are 1..{total_beds})")
        self.bed_id = bed_id


class PersistenceError(WardError):
    """The durable store could not be read or written."""


class SyncTransportError(WardError):
    """An outbound sync event could not be delivered."""
