"""Typed failures raised by the scheduling engine and its storage boundary."""


class SchedulingError(Exception):
    """Base class; ``code`` is the stable machine-readable kind."""

    code = "scheduling_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class InvalidArgument(SchedulingError):
    code = "invalid_argument"


class NotFound(SchedulingError):
    code = "not_found"


class Forbidden(SchedulingError):
    code = "forbidden"


class SlotUnavailable(SchedulingError):
    code = "slot_unavailable"


class InvalidState(SchedulingError):
    code = "invalid_state"


class StorageFailure(SchedulingError):
    code = "storage_failure"


# ---- store-level signals (not surfaced to API callers directly) ----

class StoreConflict(Exception):
    """Storage rejected a write because of a uniqueness / precondition clash."""


class TransientStorageError(Exception):
    """Storage failure worth retrying (lock timeout, deadlock, dropped connection)."""
