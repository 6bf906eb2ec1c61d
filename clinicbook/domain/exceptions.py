import datetime as dt


class BookingError(Exception):
    """Base exception for all booking-related errors."""

    code: str = "error"


class StorageUnavailableError(BookingError):
    """Raised when the backing store is unreachable or not responding."""

    code = "unavailable"


class NotFoundError(BookingError):
    """Raised when a doctor or appointment does not exist."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} not found: {entity_id}")


class InvalidStateError(BookingError):
    """Raised when an operation is not allowed in the current state."""

    code = "invalid_state"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class SlotConflictError(BookingError):
    """Raised when the doctor already has an active appointment at that instant.

    Both the application pre-check and the storage uniqueness constraint
    raise this, so callers see a single conflict kind.
    """

    code = "conflict"

    def __init__(self, doctor_id: str, date_time: dt.datetime) -> None:
        self.doctor_id = doctor_id
        self.date_time = date_time
        super().__init__("Time slot is not available")


class ForbiddenError(BookingError):
    """Raised when the actor may not perform the requested mutation."""

    code = "forbidden"

    def __init__(self, reason: str = "Not authorized") -> None:
        self.reason = reason
        super().__init__(reason)


class BookingValidationError(BookingError):
    """Raised when a request is missing or carries malformed fields."""

    code = "validation_error"

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("; ".join(errors) or "Validation failed")
