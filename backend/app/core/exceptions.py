class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class SchedulerError(AppError):
    """Raised when the scheduler encounters a logical error or invalid state."""
    def __init__(self, message: str, details: dict = None, status_code: int = 400):
        super().__init__(message, status_code=status_code, details=details)

class OverCapacityError(SchedulerError):
    """Requested weekly hours exceed the cells available in the grid."""
    def __init__(self, unmet: list[dict]):
        super().__init__(
            "Requested weekly hours exceed the available grid cells",
            details={"unmet_subjects": unmet},
            status_code=422,
        )

class NoContiguousBlockError(SchedulerError):
    """A lab subject could not find an adjacent run of free slots."""
    def __init__(self, subject_codes: list[str]):
        super().__init__(
            f"No contiguous block available for: {', '.join(subject_codes)}",
            details={"subject_codes": subject_codes},
            status_code=422,
        )

class ConflictsFoundError(AppError):
    """Publication was blocked by scheduling conflicts."""
    def __init__(self, conflicts: list[dict]):
        super().__init__(
            "Cannot publish timetable with conflicts",
            status_code=409,
            details={"conflicts": conflicts},
        )

class StaleStateError(AppError):
    """The published timetable set changed while a publication was in progress."""
    def __init__(self, message: str = "Published timetables changed during publication; retry the request"):
        super().__init__(message, status_code=409)

class InvalidTransitionError(AppError):
    def __init__(self, current: str, target: str):
        super().__init__(
            f"Cannot move timetable from {current} to {target}",
            status_code=409,
            details={"current": current, "target": target},
        )

class UnavailabilityOverlapError(AppError):
    def __init__(self, classroom_name: str, existing_id: str):
        super().__init__(
            f"Classroom {classroom_name} already has an overlapping unavailability window",
            status_code=409,
            details={"existing_id": existing_id},
        )

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class PermissionDeniedError(AppError):
    def __init__(self, message: str = "Insufficient permissions for this tenant"):
        super().__init__(message, status_code=403)

class DataStoreUnavailableError(AppError):
    """Infrastructure failure talking to the database. Callers should retry."""
    def __init__(self):
        super().__init__("Data store unavailable, please retry", status_code=503)

class IntegrityConflictError(AppError):
    """A write was rejected by a database constraint, e.g. a concurrent duplicate."""
    def __init__(self):
        super().__init__("Request conflicts with existing data", status_code=409)
