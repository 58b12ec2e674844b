from __future__ import annotations


class ScheduleError(Exception):
    """Base class for every error the schedule core raises on purpose."""

    kind = "schedule_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class IdentityNotResolved(ScheduleError):
    kind = "identity_not_resolved"


class ValidationError(ScheduleError):
    kind = "validation_error"

    def __init__(self, message: str, *, index: int | None = None) -> None:
        if index is not None:
            message = f"update #{index}: {message}"
        super().__init__(message)
        self.index = index


class LockError(ScheduleError):
    """The edit window is closed and the caller carries no admin override."""

    kind = "locked"


class ForbiddenTarget(ScheduleError):
    kind = "forbidden_target"


class PermissionDenied(ScheduleError):
    kind = "permission_denied"


class StorageTransient(ScheduleError):
    """Timeout or connection failure. Safe for the caller to retry."""

    kind = "storage_transient"


class StorageFatal(ScheduleError):
    kind = "storage_fatal"
