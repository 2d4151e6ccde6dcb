"""Error kinds raised by the scheduling core and its HTTP client."""


class SchedulingError(Exception):
    """Base class for availability and booking errors."""


class ValidationError(SchedulingError, ValueError):
    """Malformed or unaligned time values, or a block whose start is not before its end."""


class FetchError(SchedulingError):
    """Reading rules, exceptions or bookings from the backend failed. Safe to retry."""


class CommitError(SchedulingError):
    """A write sequence failed before anything was changed. Safe to retry in full."""


class PartialCommitError(CommitError):
    """A write sequence failed after some deletes or creates already went through.

    The persisted schedule now matches neither the old nor the new intent, so the
    caller must re-fetch before allowing another edit.
    """

    def __init__(self, message: str, *, deleted: list | None = None, created: list | None = None, pending: int = 0):
        super().__init__(message)
        self.deleted = list(deleted or [])
        self.created = list(created or [])
        self.pending = pending


class StaleScheduleError(SchedulingError):
    """The edit session was left inconsistent by a partial commit and must be reloaded."""


class PastDateEditRejected(SchedulingError):
    """An edit touched a date before today. Swallowed by the edit session."""
