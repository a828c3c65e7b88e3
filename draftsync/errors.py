"""Exception hierarchy for draftsync.

Remote failures propagate to the caller. Local storage failures are raised by
the draft store's write paths and are expected to be swallowed by callers
that treat drafting as best-effort.
"""

from typing import Optional


class DraftSyncError(Exception):
    """Base class for all draftsync errors."""


class RemoteFetchFailure(DraftSyncError):
    """The remote record store could not be reached or returned an error."""

    def __init__(self, record_id: str, reason: str, status_code: Optional[int] = None):
        self.record_id = record_id
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to fetch record {record_id}: {reason}")


class RemoteCommitFailure(DraftSyncError):
    """The remote record store rejected or failed a commit."""

    def __init__(self, record_id: str, reason: str, status_code: Optional[int] = None):
        self.record_id = record_id
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to commit record {record_id}: {reason}")


class LocalStorageFailure(DraftSyncError):
    """A read or write against local draft storage failed."""

    def __init__(self, operation: str, record_id: Optional[str], reason: str):
        self.operation = operation
        self.record_id = record_id
        self.reason = reason
        target = f" for {record_id}" if record_id else ""
        super().__init__(f"Local draft {operation} failed{target}: {reason}")


class UnknownFieldError(DraftSyncError, ValueError):
    """A draft referenced a field outside the record's editable field set."""

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"Unknown or non-editable record field: {field_name!r}")


class SessionNotReadyError(DraftSyncError):
    """An edit session operation was attempted in the wrong lifecycle state."""

    def __init__(self, record_id: str, state: str, action: str):
        self.record_id = record_id
        self.state = state
        self.action = action
        super().__init__(f"Cannot {action} record {record_id} while session is {state}")
