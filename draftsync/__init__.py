"""
draftsync - Local-first draft synchronization for profile records.

Autosaved local drafts, conflict detection against the remote record, and
explicit recover/discard.
"""

from .autosave import AutosaveScheduler
from .core import DraftSync
from .errors import (
    DraftSyncError,
    LocalStorageFailure,
    RemoteCommitFailure,
    RemoteFetchFailure,
    SessionNotReadyError,
    UnknownFieldError,
)
from .merge import MergeResolver
from .session import EditSession
from .sync import SyncController
from .types import (
    EDITABLE_FIELDS,
    LocalDraft,
    MergeResult,
    Record,
    ResolveResult,
    SessionState,
    SyncDecision,
)

try:
    from importlib.metadata import version

    __version__ = version("draftsync")
except Exception:
    __version__ = "0.0.0"

__all__ = [
    "DraftSync",
    "EditSession",
    "AutosaveScheduler",
    "SyncController",
    "MergeResolver",
    "Record",
    "LocalDraft",
    "MergeResult",
    "ResolveResult",
    "SyncDecision",
    "SessionState",
    "EDITABLE_FIELDS",
    "DraftSyncError",
    "RemoteFetchFailure",
    "RemoteCommitFailure",
    "LocalStorageFailure",
    "UnknownFieldError",
    "SessionNotReadyError",
]
