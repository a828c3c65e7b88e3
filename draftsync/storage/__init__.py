"""draftsync storage backends.

Local drafts live in SQLite on the device; the authoritative records live
behind the remote store's HTTP API.
"""

from .base import DraftStorage, RemoteRecordStore
from .cloud import HttpRecordStore, RemoteRecordPayload, validate_backend_url
from .sqlite import SQLiteDraftStore

__all__ = [
    # Protocols
    "DraftStorage",
    "RemoteRecordStore",
    # Implementations
    "SQLiteDraftStore",
    "HttpRecordStore",
    "RemoteRecordPayload",
    # Utilities
    "validate_backend_url",
]
