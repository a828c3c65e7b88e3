"""Storage protocols for draftsync.

This defines the interfaces the sync core depends on.
Currently supported:
- DraftStorage: device-local draft persistence (SQLiteDraftStore)
- RemoteRecordStore: the authoritative document store (HttpRecordStore)
"""

from abc import abstractmethod
from datetime import timedelta
from typing import List, Optional, Protocol, runtime_checkable

from draftsync.types import LocalDraft, Record


@runtime_checkable
class DraftStorage(Protocol):
    """Protocol for local draft persistence, keyed by record identity.

    Drafts are snapshots, not deltas: ``put`` replaces any previous draft for
    the same record.
    """

    @abstractmethod
    def get(self, record_id: str) -> Optional[LocalDraft]:
        """Get the draft for a record. Never raises; corrupt entries read as absent."""
        ...

    @abstractmethod
    def put(self, record_id: str, draft: LocalDraft) -> None:
        """Store a draft, replacing any previous one (last write wins)."""
        ...

    @abstractmethod
    def clear(self, record_id: str) -> None:
        """Delete the draft for a record. No-op if there is none."""
        ...

    @abstractmethod
    def list_profile_ids(self) -> List[str]:
        """List record ids that currently have a draft."""
        ...

    @abstractmethod
    def purge_expired(self, max_age: timedelta) -> int:
        """Delete drafts saved longer ago than ``max_age``. Returns the count removed."""
        ...


@runtime_checkable
class RemoteRecordStore(Protocol):
    """Protocol for the remote, authoritative record store.

    The store stamps ``last_modified_at`` on commit; callers trust the value
    it returns.
    """

    @abstractmethod
    def fetch_record(self, record_id: str) -> Optional[Record]:
        """Fetch a record. Returns None if it does not exist.

        Raises RemoteFetchFailure if the store cannot be reached.
        """
        ...

    @abstractmethod
    def commit_record(self, record_id: str, record: Record) -> Record:
        """Persist a record and return the stored version.

        Raises RemoteCommitFailure if the write fails.
        """
        ...
