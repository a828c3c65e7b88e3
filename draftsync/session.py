"""Edit session lifecycle for a single record.

EditSession wires the sync controller, merge resolver and autosave scheduler
into the recovery state machine::

    UNRESOLVED --open(): no draft / stale--> CLEAN
    UNRESOLVED --open(): divergent--> AWAITING_DECISION
    AWAITING_DECISION --recover()--> MERGED --commit()--> CLEAN
    AWAITING_DECISION --discard()--> CLEAN
    CLEAN | MERGED --edit()--> DRAFTING --commit()--> CLEAN
    any --close()--> CLOSED

Edits are refused until ``open()`` has settled and any divergent draft has
been recovered or discarded, so nobody edits against a remote snapshot while
a possibly newer local draft sits underneath.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

from draftsync.autosave import AutosaveScheduler
from draftsync.errors import RemoteCommitFailure, SessionNotReadyError
from draftsync.merge import MergeResolver
from draftsync.storage.base import RemoteRecordStore
from draftsync.sync import SyncController
from draftsync.types import (
    LocalDraft,
    MergeResult,
    Record,
    ResolveResult,
    SessionState,
    SyncDecision,
    utc_now,
    validate_edited_fields,
)

logger = logging.getLogger(__name__)

_EDITABLE_STATES = (SessionState.CLEAN, SessionState.DRAFTING, SessionState.MERGED)


class EditSession:
    """One user's edit session for one record on this device."""

    def __init__(
        self,
        record_id: str,
        controller: SyncController,
        resolver: MergeResolver,
        scheduler: AutosaveScheduler,
        remote_store: RemoteRecordStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        if not record_id or not record_id.strip():
            raise ValueError("Record ID cannot be empty")
        self.record_id = record_id
        self._controller = controller
        self._resolver = resolver
        self._scheduler = scheduler
        self._remote_store = remote_store
        self._clock = clock

        self.state = SessionState.UNRESOLVED
        self.remote: Optional[Record] = None
        self._baseline: Optional[Record] = None
        self._local: Optional[LocalDraft] = None
        self._edited: Dict[str, Any] = {}
        self.last_merge: Optional[MergeResult] = None

    def _require(self, action: str, *states: SessionState) -> None:
        if self.state not in states:
            raise SessionNotReadyError(self.record_id, self.state.value, action)

    @property
    def pending_draft(self) -> Optional[LocalDraft]:
        """The divergent draft awaiting a recover/discard decision."""
        return self._local if self.state == SessionState.AWAITING_DECISION else None

    @property
    def edited_fields(self) -> Dict[str, Any]:
        return dict(self._edited)

    # === Entry ===

    def open(self) -> ResolveResult:
        """Resolve the local draft against the remote record.

        Raises:
            RemoteFetchFailure: the remote record could not be loaded; the
                session stays UNRESOLVED and ``open`` may be retried.
        """
        self._require("open", SessionState.UNRESOLVED)
        result = self._controller.resolve(self.record_id)
        self.remote = result.remote
        self._baseline = result.remote

        if result.decision == SyncDecision.LOCAL_DIVERGENT:
            self._local = result.local
            self.state = SessionState.AWAITING_DECISION
        else:
            self.state = SessionState.CLEAN
        logger.debug(f"Session for {self.record_id} opened: {result.decision.value}")
        return result

    # === Recovery decision ===

    def recover(self) -> MergeResult:
        """Recover the divergent draft; its merge becomes the edit baseline.

        The draft stays in local storage until ``commit`` succeeds.
        """
        self._require("recover", SessionState.AWAITING_DECISION)
        result = self._resolver.recover(self.remote, self._local)
        self.last_merge = result
        self._baseline = result.record
        self._edited = dict(self._local.fields)
        self._local = None
        self.state = SessionState.MERGED
        return result

    def discard(self) -> None:
        """Discard the divergent draft; the remote record becomes the baseline."""
        self._require("discard", SessionState.AWAITING_DECISION)
        self._resolver.discard(self.record_id)
        self._scheduler.cancel(self.record_id)
        self._local = None
        self._edited = {}
        self._baseline = self.remote
        self.state = SessionState.CLEAN

    # === Editing ===

    def edit(self, changes: Mapping[str, Any]) -> None:
        """Apply explicitly edited field values and schedule an autosave.

        Setting a field to None records an intentional clear.
        """
        self._require("edit", *_EDITABLE_STATES)
        self._edited.update(validate_edited_fields(changes))
        base_version = self.remote.version if self.remote is not None else None
        self._scheduler.on_edit(self.record_id, dict(self._edited), base_version=base_version)
        self.state = SessionState.DRAFTING

    def current_record(self) -> Record:
        """The baseline record with this session's edits applied."""
        base = self._baseline if self._baseline is not None else Record(id=self.record_id)
        return replace(base, **self._edited)

    # === Commit ===

    def commit(self, record: Optional[Record] = None) -> Record:
        """Write the current record through the remote store and clear the draft.

        Pending edits are flushed to local storage first, so a failed commit
        leaves the draft in place for the next session.

        Raises:
            RemoteCommitFailure: the write failed; session state is unchanged.
        """
        self._require("commit", *_EDITABLE_STATES)
        record = record or self.current_record()
        if record.id != self.record_id:
            raise ValueError(f"Cannot commit record {record.id} from session for {self.record_id}")
        stamped_at = self._clock()
        if record.last_modified_at is not None:
            stamped_at = max(stamped_at, record.last_modified_at)
        record = replace(record, last_modified_at=stamped_at)

        self._scheduler.flush(self.record_id)
        try:
            stored = self._remote_store.commit_record(self.record_id, record)
        except RemoteCommitFailure:
            raise
        except Exception as e:
            logger.error(f"Commit of {self.record_id} failed: {e}", exc_info=True)
            raise RemoteCommitFailure(self.record_id, str(e)) from e

        self._scheduler.cancel(self.record_id)
        self._controller.confirm_committed(self.record_id)
        self.remote = stored
        self._baseline = stored
        self._edited = {}
        self.last_merge = None
        self.state = SessionState.CLEAN
        logger.info(f"Committed {self.record_id}, local draft cleared")
        return stored

    # === Exit ===

    def close(self) -> None:
        """End the session, writing any pending edits to local storage."""
        if self.state == SessionState.CLOSED:
            return
        self._scheduler.flush(self.record_id)
        self.state = SessionState.CLOSED

    def __enter__(self) -> "EditSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
