"""Sync controller for draftsync.

SyncController classifies a record's local draft against the authoritative
remote record on entry into edit mode. It is evaluated once per explicit
entry into an edit session: one remote fetch, at most one local read, no
polling and no retries.
"""

import logging
from pathlib import Path
from typing import Optional

from draftsync.errors import RemoteFetchFailure
from draftsync.logging_config import log_resolve
from draftsync.storage.base import DraftStorage, RemoteRecordStore
from draftsync.types import LocalDraft, Record, ResolveResult, SyncDecision, as_utc

logger = logging.getLogger(__name__)


def classify(remote: Optional[Record], local: Optional[LocalDraft]) -> SyncDecision:
    """Classify a local draft against the remote record.

    A draft saved at or before the remote's last write carries nothing the
    remote lacks. A remote record with no ``last_modified_at`` cannot prove
    that, so any draft against it counts as divergent.
    """
    if remote is None or local is None:
        return SyncDecision.NO_LOCAL_DRAFT
    if remote.last_modified_at is None:
        return SyncDecision.LOCAL_DIVERGENT
    if local.saved_at <= as_utc(remote.last_modified_at):
        return SyncDecision.LOCAL_STALE
    return SyncDecision.LOCAL_DIVERGENT


class SyncController:
    """Decides what to do with a local draft when an edit session starts.

    Args:
        remote_store: The authoritative record store.
        draft_store: The device-local draft store.
        session_id: Label used in the draft event log.
        data_dir: Directory for the draft event log. Defaults to settings.
    """

    def __init__(
        self,
        remote_store: RemoteRecordStore,
        draft_store: DraftStorage,
        session_id: str = "default",
        data_dir: Optional[Path] = None,
    ):
        self._remote = remote_store
        self._drafts = draft_store
        self.session_id = session_id
        self.data_dir = data_dir

    def resolve(self, record_id: str) -> ResolveResult:
        """Classify the local draft for ``record_id`` against the remote record.

        Stale drafts are cleared before returning. Divergent drafts are kept
        until the caller recovers or discards them.

        Raises:
            RemoteFetchFailure: if the remote record could not be fetched.
        """
        try:
            remote = self._remote.fetch_record(record_id)
        except RemoteFetchFailure:
            raise
        except Exception as e:
            logger.error(f"Remote fetch for {record_id} failed: {e}", exc_info=True)
            raise RemoteFetchFailure(record_id, str(e)) from e

        if remote is None:
            # Fresh creation flow: a draft for a missing record is not a conflict
            logger.info(f"Record {record_id} not found remotely, starting fresh")
            return self._finish(record_id, ResolveResult(SyncDecision.NO_LOCAL_DRAFT, None))

        local = self._read_draft(record_id)
        decision = classify(remote, local)

        if decision == SyncDecision.LOCAL_STALE:
            logger.info(
                f"Local draft for {record_id} is stale "
                f"(saved {local.saved_at.isoformat()} <= remote {remote.last_modified_at.isoformat()}), "
                f"discarding"
            )
            self._clear_draft(record_id)
            return self._finish(record_id, ResolveResult(decision, remote))

        if decision == SyncDecision.LOCAL_DIVERGENT:
            logger.info(f"Local draft for {record_id} is newer than remote, recovery required")
            return self._finish(record_id, ResolveResult(decision, remote, local))

        return self._finish(record_id, ResolveResult(decision, remote))

    def confirm_committed(self, record_id: str) -> None:
        """Clear the draft once the caller has committed its content remotely."""
        self._clear_draft(record_id)

    def _read_draft(self, record_id: str) -> Optional[LocalDraft]:
        try:
            return self._drafts.get(record_id)
        except Exception as e:
            logger.warning(f"Local draft read failed for {record_id}, treating as absent: {e}")
            return None

    def _clear_draft(self, record_id: str) -> None:
        try:
            self._drafts.clear(record_id)
        except Exception as e:
            logger.warning(f"Could not clear local draft for {record_id}: {e}", exc_info=True)

    def _finish(self, record_id: str, result: ResolveResult) -> ResolveResult:
        log_resolve(self.session_id, record_id, result.decision.value, data_dir=self.data_dir)
        return result
