"""Merge resolver for draftsync.

Reconciles a divergent local draft with the remote record using a
deterministic field-level override: every field the draft explicitly set
wins, every other field comes from the remote. Neither merge nor discard
writes to the remote store; committing the result belongs to the caller.
"""

import copy
import hashlib
import json
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from draftsync.errors import LocalStorageFailure
from draftsync.logging_config import log_discard, log_recover
from draftsync.storage.base import DraftStorage
from draftsync.types import LocalDraft, MergeResult, Record, as_utc, utc_now

logger = logging.getLogger(__name__)

# Smallest step that keeps the merge strictly newer than both inputs
TIMESTAMP_EPSILON = timedelta(microseconds=1)


class MergeResolver:
    """Produces merged records and executes the recover/discard choices.

    Args:
        draft_store: The local draft store (used by ``discard``).
        clock: Returns the current UTC time.
        session_id: Label used in the draft event log.
        data_dir: Directory for the draft event log. Defaults to settings.
    """

    def __init__(
        self,
        draft_store: DraftStorage,
        clock: Callable[[], datetime] = utc_now,
        session_id: str = "default",
        data_dir: Optional[Path] = None,
    ):
        self._drafts = draft_store
        self._clock = clock
        self.session_id = session_id
        self.data_dir = data_dir

    def merge(self, remote: Record, local: LocalDraft) -> MergeResult:
        """Overlay the draft's explicitly edited fields on the remote record.

        Inputs are not mutated. The result's ``last_modified_at`` is strictly
        greater than both ``remote.last_modified_at`` and ``local.saved_at``.
        """
        if local.profile_id != remote.id:
            raise ValueError(f"Draft for {local.profile_id} cannot be merged into {remote.id}")

        merged_at = self._merge_timestamp(remote, local)
        overrides = copy.deepcopy(local.fields)
        record = replace(copy.deepcopy(remote), **overrides, last_modified_at=merged_at)

        overridden = tuple(
            name for name in sorted(local.fields) if getattr(remote, name) != local.fields[name]
        )
        return MergeResult(
            record=record,
            merged_at=merged_at,
            overridden_fields=overridden,
            diff_hash=self._build_diff_hash(remote, local),
        )

    def recover(self, remote: Record, local: LocalDraft) -> MergeResult:
        """User chose to recover: produce the record the caller should commit.

        The draft is kept until the caller confirms the commit, so a failed
        remote write does not lose the user's work.
        """
        result = self.merge(remote, local)
        logger.info(
            f"Recovered draft for {remote.id}: "
            f"{len(result.overridden_fields)} fields differ from remote"
        )
        log_recover(
            self.session_id, remote.id, result.overridden_fields, data_dir=self.data_dir
        )
        return result

    def discard(self, record_id: str) -> None:
        """Permanently delete the local draft. The user's local edits are lost.

        Idempotent: discarding a record without a draft is a no-op.
        """
        try:
            self._drafts.clear(record_id)
        except LocalStorageFailure as e:
            # The draft may resurface on the next resolve; the user can discard again
            logger.warning(f"Could not delete discarded draft for {record_id}: {e}")
        else:
            logger.info(f"Discarded local draft for {record_id}")
        log_discard(self.session_id, record_id, data_dir=self.data_dir)

    def _merge_timestamp(self, remote: Record, local: LocalDraft) -> datetime:
        newest_input = local.saved_at
        if remote.last_modified_at is not None:
            newest_input = max(newest_input, as_utc(remote.last_modified_at))
        return max(self._clock(), newest_input + TIMESTAMP_EPSILON)

    def _build_diff_hash(self, remote: Record, local: LocalDraft) -> Optional[str]:
        """Build a deterministic hash of the reconciled pair for auditing."""
        try:
            payload: Dict[str, Any] = {
                "local": local.to_dict(),
                "remote": remote.to_dict(),
            }
            return hashlib.sha256(
                json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
            ).hexdigest()
        except (TypeError, ValueError) as exc:
            logger.debug(
                "Swallowed %s in _build_diff_hash: %s", type(exc).__name__, exc, exc_info=True
            )
            return None
