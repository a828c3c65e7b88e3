"""DraftSync: main interface for local-first draft synchronization.

Owns one draft store and one autosave scheduler for the process, and hands
out an EditSession per record being edited.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from draftsync.autosave import AutosaveScheduler
from draftsync.config import Settings, get_settings
from draftsync.merge import MergeResolver
from draftsync.session import EditSession
from draftsync.storage.base import DraftStorage, RemoteRecordStore
from draftsync.storage.sqlite import SQLiteDraftStore
from draftsync.sync import SyncController
from draftsync.types import utc_now

logger = logging.getLogger(__name__)


class DraftSync:
    """Wires draft storage, autosave, sync classification and merging.

    Multiple tabs or processes editing the same record each own their own
    draft writes; the store keeps whichever was written last.
    """

    def __init__(
        self,
        remote_store: RemoteRecordStore,
        draft_store: Optional[DraftStorage] = None,
        settings: Optional[Settings] = None,
        session_id: str = "default",
        clock: Callable[[], datetime] = utc_now,
        timer_factory: Optional[Callable[..., Any]] = None,
    ):
        """Initialize DraftSync.

        Args:
            remote_store: The authoritative record store.
            draft_store: Local draft store. Defaults to SQLite under the data dir.
            settings: Library settings. Defaults to environment settings.
            session_id: Label for the draft event log.
            clock: Returns the current UTC time.
            timer_factory: Autosave timer constructor (tests inject a fake).
        """
        self.settings = settings or get_settings()
        self.session_id = session_id
        self.remote_store = remote_store
        self.draft_store = draft_store or SQLiteDraftStore(self.settings.db_path)
        self._clock = clock
        data_dir = self.settings.resolved_data_dir

        self.scheduler = AutosaveScheduler(
            self.draft_store,
            debounce_seconds=self.settings.debounce_seconds,
            clock=clock,
            timer_factory=timer_factory,
            session_id=session_id,
            data_dir=data_dir,
        )
        self.controller = SyncController(
            remote_store, self.draft_store, session_id=session_id, data_dir=data_dir
        )
        self.resolver = MergeResolver(
            self.draft_store, clock=clock, session_id=session_id, data_dir=data_dir
        )

        logger.debug(
            f"DraftSync initialized with draft store: {type(self.draft_store).__name__}, "
            f"debounce: {self.settings.debounce_seconds}s"
        )

    def session(self, record_id: str) -> EditSession:
        """Create an unopened edit session for a record."""
        return EditSession(
            record_id,
            controller=self.controller,
            resolver=self.resolver,
            scheduler=self.scheduler,
            remote_store=self.remote_store,
            clock=self._clock,
        )

    def open_session(self, record_id: str) -> EditSession:
        """Create an edit session and resolve its local draft.

        Raises:
            RemoteFetchFailure: the remote record could not be loaded.
        """
        session = self.session(record_id)
        session.open()
        return session

    def purge_expired(self, max_age: Optional[timedelta] = None) -> int:
        """Delete drafts abandoned for longer than ``draft_max_age_days``."""
        max_age = max_age or timedelta(days=self.settings.draft_max_age_days)
        return self.draft_store.purge_expired(max_age)

    def close(self) -> None:
        """Flush pending autosaves and release resources."""
        self.scheduler.close()

    def __enter__(self) -> "DraftSync":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
