"""Debounced autosave of in-progress edits into the local draft store.

Each actively edited record owns at most one pending-flush timer: an edit
arms it, a further edit before it fires cancels and re-arms it, and firing
writes the most recent snapshot and clears it. A crash inside the debounce
window loses at most that window's edits.
"""

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from draftsync.config import get_settings
from draftsync.logging_config import log_autosave
from draftsync.storage.base import DraftStorage
from draftsync.types import LocalDraft, utc_now, validate_edited_fields

logger = logging.getLogger(__name__)


def _default_timer_factory(interval: float, function: Callable[..., Any], args=()):
    timer = threading.Timer(interval, function, args=args)
    timer.daemon = True
    return timer


class AutosaveScheduler:
    """Coalesces rapid edits into single local draft writes.

    Args:
        store: The local draft store to write snapshots into.
        debounce_seconds: Quiet period before a pending snapshot is written.
        clock: Returns the current UTC time; used to stamp ``saved_at``.
        timer_factory: ``(interval, function, args) -> timer`` with
            ``start()``/``cancel()``. Defaults to daemon ``threading.Timer``.
        session_id: Label used in the draft event log.
        data_dir: Directory for the draft event log. Defaults to settings.
    """

    def __init__(
        self,
        store: DraftStorage,
        debounce_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
        timer_factory: Optional[Callable[..., Any]] = None,
        session_id: str = "default",
        data_dir: Optional[Path] = None,
    ):
        if debounce_seconds is None:
            debounce_seconds = get_settings().debounce_seconds
        if debounce_seconds <= 0:
            raise ValueError("debounce_seconds must be positive")

        self._store = store
        self.debounce_seconds = debounce_seconds
        self._clock = clock
        self._timer_factory = timer_factory or _default_timer_factory
        self.session_id = session_id
        self.data_dir = data_dir

        self._lock = threading.Lock()
        # Serialises store writes so an older snapshot can never land after a newer one
        self._write_lock = threading.Lock()
        self._pending: Dict[str, Dict[str, Any]] = {}
        self._base_versions: Dict[str, Optional[int]] = {}
        self._timers: Dict[str, Any] = {}
        self._last_saved: Dict[str, datetime] = {}
        self._closed = False

    # === Edits ===

    def on_edit(
        self, record_id: str, snapshot: Mapping[str, Any], base_version: Optional[int] = None
    ) -> None:
        """Record the latest snapshot of explicitly edited fields and (re)arm the timer.

        ``snapshot`` is the cumulative set of fields edited in this session; it
        replaces any snapshot still waiting to be written.
        """
        fields = validate_edited_fields(snapshot)
        with self._lock:
            if self._closed:
                raise RuntimeError("AutosaveScheduler is closed")
            self._pending[record_id] = fields
            if base_version is not None:
                self._base_versions[record_id] = base_version
            self._arm(record_id)

    def _arm(self, record_id: str) -> None:
        # Caller holds self._lock
        existing = self._timers.pop(record_id, None)
        if existing is not None:
            existing.cancel()
        timer = self._timer_factory(self.debounce_seconds, self._on_timer, args=(record_id,))
        self._timers[record_id] = timer
        timer.start()

    def _on_timer(self, record_id: str) -> None:
        self.flush(record_id)

    # === Flushing ===

    def flush(self, record_id: str) -> bool:
        """Write the pending snapshot for a record now.

        Returns True if a draft was written. Storage failures are logged and
        swallowed; the snapshot stays pending and, unless the scheduler is
        closed, the timer is re-armed so the write is retried after another
        debounce interval.
        """
        with self._write_lock:
            with self._lock:
                fields = self._pending.pop(record_id, None)
                timer = self._timers.pop(record_id, None)
                base_version = self._base_versions.get(record_id)
            if timer is not None:
                timer.cancel()
            if fields is None:
                return False

            saved_at = self._clock()
            try:
                draft = LocalDraft(
                    profile_id=record_id,
                    saved_at=saved_at,
                    fields=fields,
                    base_version=base_version,
                )
                self._store.put(record_id, draft)
            except Exception as e:
                logger.warning(
                    f"Autosave of {record_id} failed, keeping edits in memory: {e}", exc_info=True
                )
                with self._lock:
                    # A newer snapshot may have arrived while we were writing
                    self._pending.setdefault(record_id, fields)
                    if not self._closed and record_id not in self._timers:
                        self._arm(record_id)
                log_autosave(
                    self.session_id, record_id, len(fields), ok=False, data_dir=self.data_dir
                )
                return False

            with self._lock:
                self._last_saved[record_id] = saved_at
            logger.debug(f"Autosaved {len(fields)} fields for {record_id}")
            log_autosave(self.session_id, record_id, len(fields), data_dir=self.data_dir)
            return True

    def flush_all(self) -> int:
        """Flush every pending snapshot. Returns the number of drafts written."""
        with self._lock:
            record_ids = list(self._pending)
        return sum(1 for record_id in record_ids if self.flush(record_id))

    def cancel(self, record_id: str) -> None:
        """Drop pending edits for a record without writing them."""
        with self._lock:
            self._pending.pop(record_id, None)
            self._base_versions.pop(record_id, None)
            timer = self._timers.pop(record_id, None)
        if timer is not None:
            timer.cancel()

    # === Introspection ===

    def is_pending(self, record_id: str) -> bool:
        with self._lock:
            return record_id in self._pending

    def pending_snapshot(self, record_id: str) -> Optional[Dict[str, Any]]:
        """The unwritten in-memory snapshot for a record, if any."""
        with self._lock:
            fields = self._pending.get(record_id)
            return dict(fields) if fields is not None else None

    def last_saved_at(self, record_id: str) -> Optional[datetime]:
        with self._lock:
            return self._last_saved.get(record_id)

    # === Lifecycle ===

    def close(self) -> None:
        """End the session: stop timers and write every pending snapshot."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            timers = list(self._timers.values())
        for timer in timers:
            timer.cancel()
        written = self.flush_all()
        if written:
            logger.info(f"Flushed {written} pending drafts on close")
        with self._lock:
            unsaved = sorted(self._pending)
        if unsaved:
            logger.error(
                f"Closed with unsaved edits for {', '.join(unsaved)}; local storage failed"
            )

    def __enter__(self) -> "AutosaveScheduler":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
