"""Local logging for draftsync.

Two streams are written under ``<data dir>/logs``:

- ``local-YYYY-MM-DD.log``: the regular ``draftsync`` logger output
- ``draft-events-YYYY-MM-DD.log``: one line per draft lifecycle event
  (autosave, resolve, recover, discard), for reconstructing what happened to
  a user's unsaved work

The data dir and level default to ``Settings.resolved_data_dir`` and
``Settings.log_level``; pass ``data_dir`` to log under a specific directory.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from draftsync.config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _log_dir(data_dir: Optional[Path] = None) -> Path:
    log_dir = Path(data_dir or get_settings().resolved_data_dir) / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def setup_draftsync_logging(
    session_id: str = "default",
    level: Optional[str] = None,
    data_dir: Optional[Path] = None,
) -> logging.Logger:
    """Configure the ``draftsync`` logger with a dated file handler.

    Args:
        session_id: Label included in the startup debug line.
        level: Log level name. Defaults to ``Settings.log_level``.
        data_dir: Directory whose ``logs/`` subdirectory receives the file.
            Defaults to ``Settings.resolved_data_dir``.

    Calling this more than once reuses the existing handlers.
    """
    level_name = (level or get_settings().log_level or "INFO").upper()
    if level_name not in _VALID_LEVELS:
        level_name = "INFO"
    log_level = getattr(logging, level_name)

    logger = logging.getLogger("draftsync")
    logger.setLevel(log_level)

    log_file = _log_dir(data_dir) / f"local-{datetime.now().strftime('%Y-%m-%d')}.log"
    formatter = logging.Formatter(LOG_FORMAT)

    has_file = any(isinstance(h, logging.FileHandler) for h in logger.handlers)
    if not has_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    has_console = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in logger.handlers
    )
    if log_level == logging.DEBUG and not has_console:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(formatter)
        logger.addHandler(console)

    logger.debug(f"Logging configured for session {session_id} at {level_name}")
    return logger


def log_draft_event(
    event_type: str,
    details: str,
    session_id: str = "default",
    data_dir: Optional[Path] = None,
) -> None:
    """Append a draft lifecycle event to the daily event log.

    Event logging must never interfere with editing, so failures are
    reported on the ``draftsync`` logger and otherwise ignored.
    """
    try:
        event_file = (
            _log_dir(data_dir) / f"draft-events-{datetime.now().strftime('%Y-%m-%d')}.log"
        )
        timestamp = datetime.now().isoformat(timespec="seconds")
        with open(event_file, "a", encoding="utf-8") as f:
            f.write(f"{timestamp} | {event_type} | session={session_id} | {details}\n")
    except OSError as e:
        logging.getLogger("draftsync").warning(f"Failed to write draft event log: {e}")


def log_autosave(
    session_id: str,
    record_id: str,
    field_count: int,
    ok: bool = True,
    data_dir: Optional[Path] = None,
) -> None:
    status = "ok" if ok else "failed"
    log_draft_event(
        "autosave",
        f"record={record_id}, fields={field_count}, status={status}",
        session_id,
        data_dir,
    )


def log_resolve(
    session_id: str, record_id: str, decision: str, data_dir: Optional[Path] = None
) -> None:
    log_draft_event("resolve", f"record={record_id}, decision={decision}", session_id, data_dir)


def log_recover(
    session_id: str, record_id: str, overridden_fields, data_dir: Optional[Path] = None
) -> None:
    fields_str = ",".join(overridden_fields) if overridden_fields else "-"
    log_draft_event("recover", f"record={record_id}, fields={fields_str}", session_id, data_dir)


def log_discard(session_id: str, record_id: str, data_dir: Optional[Path] = None) -> None:
    log_draft_event("discard", f"record={record_id}", session_id, data_dir)
