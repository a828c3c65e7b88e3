"""Filesystem helpers for draftsync."""

import os
from pathlib import Path


def get_draftsync_home() -> Path:
    """Return the directory holding local drafts and logs.

    Honours ``DRAFTSYNC_DATA_DIR``; defaults to ``~/.draftsync``.
    """
    override = os.environ.get("DRAFTSYNC_DATA_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".draftsync"
