"""
Shared draft-sync types for draftsync.

All record and draft dataclasses live here. These are the shared vocabulary
between the local draft store, the autosave scheduler, the sync controller
and the merge resolver.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from draftsync.errors import UnknownFieldError

# === Shared Utility Functions ===


def utc_now() -> datetime:
    """Get current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(s: Optional[str]) -> Optional[datetime]:
    """Parse ISO datetime string, normalising naive values to UTC.

    Returns None for empty input. Raises ValueError on malformed input.
    """
    if not s:
        return None
    return as_utc(datetime.fromisoformat(s.replace("Z", "+00:00")))


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Treat a naive datetime as UTC; aware values are returned unchanged."""
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime as ISO string."""
    if dt is None:
        return None
    return dt.isoformat()


# === Enums ===


class SyncDecision(str, Enum):
    """Relationship between a local draft and the remote record."""

    NO_LOCAL_DRAFT = "no_local_draft"  # Nothing to reconcile
    LOCAL_STALE = "local_stale"  # Draft no newer than remote, discarded silently
    LOCAL_DIVERGENT = "local_divergent"  # Draft newer than remote, user must choose


class DraftOrigin(str, Enum):
    """Where a draft's state lives. Drafts are never committed state."""

    LOCAL = "local"


class SessionState(str, Enum):
    """Recovery lifecycle of a single record within an edit session."""

    UNRESOLVED = "unresolved"  # resolve() not yet settled
    CLEAN = "clean"
    DRAFTING = "drafting"
    AWAITING_DECISION = "awaiting_decision"
    MERGED = "merged"  # MergeResult handed to caller, commit pending
    CLOSED = "closed"


# === Records ===


@dataclass
class Record:
    """A profile/memorial document as persisted by the remote store."""

    id: str
    name: str = ""
    profile_type: str = "memorial"  # "personal" | "memorial"
    status: str = "draft"  # "draft" | "published" | "archived"
    is_public: bool = False
    description: Optional[str] = None
    biography: Optional[str] = None
    image_url: Optional[str] = None
    date_of_birth: Optional[str] = None
    date_of_death: Optional[str] = None
    birth_location: Optional[str] = None
    death_location: Optional[str] = None
    life_story: Optional[str] = None
    tags: Optional[List[str]] = None
    categories: Optional[List[str]] = None
    # Write metadata
    last_modified_at: Optional[datetime] = None
    last_modified_by: Optional[str] = None
    version: int = 1

    def __post_init__(self):
        # Remote stores are not required to send aware timestamps
        self.last_modified_at = as_utc(self.last_modified_at)

    def to_dict(self) -> Dict[str, Any]:
        d = {f.name: getattr(self, f.name) for f in fields(self)}
        for key in ("tags", "categories"):
            if d[key] is not None:
                d[key] = list(d[key])
        d["last_modified_at"] = format_datetime(self.last_modified_at)
        return d


# Metadata owned by whichever writer persists the record; never edited by users.
RECORD_METADATA_FIELDS = frozenset({"id", "last_modified_at", "last_modified_by", "version"})

EDITABLE_FIELDS: Tuple[str, ...] = tuple(
    f.name for f in fields(Record) if f.name not in RECORD_METADATA_FIELDS
)


def validate_edited_fields(changes: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``changes`` after checking every key is editable."""
    for name in changes:
        if name not in EDITABLE_FIELDS:
            raise UnknownFieldError(name)
    return {k: (list(v) if isinstance(v, list) else v) for k, v in changes.items()}


@dataclass
class LocalDraft:
    """Device-local, uncommitted snapshot of in-progress edits.

    ``fields`` only holds fields the user explicitly edited: a key mapped to
    None means the user cleared the field, a missing key means untouched.
    """

    profile_id: str
    saved_at: datetime
    fields: Dict[str, Any] = field(default_factory=dict)
    origin: DraftOrigin = DraftOrigin.LOCAL
    base_version: Optional[int] = None

    def __post_init__(self):
        if not self.profile_id:
            raise ValueError("Draft profile_id cannot be empty")
        if self.saved_at.tzinfo is None:
            raise ValueError("Draft saved_at must be timezone-aware")
        self.fields = validate_edited_fields(self.fields)

    def is_edited(self, name: str) -> bool:
        return name in self.fields

    def to_dict(self) -> Dict[str, Any]:
        return {
            "profile_id": self.profile_id,
            "saved_at": format_datetime(self.saved_at),
            "fields": dict(self.fields),
            "origin": self.origin.value,
            "base_version": self.base_version,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LocalDraft":
        saved_at = parse_datetime(data.get("saved_at"))
        if saved_at is None:
            raise ValueError("Draft is missing saved_at")
        return cls(
            profile_id=data["profile_id"],
            saved_at=saved_at,
            fields=dict(data.get("fields") or {}),
            origin=DraftOrigin(data.get("origin", DraftOrigin.LOCAL.value)),
            base_version=data.get("base_version"),
        )


# === Results ===


@dataclass
class ResolveResult:
    """Outcome of classifying a local draft against the remote record."""

    decision: SyncDecision
    remote: Optional[Record]  # None: record does not exist remotely (fresh creation)
    local: Optional[LocalDraft] = None  # Only set when divergent

    @property
    def needs_decision(self) -> bool:
        return self.decision == SyncDecision.LOCAL_DIVERGENT


@dataclass
class MergeResult:
    """A reconciled record produced by recovering a divergent draft."""

    record: Record
    merged_at: datetime
    overridden_fields: Tuple[str, ...] = ()
    diff_hash: Optional[str] = None

    @property
    def changed(self) -> bool:
        return bool(self.overridden_fields)
