"""HTTP client for the remote record store.

Handles credential resolution and record fetch/commit over the backend's
REST API. Zero local-storage coupling: pure HTTP/credential logic.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlparse

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from draftsync.config import Settings, get_settings
from draftsync.errors import RemoteCommitFailure, RemoteFetchFailure
from draftsync.types import Record, as_utc

logger = logging.getLogger(__name__)


_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1"})


def validate_backend_url(url: Optional[str], *, allow_localhost_http: bool = True) -> Optional[str]:
    """Check the record API base URL before the bearer token is sent to it.

    Profile records and the editor's token travel over this URL, so it must
    be https. Plain http is accepted only for a record API on the same
    machine (``localhost``/``127.0.0.1``), and only when
    ``allow_localhost_http`` is set.

    Returns:
        The URL unchanged if usable, else ``None`` (the reason is logged).
    """
    if not url:
        return None

    parsed = urlparse(url)
    reason = None
    if parsed.scheme not in ("https", "http"):
        reason = f"unsupported scheme {parsed.scheme!r}"
    elif not parsed.hostname:
        reason = "no host"
    elif parsed.scheme == "http" and not allow_localhost_http:
        reason = "plain http is disabled"
    elif parsed.scheme == "http" and parsed.hostname not in _LOCAL_HOSTS:
        reason = "plain http is only allowed for a local record API"

    if reason:
        logger.warning(f"Rejecting record API url: {reason}")
        return None
    return url


class RemoteRecordPayload(BaseModel):
    """Wire shape of a profile document as served by the backend (camelCase)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1)
    name: str = ""
    profile_type: str = Field(default="memorial", alias="type")
    status: str = "draft"
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
    last_modified_at: Optional[datetime] = None
    last_modified_by: Optional[str] = None
    version: int = 1

    @field_validator("last_modified_at")
    @classmethod
    def _assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)

    @classmethod
    def from_record(cls, record: Record) -> "RemoteRecordPayload":
        return cls.model_validate(record.to_dict())

    def to_record(self) -> Record:
        return Record(**self.model_dump(by_alias=False))


class HttpRecordStore:
    """Remote record store backed by the REST API at ``{backend_url}/profiles``.

    Args:
        backend_url: Base URL of the backend. Defaults to settings.
        auth_token: Bearer token. Defaults to settings.
        timeout: Request timeout in seconds.
        client: Optional preconfigured ``httpx.Client`` (closed by the caller).
    """

    def __init__(
        self,
        backend_url: Optional[str] = None,
        auth_token: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        url = validate_backend_url(backend_url or settings.backend_url)
        if not url:
            raise ValueError("A valid backend_url is required for the remote record store")

        self.backend_url = url.rstrip("/")
        self.auth_token = auth_token or settings.auth_token
        self.timeout = timeout or settings.request_timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self.timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    def _record_url(self, record_id: str) -> str:
        return f"{self.backend_url}/profiles/{quote(record_id, safe='')}"

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpRecordStore":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def fetch_record(self, record_id: str) -> Optional[Record]:
        """Fetch a record; None on 404, RemoteFetchFailure on any other failure."""
        try:
            resp = self._client.get(
                self._record_url(record_id), headers=self._headers(), timeout=self.timeout
            )
        except httpx.HTTPError as e:
            logger.error(f"Remote fetch failed for {record_id}: {e}", exc_info=True)
            raise RemoteFetchFailure(record_id, f"connection failed: {e}") from e

        if resp.status_code == 404:
            logger.debug(f"Remote record {record_id} not found")
            return None
        if resp.status_code != 200:
            logger.error(f"Remote fetch for {record_id} returned HTTP {resp.status_code}")
            raise RemoteFetchFailure(
                record_id, f"HTTP {resp.status_code}", status_code=resp.status_code
            )

        try:
            record = RemoteRecordPayload.model_validate(resp.json()).to_record()
        except (ValueError, ValidationError) as e:
            logger.error(f"Remote record {record_id} has an invalid payload: {e}")
            raise RemoteFetchFailure(record_id, f"invalid payload: {e}") from e

        if record.id != record_id:
            raise RemoteFetchFailure(record_id, f"backend returned record {record.id}")
        return record

    def commit_record(self, record_id: str, record: Record) -> Record:
        """Write a record and return the stored version as stamped by the backend."""
        body = RemoteRecordPayload.from_record(record).model_dump(mode="json", by_alias=True)
        try:
            resp = self._client.put(
                self._record_url(record_id),
                json=body,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.error(f"Remote commit failed for {record_id}: {e}", exc_info=True)
            raise RemoteCommitFailure(record_id, f"connection failed: {e}") from e

        if resp.status_code not in (200, 201):
            logger.error(f"Remote commit for {record_id} returned HTTP {resp.status_code}")
            raise RemoteCommitFailure(
                record_id, f"HTTP {resp.status_code}", status_code=resp.status_code
            )

        try:
            stored = RemoteRecordPayload.model_validate(resp.json()).to_record()
        except (ValueError, ValidationError) as e:
            raise RemoteCommitFailure(record_id, f"invalid response payload: {e}") from e

        if stored.last_modified_at is None:
            raise RemoteCommitFailure(record_id, "backend did not stamp lastModifiedAt")

        logger.info(f"Committed record {record_id} (v{stored.version})")
        return stored
