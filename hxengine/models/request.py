"""
Request models for hxengine
"""
from __future__ import annotations
import json
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode, urlsplit, urlunsplit

from bs4 import Tag
from pydantic import BaseModel, Field

from hxengine.dom.document import FileField
from hxengine.models.swap import SwapSpec


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class BodyEncoding(str, Enum):
    URLENCODED = "urlencoded"
    MULTIPART = "multipart"
    JSON = "json"


class SyncStrategy(str, Enum):
    DROP = "drop"
    ABORT = "abort"
    REPLACE = "replace"
    QUEUE_FIRST = "queue first"
    QUEUE_LAST = "queue last"
    QUEUE_ALL = "queue all"

    @classmethod
    def lookup(cls, name: str) -> Optional["SyncStrategy"]:
        normalized = " ".join(name.split()).lower()
        if normalized == "queue":
            return cls.QUEUE_LAST
        for member in cls:
            if member.value == normalized:
                return member
        return None

    @property
    def aborts_active(self) -> bool:
        return self in (SyncStrategy.ABORT, SyncStrategy.REPLACE)


class SyncSpec(BaseModel):
    """The sync scope a request belongs to and how overlaps are resolved."""

    scope: Tag = Field(..., description="Element whose identity keys the sync scope")
    strategy: SyncStrategy = Field(SyncStrategy.ABORT, description="Overlap resolution strategy")

    class Config:
        arbitrary_types_allowed = True
        frozen = True


def form_value(value: Any) -> str:
    """Serialize a parameter value for url-encoded or multipart bodies."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


class RequestDescriptor(BaseModel):
    """Everything needed to send one request. One instance per attempt."""

    request_id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Unique id")
    method: HttpMethod = Field(HttpMethod.GET, description="HTTP method")
    url: str = Field(..., description="Resolved URL, without GET parameters")
    parameters: Tuple[Tuple[str, Any], ...] = Field((), description="Ordered parameters; keys may repeat")
    files: Tuple[Tuple[str, FileField], ...] = Field((), description="File fields for multipart bodies")
    headers: Dict[str, str] = Field(default_factory=dict, description="Request headers")
    encoding: BodyEncoding = Field(BodyEncoding.URLENCODED, description="Body encoding")
    element: Optional[Tag] = Field(None, description="Element that issued the request")
    target: Optional[Tag] = Field(None, description="Swap target")
    swap: SwapSpec = Field(default_factory=SwapSpec, description="Primary swap specification")
    select: Optional[str] = Field(None, description="Selector extracting part of the response")
    sync: Optional[SyncSpec] = Field(None, description="Synchronization scope")
    trigger_event: Optional[str] = Field(None, description="Name of the event that fired")
    push_url: Optional[str] = Field(None, description="URL to push after swap, if any")
    replace_url: Optional[str] = Field(None, description="URL to replace after swap, if any")
    history_cache: bool = Field(True, description="Whether a snapshot may be captured")
    indicators: Tuple[Tag, ...] = Field((), description="Elements flagged while in flight")
    timeout: Optional[float] = Field(None, description="Per-request timeout in seconds")
    navigation: bool = Field(False, description="Full-page navigation into the history root")
    history_restore: bool = Field(False, description="Re-fetch after a history cache miss")

    class Config:
        arbitrary_types_allowed = True
        frozen = True

    @property
    def full_url(self) -> str:
        """The URL as sent: GET parameters are appended to the query string."""
        if self.method != HttpMethod.GET or not self.parameters:
            return self.url
        parts = urlsplit(self.url)
        query = urlencode([(key, form_value(value)) for key, value in self.parameters])
        if parts.query:
            query = f"{parts.query}&{query}"
        return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))

    def values(self, key: str) -> List[Any]:
        return [value for name, value in self.parameters if name == key]

    def value(self, key: str) -> Optional[Any]:
        found = self.values(key)
        return found[-1] if found else None


class HxRequestInfo(BaseModel):
    """Server-side view of the HX-* headers on an inbound request."""

    is_hx: bool = Field(False, description="HX-Request header present")
    trigger: Optional[str] = Field(None, description="Selector of the requesting element")
    trigger_name: Optional[str] = Field(None, description="Name of the requesting element")
    target: Optional[str] = Field(None, description="Selector of the swap target")
    trigger_event: Optional[str] = Field(None, description="Event that fired the request")
    current_url: Optional[str] = Field(None, description="Client document URL")
    history_restore: bool = Field(False, description="History cache miss re-fetch")

    @classmethod
    def from_headers(cls, headers) -> "HxRequestInfo":
        """Read the HX-* request headers from any case-insensitive mapping."""
        def flag(name: str) -> bool:
            return (headers.get(name) or "").strip().lower() == "true"

        return cls(
            is_hx=flag("HX-Request"),
            trigger=headers.get("HX-Trigger"),
            trigger_name=headers.get("HX-Trigger-Name"),
            target=headers.get("HX-Target"),
            trigger_event=headers.get("HX-Trigger-Event"),
            current_url=headers.get("HX-Current-URL"),
            history_restore=flag("HX-History-Restore-Request"),
        )

    @property
    def wants_fragment(self) -> bool:
        """A hypermedia request that is not re-fetching a whole page for history."""
        return self.is_hx and not self.history_restore
