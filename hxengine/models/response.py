"""
Response models for hxengine
"""
from __future__ import annotations
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from hxengine.models import headers as hx
from hxengine.models.request import RequestDescriptor

logger = logging.getLogger(__name__)


def parse_event_header(value: Optional[str]) -> List[Tuple[str, Dict[str, Any]]]:
    """Parse ``HX-Trigger`` style headers into ``(event name, detail)`` pairs."""
    if not value or not value.strip():
        return []
    value = value.strip()
    if value.startswith("{"):
        try:
            data = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed event header: %s", value[:200])
            return []
        events = []
        for name, detail in data.items():
            if not isinstance(detail, dict):
                detail = {"value": detail}
            events.append((name, detail))
        return events
    return [(name.strip(), {}) for name in value.split(",") if name.strip()]


class ResponseDirectives(BaseModel):
    """Directives the server sent in response headers."""

    push_url: Optional[str] = None
    replace_url: Optional[str] = None
    retarget: Optional[str] = None
    reswap: Optional[str] = None
    reselect: Optional[str] = None
    swap_response: Optional[bool] = None
    redirect: Optional[str] = None
    trigger: List[Tuple[str, Dict[str, Any]]] = Field(default_factory=list)
    trigger_after_settle: List[Tuple[str, Dict[str, Any]]] = Field(default_factory=list)

    @classmethod
    def from_headers(cls, headers: Dict[str, str]) -> "ResponseDirectives":
        def get(name: str) -> Optional[str]:
            return headers.get(name.lower())

        swap_response = get(hx.HX_SWAP_RESPONSE)
        return cls(
            push_url=get(hx.HX_PUSH_URL),
            replace_url=get(hx.HX_REPLACE_URL),
            retarget=get(hx.HX_RETARGET),
            reswap=get(hx.HX_RESWAP),
            reselect=get(hx.HX_RESELECT),
            swap_response=None if swap_response is None else swap_response.strip().lower() == "true",
            redirect=get(hx.HX_REDIRECT),
            trigger=parse_event_header(get(hx.HX_TRIGGER)),
            trigger_after_settle=parse_event_header(get(hx.HX_TRIGGER_AFTER_SETTLE)),
        )


class HxResponse(BaseModel):
    """An HTTP response received for a RequestDescriptor."""

    request: RequestDescriptor = Field(..., description="The request as actually sent")
    status_code: int = Field(..., description="HTTP status code")
    headers: Dict[str, str] = Field(default_factory=dict, description="Lower-cased response headers")
    text: str = Field("", description="Response body")
    url: str = Field("", description="Final response URL")

    class Config:
        arbitrary_types_allowed = True

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def directives(self) -> ResponseDirectives:
        return ResponseDirectives.from_headers(self.headers)
