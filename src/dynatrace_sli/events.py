"""
CloudEvent envelopes exchanged with the Keptn event bus.

Inbound events arrive either in structured mode (the whole envelope is
the JSON body) or in binary mode (attributes in ``ce-*`` headers, data
in the body). Outbound events are always sent in structured mode.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

GET_SLI_EVENT_TYPE = "sh.keptn.internal.event.get-sli"
GET_SLI_DONE_EVENT_TYPE = "sh.keptn.internal.event.get-sli.done"

KEPTN_CONTEXT_EXTENSION = "shkeptncontext"
STRUCTURED_CONTENT_TYPE = "application/cloudevents+json"


class InvalidEventError(ValueError):
    """The request body is not a CloudEvent."""


class CloudEvent(BaseModel):
    """A CloudEvent carrying Keptn's context extension."""

    model_config = ConfigDict(extra="allow")

    specversion: str = "0.2"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: str
    source: str = ""
    time: Optional[str] = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    contenttype: Optional[str] = "application/json"
    shkeptncontext: str = ""
    data: Any = None

    @property
    def keptn_context(self) -> str:
        return self.shkeptncontext

    def to_structured(self) -> Dict[str, Any]:
        """Envelope as sent in structured mode."""
        return self.model_dump(by_alias=True, exclude_none=True)


def parse_structured(body: Any) -> CloudEvent:
    """Parse a structured-mode envelope."""
    if not isinstance(body, Mapping):
        raise InvalidEventError("event body must be a JSON object")
    payload = dict(body)
    # CloudEvents 1.0 renamed contenttype
    if "datacontenttype" in payload and "contenttype" not in payload:
        payload["contenttype"] = payload.pop("datacontenttype")
    try:
        return CloudEvent.model_validate(payload)
    except ValidationError as e:
        raise InvalidEventError(f"invalid cloudevent: {e}") from e


def parse_binary(headers: Mapping[str, str], data: Any) -> CloudEvent:
    """Parse a binary-mode event from ``ce-*`` headers and the body."""
    attributes: Dict[str, Any] = {}
    for name, value in headers.items():
        lower = name.lower()
        if lower.startswith("ce-"):
            attributes[lower[3:]] = value
    if "type" not in attributes:
        raise InvalidEventError("missing ce-type header")
    attributes["data"] = data
    attributes.setdefault("contenttype", headers.get("Content-Type"))
    try:
        return CloudEvent.model_validate(attributes)
    except ValidationError as e:
        raise InvalidEventError(f"invalid cloudevent: {e}") from e


def parse_event(headers: Mapping[str, str], body: Any) -> CloudEvent:
    """Parse an inbound event in whichever mode it was sent."""
    if any(name.lower() == "ce-type" for name in headers.keys()):
        return parse_binary(headers, body)
    return parse_structured(body)
