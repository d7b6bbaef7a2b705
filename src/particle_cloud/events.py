"""
Data types for the Particle cloud event stream: the decoded Event and the
configuration that selects which stream to subscribe to.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Literal, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

# Particle publishes "2016-12-25T10:00:00.000Z"; older firmware and the docs also use "+0000".
_ISO8601_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
)

_INTEGER_RE = re.compile(r"[+-]?\d+")

StreamType = Literal["device", "product"]


def parse_iso8601(value: str) -> datetime | None:
    """
    Parse an ISO-8601 timestamp as sent by the Particle cloud.

    Args:
        value: The date string, e.g. "2016-12-25T10:00:00.000+0000".

    Returns:
        A timezone-aware datetime, or None if the string cannot be parsed.
    """
    for fmt in _ISO8601_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    return parsed if parsed.tzinfo is not None else None


class Event(BaseModel):
    """
    A single event received from a Particle event stream.

    Instances are immutable and compare structurally. They are normally built by
    the stream parser through `Event.from_payload`, which merges the event name
    from the `event:` line into the JSON object of the `data:` line.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1)
    published: datetime = Field(alias="published_at")
    ttl: int
    core_id: str = Field(alias="coreid")
    data: Optional[str] = None

    @field_validator("published", mode="before")
    @classmethod
    def _parse_published(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return value
        if not isinstance(value, str):
            raise ValueError("published_at must be an ISO-8601 string")
        parsed = parse_iso8601(value)
        if parsed is None:
            raise ValueError(f"unparseable published_at {value!r}")
        return parsed

    @field_validator("ttl", mode="before")
    @classmethod
    def _parse_ttl(cls, value: Any) -> Any:
        # JSON booleans are ints in Python; they are not a ttl.
        if isinstance(value, bool):
            raise ValueError("ttl must be numeric")
        if isinstance(value, int):
            return value
        if isinstance(value, str) and _INTEGER_RE.fullmatch(value):
            return int(value)
        raise ValueError(f"ttl must be an integer or integer string, got {value!r}")

    @field_validator("core_id", mode="before")
    @classmethod
    def _stringify_core_id(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("coreid is required")
        return value if isinstance(value, str) else str(value)

    @field_validator("data", mode="before")
    @classmethod
    def _only_string_data(cls, value: Any) -> Any:
        return value if isinstance(value, str) else None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Event | None:
        """
        Build an Event from a decoded `data:` object that already carries `name`.

        Returns:
            The Event, or None if a required field is missing or invalid.
        """
        try:
            return cls.model_validate(payload)
        except ValidationError:
            return None

    def to_dict(self) -> dict[str, Any]:
        """JSON representation using the wire field names."""
        out: dict[str, Any] = {
            "name": self.name,
            "published_at": self.published.isoformat(timespec="milliseconds"),
            "ttl": self.ttl,
            "coreid": self.core_id,
        }
        if self.data is not None:
            out["data"] = self.data
        return out


class EventSourceConfig(BaseModel):
    """
    Selects the event stream to subscribe to.

    - device streams cover the devices of the account, or every public event
      when `public_events` is set
    - product streams cover the devices of a product and need `product_id_or_slug`
    - `filter_prefix` limits the stream to event names starting with it
    """
    model_config = ConfigDict(extra="forbid")

    stream_type: StreamType = "device"
    public_events: bool = False
    filter_prefix: Optional[str] = None
    product_id_or_slug: Optional[str] = None
    device_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_product(self) -> EventSourceConfig:
        if self.stream_type == "product" and not self.product_id_or_slug:
            raise ValueError("product streams require product_id_or_slug")
        return self

    @property
    def url_path(self) -> str:
        """Path of the event endpoint, relative to the cloud base URL."""
        segments: list[str]
        if self.stream_type == "product":
            segments = ["v1", "products", self.product_id_or_slug or "", "events"]
        elif self.public_events:
            segments = ["v1", "events"]
            if self.device_id:
                segments.append(self.device_id)
        else:
            segments = ["v1", "devices"]
            if self.device_id:
                segments.append(self.device_id)
            segments.append("events")

        if self.filter_prefix:
            segments.append(self.filter_prefix)

        return "/" + "/".join(quote(s, safe="") for s in segments)
