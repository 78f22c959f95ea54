"""
MODULE OVERVIEW:
The typed data structures shared by the server and the CLI client, powered by Pydantic v2.

WHAT IS HAPPENING HERE:
The live feed sends three kinds of data-bearing events. They form a tagged variant on
their `type` field: `initial` (the snapshot), a change event (whatever `type` the
database notification carried, or a default tag) and `error`. Every variant knows
which SSE event name it travels under and how to flatten itself into the JSON body
the browser expects.
"""
from datetime import datetime, timezone
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field


def iso_now() -> str:
    """UTC timestamp with millisecond precision and a `Z` suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class InitialEvent(BaseModel):
    sse_event: ClassVar[str] = "message"

    type: Literal["initial"] = "initial"
    data: list[dict[str, Any]]
    timestamp: str = Field(default_factory=iso_now)

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data, "timestamp": self.timestamp}


class ChangeEvent(BaseModel):
    """One decoded NOTIFY payload. Unknown fields ride along as extras; `type` is forwarded as sent."""
    model_config = ConfigDict(extra="allow")
    sse_event: ClassVar[str] = "message"

    type: Any = "update"
    timestamp: str = Field(default_factory=iso_now)

    def to_payload(self) -> dict[str, Any]:
        # type first, notification fields in arrival order, timestamp last
        fields = {k: v for k, v in (self.model_extra or {}).items() if k not in ("type", "timestamp")}
        return {"type": self.type, **fields, "timestamp": self.timestamp}


class ErrorEvent(BaseModel):
    sse_event: ClassVar[str] = "error"

    type: Literal["error"] = "error"
    message: str

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "message": self.message}


OutboundEvent = InitialEvent | ChangeEvent | ErrorEvent


class VehicleListResponse(BaseModel):
    success: bool = True
    data: list[dict[str, Any]]


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class DbHealthResponse(BaseModel):
    success: bool
    message: str
    recordCount: int


class DashboardVehicle(BaseModel):
    """A vehicle record from the upstream sites API with lower-cased keys."""
    id: Any = None
    plate: Any = None
    branch: Any = None
    company: Any = None
    cost_code: Any = None
    speed: Any = None
    latitude: Any = None
    longitude: Any = None
    address: Any = None
    drivername: Any = None
    fuel_probe_1_level: Any = None
    fuel_probe_1_volume_in_tank: Any = None
    fuel_probe_1_temperature: Any = None
    fuel_probe_1_level_percentage: Any = None
    volume: Any = None
    loctime: Any = None
    last_message_date: Any
    updated_at: Any
    color_codes: Any = Field(default_factory=dict)
    client_notes: Any = None


class StreamStats(BaseModel):
    active_streams: int
    held_connections: int
    pool_size: int
    pool_idle: int
    total_streams_opened: int
    total_events_dispatched: int
    uptime_s: float
    server_time: datetime


class StreamMessage(BaseModel):
    """One data-bearing SSE block as seen by a consumer of the feed."""
    event: str = "message"
    data: dict[str, Any]
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
