r"""
Text encoding of Server-Sent Events frames.

Frames are built with sse-starlette's `ServerSentEvent` using a bare `\n`
separator, so a named event comes out as `event: <name>\ndata: <json>\n\n`,
an unnamed one as `data: <json>\n\n` and a comment as `: <text>\n\n`.
"""
from typing import Any

from pydantic_core import to_json
from sse_starlette.sse import ServerSentEvent

from energyrite_live.shared.models import OutboundEvent

SEP = "\n"


def dump_json(payload: Any) -> str:
    """Compact JSON; datetimes as ISO8601, decimals as strings, NaN/Infinity as null, anything else via str()."""
    return to_json(payload, fallback=str, inf_nan_mode="null").decode("utf-8")


def format_sse(data: Any, event: str | None = None) -> str:
    return ServerSentEvent(data=dump_json(data), event=event, sep=SEP).encode().decode("utf-8")


def format_comment(text: str) -> str:
    return ServerSentEvent(comment=text, sep=SEP).encode().decode("utf-8")


def format_event(event: OutboundEvent) -> str:
    return format_sse(event.to_payload(), event=event.sse_event)


CONNECTED = format_comment("connected")
HEARTBEAT = format_comment("heartbeat")
