"""
MODULE OVERVIEW:
An HTTP client for the live vehicle feed.

WHAT IS HAPPENING HERE:
We use the HTTPX `stream()` context manager to keep the body open and split it into
SSE blocks on blank lines ourselves. Comment-only blocks (`: connected`,
`: heartbeat`) are counted but never surfaced as events, exactly as a browser's
EventSource ignores them. Everything else is decoded into a StreamMessage.
"""
import json

import httpx

from energyrite_live.client.base_client import BaseStreamClient
from energyrite_live.shared.models import StreamMessage


def parse_sse_block(block: str) -> tuple[StreamMessage | None, list[str]]:
    """Parse one blank-line-terminated block into (message or None, comment texts)."""
    event_type = "message"
    data_lines: list[str] = []
    comments: list[str] = []

    for line in block.split("\n"):
        if line.startswith(":"):
            comments.append(line[1:].strip())
        elif line.startswith("event:"):
            event_type = line.split(":", 1)[1].strip()
        elif line.startswith("data:"):
            data_lines.append(line.split(":", 1)[1].strip())

    if not data_lines:
        return None, comments
    try:
        data = json.loads("\n".join(data_lines))
    except json.JSONDecodeError:
        return None, comments
    if not isinstance(data, dict):
        data = {"value": data}
    return StreamMessage(event=event_type, data=data), comments


class VehicleStreamClient(BaseStreamClient):
    def __init__(self, client_id: str, server_base_url: str, cost_code: str | None = None,
                 limit: int | None = None, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(client_id, server_base_url)
        self.cost_code = cost_code
        self.limit = limit
        self.client = httpx.AsyncClient(timeout=httpx.Timeout(60.0, read=None), transport=transport)

    @property
    def url(self) -> str:
        if self.cost_code is None and self.limit is None:
            return f"{self.server_base_url}/api/energyrite-realtime"
        return f"{self.server_base_url}/api/energy-rite/vehicles"

    @property
    def params(self) -> dict:
        params = {"client_id": self.client_id}
        if self.cost_code is not None or self.limit is not None:
            params["realtime"] = "true"
        if self.cost_code is not None:
            params["costCode"] = self.cost_code
        if self.limit is not None:
            params["limit"] = str(self.limit)
        return params

    async def disconnect(self) -> None:
        await self.client.aclose()

    async def connect(self) -> None:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        async with self.client.stream("GET", self.url, params=self.params, headers=headers) as response:
            response.raise_for_status()
            await self._emit_status("ACTIVE")

            buffer = ""
            async for chunk in response.aiter_text():
                self.stats["bytes_received"] += len(chunk)
                buffer += chunk
                while "\n\n" in buffer:
                    block, buffer = buffer.split("\n\n", 1)
                    await self._handle_block(block)

        await self._emit_status("WAITING")
        raise ConnectionError("stream closed by server")

    async def _handle_block(self, block: str):
        message, comments = parse_sse_block(block)
        self.stats["heartbeats"] += sum(1 for c in comments if c == "heartbeat")
        if message is not None:
            await self.on_event(message)
