from abc import ABC, abstractmethod
import asyncio
from typing import Callable, Awaitable
from energyrite_live.shared.models import StreamMessage
from energyrite_live.client.client_utils import make_client_stats, with_reconnect

class BaseStreamClient(ABC):
    def __init__(self, client_id: str, server_base_url: str):
        self.client_id = client_id
        self.server_base_url = server_base_url.rstrip('/')

        self.on_event_callback: Callable[[StreamMessage], Awaitable[None]] | None = None
        self.on_status_change_callback: Callable[[str], Awaitable[None]] | None = None

        self.stats = make_client_stats()
        self._is_running = False

    @property
    def events_received(self): return self.stats["events_received"]

    @property
    def reconnect_count(self): return self.stats["reconnect_count"]

    @property
    def heartbeats(self): return self.stats["heartbeats"]

    def set_callbacks(self, on_event, on_status_change):
        self.on_event_callback = on_event
        self.on_status_change_callback = on_status_change

    async def _emit_status(self, status: str):
        if self.on_status_change_callback:
            await self.on_status_change_callback(status)

    async def on_event(self, message: StreamMessage):
        self.stats["events_received"] += 1
        self.stats["last_event_at"] = message.received_at.isoformat()
        if message.data.get("type") == "error":
            self.stats["errors"] += 1
        if self.on_event_callback:
            await self.on_event_callback(message)

    @abstractmethod
    async def connect(self) -> None:
        """The stream-reading loop runs here."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    async def run(self, duration_s: float = 60.0) -> None:
        self._is_running = True
        try:
            await with_reconnect(
                self.connect,
                self.stats,
                duration_s,
                client_id=self.client_id
            )
        except asyncio.CancelledError:
            pass
        finally:
            self._is_running = False
            await self.disconnect()
            await self._emit_status("CLOSED")
