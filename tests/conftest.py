from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import pytest

from energyrite_live.server.snapshot import VehicleFilter
from energyrite_live.server.stream_session import VehicleStreamSession

CHANNEL = "energyrite_vehicles_updated"


def make_rows(count: int, cost_code: str = "COST-1") -> list[dict[str, Any]]:
    return [
        {"id": i, "plate": f"PLATE-{i}", "cost_code": cost_code, "fuel_probe_1_level": 50 + i}
        for i in range(count)
    ]


class FakeConnection:
    """Stands in for an asyncpg connection: fetch, add_listener/remove_listener, NOTIFY delivery."""

    def __init__(
        self,
        rows: list[dict[str, Any]] | None = None,
        fetch_error: Exception | None = None,
        listen_error: Exception | None = None,
        fetch_gate: asyncio.Event | None = None,
    ) -> None:
        self.rows = rows or []
        self.fetch_error = fetch_error
        self.listen_error = listen_error
        self.fetch_gate = fetch_gate
        self.queries: list[tuple[str, tuple[Any, ...]]] = []
        self.listeners: dict[str, list[Callable[..., None]]] = {}
        self.listen_calls: list[str] = []
        self.unlisten_calls: list[str] = []
        self.fetch_cancelled = False

    async def fetch(self, query: str, *args: Any) -> list[dict[str, Any]]:
        self.queries.append((query, args))
        if self.fetch_gate is not None:
            try:
                await self.fetch_gate.wait()
            except asyncio.CancelledError:
                self.fetch_cancelled = True
                raise
        if self.fetch_error is not None:
            raise self.fetch_error
        limit = args[-1]
        scoped = [r for r in self.rows if "cost_code = $1" not in query or r.get("cost_code") == args[0]]
        return scoped[:limit]

    async def add_listener(self, channel: str, callback: Callable[..., None]) -> None:
        if self.listen_error is not None:
            raise self.listen_error
        self.listen_calls.append(channel)
        self.listeners.setdefault(channel, []).append(callback)

    async def remove_listener(self, channel: str, callback: Callable[..., None]) -> None:
        self.unlisten_calls.append(channel)
        self.listeners.get(channel, []).remove(callback)

    def notify(self, channel: str, payload: str | None) -> None:
        for callback in list(self.listeners.get(channel, [])):
            callback(self, 4242, channel, payload)


class FakeDatabase:
    """A pool with a fixed number of connections; exhaustion fails immediately."""

    def __init__(
        self,
        size: int = 5,
        connection_factory: Callable[[], FakeConnection] | None = None,
        acquire_error: Exception | None = None,
        acquire_gate: asyncio.Event | None = None,
    ) -> None:
        self.size = size
        self.connection_factory = connection_factory or FakeConnection
        self.acquire_error = acquire_error
        self.acquire_gate = acquire_gate
        self.held_connections = 0
        self.acquired: list[FakeConnection] = []
        self.released: list[FakeConnection] = []
        self.fetch_result: list[dict[str, Any]] = []
        self.fetch_error: Exception | None = None
        self.fetch_calls: list[tuple[str, tuple[Any, ...]]] = []
        self.count = 0

    async def acquire_stream_connection(self) -> FakeConnection:
        if self.acquire_gate is not None:
            await self.acquire_gate.wait()
        if self.acquire_error is not None:
            raise self.acquire_error
        if self.held_connections >= self.size:
            raise asyncio.TimeoutError()
        conn = self.connection_factory()
        self.held_connections += 1
        self.acquired.append(conn)
        return conn

    async def release(self, conn: FakeConnection) -> None:
        self.held_connections -= 1
        self.released.append(conn)

    async def fetch(self, query: str, *args: Any) -> list[dict[str, Any]]:
        self.fetch_calls.append((query, args))
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.fetch_result

    async def fetchval(self, query: str, *args: Any) -> Any:
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.count

    def pool_size(self) -> int:
        return self.size

    def pool_idle(self) -> int:
        return self.size - self.held_connections

    def notify_all(self, channel: str, payload: str | None) -> None:
        for conn in self.acquired:
            if conn not in self.released:
                conn.notify(channel, payload)


def parse_frame(frame: str) -> tuple[str | None, dict[str, Any] | None]:
    event = None
    data = None
    for line in frame.rstrip("\n").split("\n"):
        if line.startswith("event: "):
            event = line[len("event: "):]
        elif line.startswith("data: "):
            data = json.loads(line[len("data: "):])
    return event, data


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def make_session():
    def _make(db: Any, filters: VehicleFilter | None = None, **kwargs: Any) -> VehicleStreamSession:
        kwargs.setdefault("limit", 50)
        kwargs.setdefault("channel", CHANNEL)
        kwargs.setdefault("heartbeat_interval_s", 60.0)
        return VehicleStreamSession(db, filters or VehicleFilter(), **kwargs)

    return _make
