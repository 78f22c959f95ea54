"""
MODULE OVERVIEW:
One live vehicle-feed session: a pooled connection bridged onto an SSE response.

WHAT IS HAPPENING HERE:
Three asynchronous sources feed a single response body:
  1. the setup step (connection checkout, snapshot query, LISTEN),
  2. asyncpg's notification callback, invoked whenever a NOTIFY arrives,
  3. the heartbeat timer.
None of them writes to the response directly. Each appends a complete frame to the
session's queue with a synchronous `put_nowait`, and exactly one consumer (the
response body iterator returned by `stream()`) drains it. On a single event loop
that makes the queue the only writer, so frames can never interleave.

Lifecycle: CONNECTING -> STREAMING -> CLOSING -> CLOSED. `close()` can be reached
from the abort watcher, from the response iterator being cancelled, or from a failed
setup step; it runs its teardown at most once.
"""
import asyncio
import json
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable

import anyio
from loguru import logger

from energyrite_live.server.snapshot import VEHICLE_COLUMNS, VehicleFilter, fetch_snapshot
from energyrite_live.shared.models import ChangeEvent, ErrorEvent, InitialEvent, OutboundEvent, iso_now
from energyrite_live.shared.sse import CONNECTED, HEARTBEAT, format_event


class SessionState(str, Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSING = "closing"
    CLOSED = "closed"


def _describe(prefix: str, exc: BaseException) -> str:
    detail = str(exc)
    return f"{prefix}: {detail}" if detail else prefix


def decode_notification(
    payload: str | None,
    default_type: str = "update",
    scope: str | None = None,
) -> OutboundEvent | None:
    """
    Turn a raw NOTIFY payload into the event to send.

    Returns an ErrorEvent for a missing, unparsable or non-object payload, and None
    when the payload names a cost code other than the session's scope.
    """
    if not payload:
        return ErrorEvent(message="Notification payload missing")
    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError as e:
        return ErrorEvent(message=_describe("Failed to parse notification", e))
    if not isinstance(parsed, dict):
        return ErrorEvent(message="Notification payload is not a JSON object")

    if scope is not None and parsed.get("cost_code") is not None and str(parsed["cost_code"]) != scope:
        return None

    return ChangeEvent.model_validate({
        **parsed,
        "type": parsed.get("type") or default_type,
        "timestamp": iso_now(),
    })


class VehicleStreamSession:
    def __init__(
        self,
        db: Any,
        filters: VehicleFilter,
        *,
        limit: int,
        channel: str,
        default_change_type: str = "update",
        heartbeat_interval_s: float = 15.0,
        max_pending: int = 1000,
        client_id: str = "anonymous",
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
        disconnect_poll_s: float = 1.0,
        manager: Any = None,
        columns: tuple[str, ...] = VEHICLE_COLUMNS,
    ):
        self.db = db
        self.filters = filters
        self.limit = limit
        self.channel = channel
        self.default_change_type = default_change_type
        self.heartbeat_interval_s = heartbeat_interval_s
        self.max_pending = max_pending
        self.client_id = client_id
        self.disconnect_poll_s = disconnect_poll_s
        self.manager = manager
        self.columns = columns
        self._is_disconnected = is_disconnected

        self.state = SessionState.CONNECTING
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._closed = False
        self._conn: Any = None
        self._listening = False
        self._setup_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._watch_task: asyncio.Task | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    # ==========================
    # OUTPUT
    # ==========================
    def _write(self, chunk: str) -> bool:
        if self._closed:
            return False
        if self._queue.qsize() >= self.max_pending:
            logger.warning(f"client_id={self.client_id} protocol=sse event=dropped reason=queue_full")
            return False
        self._queue.put_nowait(chunk)
        return True

    def _emit(self, event: OutboundEvent) -> None:
        if self._write(format_event(event)) and self.manager is not None:
            self.manager.record_dispatch()

    async def stream(self) -> AsyncIterator[str]:
        """The response body. Starts the session on first iteration and tears it down on exit."""
        if self.manager is not None:
            self.manager.register(self)
        self._setup_task = asyncio.create_task(self._open())
        if self._is_disconnected is not None:
            self._watch_task = asyncio.create_task(self._watch_disconnect())
        try:
            while True:
                chunk = await self._queue.get()
                if chunk is None:
                    break
                yield chunk
        finally:
            # Runs to completion even while the response task group is being cancelled.
            with anyio.CancelScope(shield=True):
                await self.close("stream_ended")
            if self.manager is not None:
                self.manager.unregister(self)

    # ==========================
    # SETUP
    # ==========================
    async def _open(self) -> None:
        try:
            conn = await self.db.acquire_stream_connection()
        except Exception as e:
            logger.error(f"client_id={self.client_id} protocol=sse event=error reason='connect: {e!r}'")
            self._emit(ErrorEvent(message=_describe("Database connection error", e)))
            await self.close("connect_failed", flush=True)
            return

        if self._closed:
            # The client left while we were waiting on the pool.
            await self._release(conn)
            return
        self._conn = conn

        self._write(CONNECTED)
        await self._send_snapshot()

        try:
            await conn.add_listener(self.channel, self._on_notification)
        except Exception as e:
            logger.error(f"client_id={self.client_id} protocol=sse event=error reason='listen: {e!r}'")
            self._emit(ErrorEvent(message=_describe("Failed to subscribe to updates", e)))
            await self.close("listen_failed", flush=True)
            return
        self._listening = True
        logger.info(f"client_id={self.client_id} protocol=sse event=listen channel={self.channel}")

        self._heartbeat_task = asyncio.create_task(self._heartbeat())
        self.state = SessionState.STREAMING

    async def _send_snapshot(self) -> None:
        try:
            rows = await fetch_snapshot(self._conn, self.filters, self.limit, self.columns)
        except Exception as e:
            logger.error(f"client_id={self.client_id} protocol=sse event=error reason='initial query: {e!r}'")
            self._emit(ErrorEvent(message=_describe("Initial query failed", e)))
            return
        self._emit(InitialEvent(data=rows))
        logger.info(f"client_id={self.client_id} protocol=sse event=initial rows={len(rows)} scope={self.filters.scope}")

    # ==========================
    # LIVE SOURCES
    # ==========================
    def _on_notification(self, connection: Any, pid: int, channel: str, payload: str | None) -> None:
        if self._closed:
            return
        event = decode_notification(payload, self.default_change_type, self.filters.scope)
        if event is None:
            return
        if isinstance(event, ErrorEvent):
            logger.warning(f"client_id={self.client_id} protocol=sse event=bad_notification reason='{event.message}'")
        self._emit(event)

    async def _heartbeat(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.heartbeat_interval_s)
            if self._write(HEARTBEAT):
                logger.debug(f"client_id={self.client_id} protocol=sse event=heartbeat")

    async def _watch_disconnect(self) -> None:
        try:
            while not self._closed:
                if await self._is_disconnected():
                    await self.close("client_disconnected")
                    return
                await asyncio.sleep(self.disconnect_poll_s)
        except Exception as e:
            logger.debug(f"client_id={self.client_id} protocol=sse event=watch_error reason='{e!r}'")
            await self.close("watch_failed")

    # ==========================
    # TEARDOWN
    # ==========================
    async def close(self, reason: str = "closed", flush: bool = False) -> None:
        """
        Tear the session down once. With `flush` the frames already queued (such as a
        setup error) are still delivered; otherwise they are discarded.
        """
        if self._closed:
            return
        self._closed = True
        self.state = SessionState.CLOSING
        if not flush:
            while not self._queue.empty():
                self._queue.get_nowait()

        current = asyncio.current_task()
        background = [t for t in (self._heartbeat_task, self._watch_task) if t is not None and t is not current]
        for task in background:
            task.cancel()

        # A snapshot query or LISTEN still in flight is cancelled; a pool checkout is
        # left to finish and hands its connection straight back (see _open).
        setup = self._setup_task
        if setup is not None and setup is not current and not setup.done() and self._conn is not None:
            setup.cancel()
            background.append(setup)
        if background:
            await asyncio.gather(*background, return_exceptions=True)

        conn, self._conn = self._conn, None
        if conn is not None:
            if self._listening:
                try:
                    await conn.remove_listener(self.channel, self._on_notification)
                except Exception as e:
                    logger.debug(f"client_id={self.client_id} protocol=sse event=unlisten_failed reason='{e!r}'")
                self._listening = False
            await self._release(conn)

        self._queue.put_nowait(None)
        self.state = SessionState.CLOSED
        logger.info(f"client_id={self.client_id} protocol=sse event=disconnect reason={reason}")

    async def _release(self, conn: Any) -> None:
        try:
            await self.db.release(conn)
        except Exception as e:
            logger.debug(f"client_id={self.client_id} protocol=sse event=release_failed reason='{e!r}'")
