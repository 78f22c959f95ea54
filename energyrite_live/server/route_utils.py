import uuid

from fastapi import Request
from fastapi.responses import StreamingResponse
from loguru import logger

from energyrite_live.server.database import Database
from energyrite_live.server.snapshot import VEHICLE_COLUMNS, VehicleFilter
from energyrite_live.server.stream_manager import StreamManager, manager
from energyrite_live.server.stream_session import VehicleStreamSession
from energyrite_live.shared.config import settings

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
    "X-Accel-Buffering": "no",
}


def extract_client_id(client_id: str | None) -> str:
    """
    If the caller provided a client_id, use it.
    If not, generate a short readable one like 'client-a3f2'.
    """
    if client_id:
        return client_id
    return f"client-{str(uuid.uuid4())[:4]}"


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_manager() -> StreamManager:
    return manager


def open_vehicle_stream(
    request: Request,
    db: Database,
    stream_manager: StreamManager,
    filters: VehicleFilter,
    limit: int,
    default_change_type: str,
    client_id: str,
    columns: tuple[str, ...] = VEHICLE_COLUMNS,
) -> StreamingResponse:
    """Build one streaming session and hand its body iterator to Starlette."""
    session = VehicleStreamSession(
        db,
        filters,
        limit=limit,
        channel=settings.NOTIFY_CHANNEL,
        default_change_type=default_change_type,
        heartbeat_interval_s=settings.SSE_HEARTBEAT_INTERVAL_S,
        max_pending=settings.SSE_MAX_PENDING,
        client_id=client_id,
        is_disconnected=request.is_disconnected,
        disconnect_poll_s=settings.SSE_DISCONNECT_POLL_S,
        manager=stream_manager,
        columns=columns,
    )
    logger.info(f"client_id={client_id} protocol=sse event=accept scope={filters.scope} limit={limit}")
    return StreamingResponse(session.stream(), media_type="text/event-stream", headers=SSE_HEADERS)
