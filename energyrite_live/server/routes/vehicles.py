"""
MODULE OVERVIEW:
Vehicle read routes: the plain JSON list and the two live-feed entry points.

WHAT IS HAPPENING HERE:
`/api/energy-rite/vehicles` answers with JSON by default and switches to a Server-Sent
Events stream when `realtime=true`. `/api/energyrite-realtime` is the older unscoped
feed; it is kept as an alias over the same session implementation, differing only in
its fixed snapshot size, its default change tag and its `client_notes` projection.
"""
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from loguru import logger

from energyrite_live.server.database import Database
from energyrite_live.server.route_utils import extract_client_id, get_db, get_manager, open_vehicle_stream
from energyrite_live.server.snapshot import LEGACY_VEHICLE_COLUMNS, VehicleFilter, build_vehicle_query, clamp_limit
from energyrite_live.server.stream_manager import StreamManager
from energyrite_live.shared.config import settings
from energyrite_live.shared.models import ErrorResponse, VehicleListResponse

router = APIRouter()


@router.get("/api/energy-rite/vehicles", response_model=None)
async def list_vehicles(
    request: Request,
    costCode: str | None = Query(None),
    plate: str | None = Query(None),
    company: str | None = Query(None),
    branch: str | None = Query(None),
    hasFuel: str | None = Query(None),
    limit: str | None = Query(None),
    realtime: str | None = Query(None),
    client_id: str | None = Query(None),
    db: Database = Depends(get_db),
    stream_manager: StreamManager = Depends(get_manager),
):
    filters = VehicleFilter(
        cost_code=costCode,
        plate=plate,
        company=company,
        branch=branch,
        has_fuel=hasFuel == "true",
    )
    row_limit = clamp_limit(limit)

    if realtime == "true":
        cid = extract_client_id(client_id)
        return open_vehicle_stream(request, db, stream_manager, filters, row_limit, "vehicle_update", cid)

    query, values = build_vehicle_query(filters, row_limit)
    try:
        rows = await db.fetch(query, *values)
    except Exception as e:
        logger.error(f"route=vehicles event=error reason='{e!r}'")
        body = ErrorResponse(error=str(e) or "Query failed")
        return JSONResponse(body.model_dump(), status_code=500)
    return VehicleListResponse(data=rows)


@router.get("/api/energyrite-realtime")
async def energyrite_realtime(
    request: Request,
    client_id: str | None = Query(None),
    db: Database = Depends(get_db),
    stream_manager: StreamManager = Depends(get_manager),
):
    cid = extract_client_id(client_id)
    return open_vehicle_stream(
        request, db, stream_manager, VehicleFilter(), settings.SNAPSHOT_DEFAULT_LIMIT, "update", cid,
        columns=LEGACY_VEHICLE_COLUMNS,
    )
