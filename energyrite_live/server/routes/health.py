from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from loguru import logger

from energyrite_live.server.database import Database
from energyrite_live.server.route_utils import get_db, get_manager
from energyrite_live.server.snapshot import VEHICLE_TABLE
from energyrite_live.server.stream_manager import StreamManager
from energyrite_live.shared.models import DbHealthResponse, ErrorResponse, StreamStats

router = APIRouter()


@router.get("/healthz")
async def health_check():
    return {"status": "ok"}


@router.get("/stats", response_model=StreamStats)
async def get_stats(
    db: Database = Depends(get_db),
    stream_manager: StreamManager = Depends(get_manager),
):
    return stream_manager.get_stats(db)


@router.get("/api/test-db", response_model=None)
async def test_db(db: Database = Depends(get_db)):
    """Round-trip to the database: count the tracked vehicles."""
    try:
        count = await db.fetchval(f"SELECT COUNT(*)::int AS count FROM {VEHICLE_TABLE}")
    except Exception as e:
        logger.error(f"route=test-db event=error reason='{e!r}'")
        return JSONResponse(ErrorResponse(error=str(e) or "Unknown error").model_dump(), status_code=500)
    return DbHealthResponse(success=True, message="Database connection successful", recordCount=count or 0)
