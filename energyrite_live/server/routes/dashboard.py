"""
MODULE OVERVIEW:
Read-through proxy for the upstream sites API that backs the dashboard cards.

WHAT IS HAPPENING HERE:
The upstream service returns vehicles with capitalized keys (`Plate`, `Speed`,
`LocTime`, ...). We fetch them with httpx and reshape every record into the
lower-case field names the dashboard uses. The public route passes upstream failures
through to the caller; the internal route is used by server-side renders and always
answers with a (possibly empty) list.
"""
from typing import Any

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from loguru import logger

from energyrite_live.shared.config import settings
from energyrite_live.shared.models import DashboardVehicle, iso_now

router = APIRouter()


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http


def normalize_vehicle(vehicle: dict[str, Any]) -> DashboardVehicle:
    now = iso_now()
    return DashboardVehicle(
        id=vehicle.get("Id"),
        plate=vehicle.get("Plate") or vehicle.get("plate"),
        branch=vehicle.get("Plate") or vehicle.get("branch"),
        company=vehicle.get("company"),
        cost_code=vehicle.get("cost_code"),
        speed=vehicle.get("Speed"),
        latitude=vehicle.get("Latitude"),
        longitude=vehicle.get("Longitude"),
        address=vehicle.get("Geozone") or vehicle.get("address"),
        drivername=vehicle.get("DriverName") or vehicle.get("drivername"),
        fuel_probe_1_level=vehicle.get("fuel_probe_1_level"),
        fuel_probe_1_volume_in_tank=vehicle.get("fuel_probe_1_volume_in_tank"),
        fuel_probe_1_temperature=vehicle.get("fuel_probe_1_temperature"),
        fuel_probe_1_level_percentage=vehicle.get("fuel_probe_1_level_percentage"),
        volume=vehicle.get("fuel_probe_1_volume_in_tank") or vehicle.get("volume"),
        loctime=vehicle.get("LocTime"),
        last_message_date=vehicle.get("LocTime") or vehicle.get("last_message_date") or now,
        updated_at=vehicle.get("updated_at") or now,
        color_codes=vehicle.get("color_codes") or {},
        client_notes=vehicle.get("client_notes"),
    )


def normalize_vehicles(data: Any) -> list[dict[str, Any]]:
    if not isinstance(data, list):
        return []
    return [normalize_vehicle(v).model_dump() for v in data if isinstance(v, dict)]


@router.get("/api/energy-rite/dashboard-vehicles")
async def dashboard_vehicles(http: httpx.AsyncClient = Depends(get_http_client)):
    logger.info(f"route=dashboard-vehicles event=fetch url={settings.SITES_API_URL}")
    try:
        response = await http.get(settings.SITES_API_URL, headers={"Content-Type": "application/json"})
        if response.is_error:
            logger.warning(f"route=dashboard-vehicles event=upstream_error status={response.status_code}")
            return JSONResponse({"success": False, "error": "External API error"}, status_code=response.status_code)
        vehicles = normalize_vehicles(response.json())
    except Exception as e:
        logger.error(f"route=dashboard-vehicles event=error reason='{e!r}'")
        return JSONResponse({"success": False, "error": str(e) or "Failed to fetch vehicles"}, status_code=500)

    logger.info(f"route=dashboard-vehicles event=normalized count={len(vehicles)}")
    return {"success": True, "data": vehicles}


@router.get("/api/internal/dashboard-vehicles")
async def internal_dashboard_vehicles(http: httpx.AsyncClient = Depends(get_http_client)):
    try:
        response = await http.get(
            settings.SITES_API_URL,
            headers={"Content-Type": "application/json"},
            timeout=settings.SITES_API_TIMEOUT_S,
        )
        if response.is_error:
            logger.warning(f"route=internal-dashboard-vehicles event=upstream_error status={response.status_code}")
            return {"success": True, "data": []}
        vehicles = normalize_vehicles(response.json())
    except Exception as e:
        logger.error(f"route=internal-dashboard-vehicles event=error reason='{e!r}'")
        return {"success": True, "data": []}
    return {"success": True, "data": vehicles}
