"""
MODULE OVERVIEW:
The bounded "recent vehicles" query that seeds a client before live updates begin.

WHAT IS HAPPENING HERE:
Filters arrive as query-string values. Each present filter becomes one positional
`$n` placeholder, so user input never reaches the SQL text. The result is always
ordered newest-first and capped by LIMIT, which keeps the initial payload bounded
no matter how large the table grows.
"""
from dataclasses import dataclass
from typing import Any

from energyrite_live.shared.config import settings

VEHICLE_TABLE = "energyrite_vehicles"

VEHICLE_COLUMNS = (
    "id", "branch", "company", "plate", "ip_address", "cost_code",
    "speed", "latitude", "longitude", "loctime", "quality", "mileage",
    "pocsagstr", "head", "geozone", "drivername", "nameevent", "temperature", "address",
    "fuel_probe_1_level", "fuel_probe_1_volume_in_tank",
    "fuel_probe_1_temperature", "fuel_probe_1_level_percentage",
    "fuel_probe_2_level", "fuel_probe_2_volume_in_tank",
    "fuel_probe_2_temperature", "fuel_probe_2_level_percentage",
    "status", "last_message_date", "updated_at", "volume",
    "theft", "theft_time", "previous_fuel_level", "previous_fuel_time",
    "activity_start_time", "activity_duration_hours", "total_usage_hours",
    "daily_usage_hours", "is_active", "last_activity_time",
    "fuel_anomaly", "fuel_anomaly_note", "last_anomaly_time",
    "created_at", "notes",
)

# The unscoped legacy feed projects the client-facing notes column instead.
LEGACY_VEHICLE_COLUMNS = VEHICLE_COLUMNS[:-1] + ("client_notes",)

HAS_FUEL_CLAUSE = (
    "(fuel_probe_1_level IS NOT NULL OR fuel_probe_1_volume_in_tank IS NOT NULL"
    " OR fuel_probe_2_level IS NOT NULL OR fuel_probe_2_volume_in_tank IS NOT NULL)"
)


@dataclass(frozen=True)
class VehicleFilter:
    cost_code: str | None = None
    plate: str | None = None
    company: str | None = None
    branch: str | None = None
    has_fuel: bool = False

    @property
    def scope(self) -> str | None:
        """The tenant key a session is scoped by."""
        return self.cost_code


def clamp_limit(raw: Any = None, default: int | None = None, maximum: int | None = None) -> int:
    default = settings.SNAPSHOT_DEFAULT_LIMIT if default is None else default
    maximum = settings.SNAPSHOT_MAX_LIMIT if maximum is None else maximum
    try:
        value = int(raw) if raw not in (None, "") else default
    except (TypeError, ValueError):
        value = default
    return max(1, min(maximum, value))


def build_vehicle_query(
    filters: VehicleFilter, limit: int, columns: tuple[str, ...] = VEHICLE_COLUMNS
) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    values: list[Any] = []

    for column, value in (
        ("cost_code", filters.cost_code),
        ("plate", filters.plate),
        ("company", filters.company),
        ("branch", filters.branch),
    ):
        if value:
            values.append(value)
            clauses.append(f"{column} = ${len(values)}")
    if filters.has_fuel:
        clauses.append(HAS_FUEL_CLAUSE)

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    values.append(limit)
    query = (
        f"SELECT {', '.join(columns)} FROM {VEHICLE_TABLE} {where} "
        f"ORDER BY updated_at DESC LIMIT ${len(values)}"
    )
    return query, values


async def fetch_snapshot(
    conn, filters: VehicleFilter, limit: int, columns: tuple[str, ...] = VEHICLE_COLUMNS
) -> list[dict[str, Any]]:
    query, values = build_vehicle_query(filters, limit, columns)
    rows = await conn.fetch(query, *values)
    return [dict(row) for row in rows[:limit]]
