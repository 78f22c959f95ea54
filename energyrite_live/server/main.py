"""
MODULE OVERVIEW:
The FastAPI application.

WHAT IS HAPPENING HERE:
We use a `lifespan` context manager. On startup we build the asyncpg pool and one
shared httpx client for the upstream sites API; on shutdown we close both. Streaming
sessions borrow connections from that pool for as long as their client stays
connected, so the pool is closed only after the server stops accepting requests.
"""
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from energyrite_live.server.database import Database
from energyrite_live.server.middleware import TimingMiddleware
from energyrite_live.server.routes import dashboard, health, vehicles
from energyrite_live.shared.config import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    # STARTUP
    logger.info("EnergyRite live feed starting up...")
    app.state.db = Database.from_settings(settings)
    await app.state.db.connect()
    app.state.http = httpx.AsyncClient(timeout=settings.SITES_API_TIMEOUT_S)

    yield

    # SHUTDOWN
    logger.info("Server shutting down. Closing pool and HTTP client...")
    await app.state.http.aclose()
    await app.state.db.close()
    logger.info("Shutdown complete.")


app = FastAPI(
    title="EnergyRite Live Feed",
    description="Vehicle snapshot and real-time update stream over Postgres LISTEN/NOTIFY",
    version="1.0.0",
    lifespan=lifespan
)

# Add Middlewares
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Route registrations
app.include_router(vehicles.router, tags=["Vehicles"])
app.include_router(dashboard.router, tags=["Dashboard"])
app.include_router(health.router, tags=["Ops"])
