"""
Sales Pulse Hub — API Server
===============================

Live API over HubSpot and Grain, with targets, mappings, seats and
generated reports kept in Supabase.

Route groups:
  /api/health                 - Health check
  /api/magic-formula/*        - Daily goal tracking and targets
  /api/hubspot/*              - Live HubSpot views (meetings, owners, campaigns)
  /api/hubspot/deals          - Deal listing and write-back
  /api/meetings/mappings/*    - Meeting ↔ recording links
  /api/grain/*                - Grain recordings
  /api/reports/*              - Rendered reports
  /api/seats/*                - Seats and owner auto-mapping
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# ─── Lifespan ─────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app):
    """Application startup and shutdown."""
    logger.info("Starting Sales Pulse Hub...")

    from integrations.grain import GrainClient
    from integrations.hubspot import HubSpotClient
    from scripts.pulse.dates import get_timezone
    from scripts.pulse.store import PulseStore

    app.state.hubspot = HubSpotClient()
    app.state.grain = GrainClient()
    app.state.store = PulseStore()
    app.state.tz = get_timezone()

    logger.info("HubSpot: %s", "configured" if app.state.hubspot.is_configured else "not configured")
    logger.info("Grain: %s", "configured" if app.state.grain.is_configured else "not configured")
    logger.info("Timezone: %s", app.state.tz or "system local")

    logger.info("Sales Pulse Hub ready")
    yield
    logger.info("Shutting down Sales Pulse Hub...")


# ─── App Setup ────────────────────────────────────────────────

cors_origins = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:8001"
).split(",")

app = FastAPI(
    title="Sales Pulse Hub",
    version=VERSION,
    description="Sales-ops metrics: daily funnel, magic formula targets, meeting recordings",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Include Routers ──────────────────────────────────────────

from dashboard.api.routers.magic_formula import router as magic_formula_router
from dashboard.api.routers.hubspot import router as hubspot_router
from dashboard.api.routers.deals import router as deals_router
from dashboard.api.routers.meetings import router as meetings_router
from dashboard.api.routers.grain import router as grain_router
from dashboard.api.routers.reports import router as reports_router
from dashboard.api.routers.seats import router as seats_router

app.include_router(magic_formula_router)
app.include_router(hubspot_router)
app.include_router(deals_router)
app.include_router(meetings_router)
app.include_router(grain_router)
app.include_router(reports_router)
app.include_router(seats_router)


# ─── Health ───────────────────────────────────────────────────

@app.get("/api/health", tags=["system"])
async def health():
    """Health check with integration status."""
    from scripts.lib.supabase_client import is_configured as supabase_configured

    hubspot = getattr(app.state, "hubspot", None)
    grain = getattr(app.state, "grain", None)
    return {
        "status": "healthy",
        "service": "Sales Pulse Hub",
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "integrations": {
            "supabase": supabase_configured(),
            "hubspot": bool(hubspot and hubspot.is_configured),
            "grain": bool(grain and grain.is_configured),
        },
    }
