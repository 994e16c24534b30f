"""
Sales Pulse Hub — Seats Router
=================================
Rep/manager seats and their HubSpot owner links.

Endpoints:
  GET  /api/seats           - List seats (oldest first)
  POST /api/seats           - Create a seat
  POST /api/seats/auto-map  - Link unmapped seats to HubSpot owners
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from dashboard.api.deps import get_hubspot, get_store, http_error
from models.pulse_models import SeatCreate
from scripts.lib.logger import setup_logger
from scripts.pulse.seats import auto_map_seats, create_seat

logger = setup_logger("seats_router")

router = APIRouter(prefix="/api/seats", tags=["seats"])


@router.get("")
async def list_seats(store=Depends(get_store)):
    try:
        return {"results": [s.model_dump(mode="json") for s in store.list_seats()]}
    except Exception as e:
        raise http_error(e, "fetch seats")


@router.post("")
async def add_seat(body: SeatCreate, store=Depends(get_store)):
    try:
        seat = create_seat(store, body)
        return {"result": seat.model_dump(mode="json")}
    except Exception as e:
        raise http_error(e, "create seat")


@router.post("/auto-map")
async def auto_map(hubspot=Depends(get_hubspot), store=Depends(get_store)):
    """Match seats to owners by email, full name, then unique first name."""
    try:
        return await auto_map_seats(hubspot, store)
    except Exception as e:
        raise http_error(e, "auto-map seats")
