"""
Sales Pulse Hub — Meeting Mappings Router
============================================
Links between HubSpot meetings and Grain recordings.

Endpoints:
  GET  /api/meetings/mappings       - Mappings for a set of HubSpot meeting IDs
  POST /api/meetings/mappings       - Manually map one meeting (ID or share URL)
  POST /api/meetings/mappings/auto  - Match unmapped meetings by participant email
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from dashboard.api.deps import get_grain, get_hubspot, get_store, http_error, split_ids
from models.pulse_models import AutoMapRequest, MappingCreate
from scripts.lib.logger import setup_logger
from scripts.pulse.reconciler import auto_map, save_mapping

logger = setup_logger("meetings_router")

router = APIRouter(prefix="/api/meetings/mappings", tags=["meetings"])


@router.get("")
async def list_mappings(
    hubspot_ids: Optional[str] = Query(None, description="Comma-separated HubSpot meeting IDs"),
    store=Depends(get_store),
):
    ids = split_ids(hubspot_ids)
    if not ids:
        return {"results": []}
    try:
        mappings = store.list_mappings(ids)
        return {"results": [m.model_dump(mode="json") for m in mappings]}
    except Exception as e:
        raise http_error(e, "fetch meeting mappings")


@router.post("")
async def create_mapping(body: MappingCreate, store=Depends(get_store)):
    """Create or replace the recording linked to a meeting."""
    try:
        mapping = save_mapping(
            store, body.hubspot_meeting_id, body.grain_meeting_id, body.grain_share_url,
        )
        return {"result": mapping.model_dump(mode="json")}
    except Exception as e:
        raise http_error(e, "save meeting mapping")


@router.post("/auto")
async def auto_map_meetings(
    body: AutoMapRequest,
    hubspot=Depends(get_hubspot),
    grain=Depends(get_grain),
    store=Depends(get_store),
):
    """Auto-map meetings to recordings sharing a participant email."""
    try:
        result = await auto_map(
            hubspot, grain, store, body.meetings, body.start_date, body.end_date,
        )
        return result.model_dump(mode="json")
    except Exception as e:
        raise http_error(e, "auto-map meetings")
