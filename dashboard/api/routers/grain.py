"""
Sales Pulse Hub — Grain Router
=================================
Recordings from Grain.

Endpoints:
  GET  /api/grain/meetings          - Recordings in a date window
  POST /api/grain/meetings/details  - Summary + coaching score per recording
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from dashboard.api.deps import get_grain, http_error
from models.pulse_models import RecordingDetailsRequest
from scripts.lib.errors import ConfigError
from scripts.lib.logger import setup_logger

logger = setup_logger("grain_router")

router = APIRouter(prefix="/api/grain", tags=["grain"])


@router.get("/meetings")
async def list_recordings(
    start_date: Optional[str] = Query(None, description="Window start (ISO date)"),
    end_date: Optional[str] = Query(None, description="Window end (ISO date)"),
    grain=Depends(get_grain),
):
    try:
        recordings = await grain.list_meetings(start_date, end_date)
        return {
            "results": [r.model_dump(mode="json") for r in recordings],
            "total": len(recordings),
        }
    except Exception as e:
        raise http_error(e, "fetch Grain meetings")


@router.post("/meetings/details")
async def recording_details(body: RecordingDetailsRequest, grain=Depends(get_grain)):
    """Details for each id; recordings that fail to load are left out."""
    if not body.meeting_ids:
        return {"results": []}
    try:
        if not grain.is_configured:
            raise ConfigError("Grain not connected — set GRAIN_API_KEY in .env", setting="GRAIN_API_KEY")
        details = await grain.get_meeting_details(body.meeting_ids, body.include_coaching)
        return {"results": details}
    except Exception as e:
        raise http_error(e, "fetch Grain meeting details")
