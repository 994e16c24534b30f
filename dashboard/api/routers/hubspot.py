"""
Sales Pulse Hub — HubSpot Router
===================================
Live HubSpot views (no caching, every call hits the API).

Endpoints:
  GET /api/hubspot/status                      - Integration status
  GET /api/hubspot/meetings                    - Enriched meetings for a window
  GET /api/hubspot/owners                      - Owners (sales reps)
  GET /api/hubspot/pipelines                   - Deal pipelines and stages
  GET /api/hubspot/campaigns                   - Sequence campaign summary
  GET /api/hubspot/properties/deals/lead_source - Lead source options
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from dashboard.api.deps import get_grain, get_hubspot, get_store, get_tz, http_error, split_ids
from models.pulse_models import MetricsQuery
from scripts.lib.logger import setup_logger
from scripts.pulse.campaigns import get_campaign_data
from scripts.pulse.dates import check_range, parse_date, resolve_window
from scripts.pulse.deadline import with_deadline
from scripts.pulse.meeting_enrichment import enrich_meetings

logger = setup_logger("hubspot_router")

router = APIRouter(prefix="/api/hubspot", tags=["hubspot-live"])


@router.get("/status")
async def hubspot_status(hubspot=Depends(get_hubspot)):
    return hubspot.get_status()


@router.get("/meetings")
async def meetings(
    owner_ids: Optional[str] = Query(None, description="Comma-separated HubSpot owner IDs"),
    start_date: Optional[str] = Query(None, description="Window start (YYYY-MM-DD)"),
    end_date: Optional[str] = Query(None, description="Window end (YYYY-MM-DD)"),
    preset: Optional[str] = Query(None, description="Date preset, e.g. last_week"),
    hubspot=Depends(get_hubspot),
    grain=Depends(get_grain),
    store=Depends(get_store),
    tz=Depends(get_tz),
):
    """Meetings with lead source, deal, contact, outcome and recording link."""
    try:
        start, end = resolve_window(preset, start_date, end_date, tz)
        query = MetricsQuery(owner_ids=split_ids(owner_ids), start=start, end=end, tz=tz)
        return await with_deadline(
            enrich_meetings(hubspot, grain, store, query), "meetings enrichment",
        )
    except Exception as e:
        raise http_error(e, "fetch meetings")


@router.get("/owners")
async def owners(hubspot=Depends(get_hubspot)):
    try:
        results = await hubspot.get_owners()
        return {"results": results, "count": len(results)}
    except Exception as e:
        raise http_error(e, "fetch owners")


@router.get("/pipelines")
async def pipelines(hubspot=Depends(get_hubspot)):
    try:
        return {"results": await hubspot.get_pipelines()}
    except Exception as e:
        raise http_error(e, "fetch pipelines")


@router.get("/campaigns")
async def campaigns(
    owner_ids: Optional[str] = Query(None, description="Comma-separated HubSpot owner IDs"),
    active_only: bool = Query(False, description="Only actively enrolled contacts"),
    start_date: Optional[str] = Query(None, description="Window start (YYYY-MM-DD)"),
    end_date: Optional[str] = Query(None, description="Window end (YYYY-MM-DD)"),
    hubspot=Depends(get_hubspot),
    tz=Depends(get_tz),
):
    """Sequences, enrollments, deals and meetings for the selected owners."""
    try:
        start = parse_date(start_date, "start_date")
        end = parse_date(end_date, "end_date")
        check_range(start, end)
        return await with_deadline(
            get_campaign_data(
                hubspot,
                owner_ids=split_ids(owner_ids),
                active_only=active_only,
                start_date=start,
                end_date=end,
                tz=tz,
            ),
            "campaign summary",
        )
    except Exception as e:
        raise http_error(e, "fetch campaign data")


@router.get("/properties/deals/lead_source")
async def lead_source_options(hubspot=Depends(get_hubspot)):
    try:
        return {"options": await hubspot.get_deal_property_options("lead_source")}
    except Exception as e:
        raise http_error(e, "fetch lead source options")
