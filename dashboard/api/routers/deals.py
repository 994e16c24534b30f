"""
Sales Pulse Hub — Deals Router
=================================
Deal listing and narrow write-back of deal properties to HubSpot.

Endpoints:
  GET   /api/hubspot/deals       - Deals created in a window, optionally per owner
  PATCH /api/hubspot/deals/{id}  - Update lead source and/or owner
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from dashboard.api.deps import get_hubspot, get_tz, http_error, split_ids
from models.pulse_models import DealUpdate
from scripts.lib.errors import SchemaValidationError
from scripts.lib.logger import setup_logger
from scripts.pulse.dates import check_range, day_bounds, parse_date
from scripts.pulse.deadline import with_deadline

logger = setup_logger("deals_router")

router = APIRouter(prefix="/api/hubspot/deals", tags=["deals"])


@router.get("")
async def list_deals(
    owner_ids: Optional[str] = Query(None, description="Comma-separated HubSpot owner IDs"),
    start_date: Optional[str] = Query(None, description="Created on or after (YYYY-MM-DD)"),
    end_date: Optional[str] = Query(None, description="Created on or before (YYYY-MM-DD)"),
    hubspot=Depends(get_hubspot),
    tz=Depends(get_tz),
):
    try:
        start_day = parse_date(start_date, "start_date")
        end_day = parse_date(end_date, "end_date")
        check_range(start_day, end_day)
        start = day_bounds(start_day, tz)[0] if start_day else None
        end = day_bounds(end_day, tz)[1] if end_day else None

        owners = split_ids(owner_ids)
        if owners:
            fetch = hubspot.get_deals_for_owners(owners, start, end)
        else:
            fetch = hubspot.get_deals(None, start, end)
        deals = await with_deadline(fetch, "deal listing")
        return {"results": deals, "count": len(deals)}
    except Exception as e:
        raise http_error(e, "fetch deals")


@router.patch("/{deal_id}")
async def update_deal(deal_id: str, body: DealUpdate, hubspot=Depends(get_hubspot)):
    """Set or clear (``null``) lead_source / hubspot_owner_id on a deal."""
    try:
        properties = body.model_dump(exclude_unset=True)
        if not properties:
            raise SchemaValidationError("No properties to update", field="properties")
        result = await hubspot.update_deal(deal_id, properties)
        logger.info("Updated deal %s: %s", deal_id, sorted(properties))
        return {"result": result}
    except Exception as e:
        raise http_error(e, "update deal")
