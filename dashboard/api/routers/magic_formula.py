"""
Sales Pulse Hub — Magic Formula Router
=========================================
Daily meetings / qualified opps / conversions / revenue against targets.

Endpoints:
  GET  /api/magic-formula          - Day result(s) for an owner/team selection
  GET  /api/magic-formula/targets  - Current global target (defaults if unset)
  POST /api/magic-formula/targets  - Save the global target
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query

from dashboard.api.deps import get_hubspot, get_store, get_tz, http_error, split_ids
from scripts.lib.logger import setup_logger
from scripts.pulse.magic_formula import build_query, compute_magic_formula
from scripts.pulse.targets import get_global_target, save_global_target

logger = setup_logger("magic_formula_router")

router = APIRouter(prefix="/api/magic-formula", tags=["magic-formula"])


@router.get("")
async def magic_formula(
    owner_ids: Optional[str] = Query(None, description="Comma-separated HubSpot owner IDs"),
    team_id: Optional[str] = Query(None, description="Team ID for team targets"),
    date: Optional[str] = Query(None, description="Single day (YYYY-MM-DD)"),
    start_date: Optional[str] = Query(None, description="Range start (YYYY-MM-DD)"),
    end_date: Optional[str] = Query(None, description="Range end (YYYY-MM-DD)"),
    hubspot=Depends(get_hubspot),
    store=Depends(get_store),
    tz=Depends(get_tz),
):
    """Actuals vs targets, one entry per day for ranges."""
    try:
        query, is_range = build_query(split_ids(owner_ids), team_id, date, start_date, end_date, tz)
        return await compute_magic_formula(hubspot, store, query, is_range)
    except Exception as e:
        raise http_error(e, "compute magic formula")


@router.get("/targets")
async def get_targets(store=Depends(get_store)):
    try:
        target = get_global_target(store)
        return {"target": target.model_dump(mode="json")}
    except Exception as e:
        raise http_error(e, "fetch Magic Formula targets")


@router.post("/targets")
async def save_targets(
    payload: Optional[Dict[str, Any]] = Body(None),
    store=Depends(get_store),
):
    """Upsert the global target. Missing fields take the defaults."""
    try:
        target = save_global_target(store, payload)
        return {"target": target.model_dump(mode="json")}
    except Exception as e:
        raise http_error(e, "save Magic Formula targets")
