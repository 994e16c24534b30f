"""
Sales Pulse Hub — Target Resolver
====================================

Picks the daily goal that applies to a request.

Resolution order (first match wins):
  1. exactly one owner selected  -> that owner's target
  2. team id given               -> the team's target
  3. global target               -> counts scaled by owner count when > 1
  4. built-in defaults           -> 5 / 3 / 2 / $300, same scaling

Only the count targets scale with headcount. Money per conversion stays a
per-deal figure.

Functions:
  resolve_target()      - Read-only resolution for an owner/team selection
  scale_target()        - Multiply count targets by owner count
  get_global_target()   - Stored global target or the defaults
  save_global_target()  - Validated idempotent upsert of the global target
"""
from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

from models.pulse_models import Target, TargetScope
from scripts.lib.errors import SchemaValidationError
from scripts.lib.logger import setup_logger
from scripts.pulse.store import PulseStore

logger = setup_logger("pulse_targets")

DEFAULT_TARGETS = {
    "meetings_target": 5,
    "qual_opps_target": 3,
    "conversions_target": 2,
    "mrr_per_conversion": 300,
}

COUNT_TARGETS = ("meetings_target", "qual_opps_target", "conversions_target")

# Request keys accepted for each field (snake_case and the dashboard's camelCase)
FIELD_ALIASES = {
    "meetings_target": ("meetings_target", "meetingsTarget"),
    "qual_opps_target": ("qual_opps_target", "qualOppsTarget"),
    "conversions_target": ("conversions_target", "conversionsTarget"),
    "mrr_per_conversion": ("mrr_per_conversion", "mrrPerConversion"),
}


def default_target() -> Target:
    return Target(id="default", scope=TargetScope.GLOBAL, **DEFAULT_TARGETS)


def scale_target(target: Target, owner_count: int) -> Target:
    """Scale count targets by owner count (no-op for a single owner)."""
    if owner_count <= 1:
        return target
    return target.model_copy(update={
        field: getattr(target, field) * owner_count for field in COUNT_TARGETS
    })


def resolve_target(
    store: PulseStore,
    owner_ids: Optional[List[str]] = None,
    team_id: Optional[str] = None,
    owner_count: Optional[int] = None,
) -> Target:
    """Resolve the target for an owner/team selection."""
    owner_ids = [o for o in owner_ids or [] if o]
    if owner_count is None:
        owner_count = len(owner_ids) or 1

    if len(owner_ids) == 1:
        target = store.find_target(TargetScope.OWNER, owner_id=owner_ids[0])
        if target:
            return target

    if team_id:
        target = store.find_target(TargetScope.TEAM, team_id=team_id)
        if target:
            return target

    target = store.find_target(TargetScope.GLOBAL)
    if target is None:
        logger.debug("No stored global target, using defaults")
        target = default_target()
    return scale_target(target, owner_count)


def get_global_target(store: PulseStore) -> Target:
    return store.find_target(TargetScope.GLOBAL) or default_target()


def _coerce_number(payload: Dict[str, Any], field: str) -> float:
    raw = None
    for key in FIELD_ALIASES[field]:
        if payload.get(key) is not None:
            raw = payload[key]
            break
    if raw is None:
        return float(DEFAULT_TARGETS[field])
    if isinstance(raw, bool):
        raise SchemaValidationError(f"{field} must be a number", field=field)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise SchemaValidationError(f"{field} must be a number, got {raw!r}", field=field)
    if not math.isfinite(value):
        raise SchemaValidationError(f"{field} must be a finite number", field=field)
    return value


def parse_target_payload(payload: Optional[Dict[str, Any]]) -> Dict[str, float]:
    """Validate a target request body. Missing fields take the defaults.

    Raises:
        SchemaValidationError: a field is present but not a finite number.
    """
    if payload is not None and not isinstance(payload, dict):
        raise SchemaValidationError("Target body must be an object", field="body")
    payload = payload or {}
    return {field: _coerce_number(payload, field) for field in DEFAULT_TARGETS}


def save_global_target(store: PulseStore, payload: Optional[Dict[str, Any]]) -> Target:
    """Upsert the single global target (team and owner both null)."""
    values = parse_target_payload(payload)
    return store.save_target(Target(scope=TargetScope.GLOBAL, **values))
