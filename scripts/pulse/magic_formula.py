"""
Sales Pulse Hub — Magic Formula
==================================

Daily "magic formula" view: meetings held, qualified opportunities,
conversions and revenue against the resolved target, per local day.

Flow:
  build_query()  -> MetricsQuery (owners, team, local date window)
  fetch          -> meetings, closed-won deals, owners (concurrently,
                    under the request deadline)
  aggregate      -> DailyMetrics per day, zero-filled over the window
  resolve        -> Target for the owner/team selection
  reconcile      -> DayResult per day

Functions:
  build_query()            - Validate request parameters into a MetricsQuery
  compute_magic_formula()  - Full pipeline, returns the response payload
"""
from __future__ import annotations

import asyncio
from datetime import tzinfo
from typing import Any, Dict, List, Optional, Tuple

from integrations.hubspot import HubSpotClient
from models.crm_models import Deal, Meeting
from models.pulse_models import MetricsQuery
from scripts.lib.logger import setup_logger
from scripts.pulse.aggregator import aggregate_daily, daily_series
from scripts.pulse.dates import check_range, parse_date, range_bounds, today
from scripts.pulse.deadline import with_deadline
from scripts.pulse.goals import build_day_results, scope_label
from scripts.pulse.store import PulseStore
from scripts.pulse.targets import resolve_target

logger = setup_logger("magic_formula")


def build_query(
    owner_ids: Optional[List[str]] = None,
    team_id: Optional[str] = None,
    day: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    tz: Optional[tzinfo] = None,
) -> Tuple[MetricsQuery, bool]:
    """Turn request parameters into a query and whether it spans several days.

    The base day is ``day``, else ``start_date``, else today. A missing start
    or end collapses onto the base day.

    Raises:
        SchemaValidationError: a date is unparseable or the range is inverted.
    """
    base = parse_date(day, "date") or parse_date(start_date, "start_date") or today(tz)
    start = parse_date(start_date, "start_date") or base
    end = parse_date(end_date, "end_date") or base
    check_range(start, end)

    query = MetricsQuery(
        owner_ids=[o for o in owner_ids or [] if o],
        team_id=team_id or None,
        start=start,
        end=end,
        tz=tz,
    )
    is_range = bool(start_date and end_date and start != end)
    if not is_range:
        query = query.model_copy(update={"start": base, "end": base})
    return query, is_range


async def _fetch(hubspot: HubSpotClient, query: MetricsQuery):
    start, end = range_bounds(query.start, query.end, query.tz)
    return await asyncio.gather(
        hubspot.get_meetings(query.owner_ids, start, end),
        hubspot.get_deals_closed_won(query.owner_ids, start, end),
        hubspot.get_owners(),
    )


async def compute_magic_formula(
    hubspot: HubSpotClient,
    store: PulseStore,
    query: MetricsQuery,
    is_range: bool = False,
    deadline: float = None,
) -> Dict[str, Any]:
    """Day results for the query window plus the owners list.

    Returns ``{"results": [...]}`` for a range, ``{"result": {...}}`` for a
    single day, alongside ``scope``, ``owner_count`` and ``owners``.
    """
    raw_meetings, raw_won, owners = await with_deadline(
        _fetch(hubspot, query), "magic formula fetch", deadline,
    )

    meetings = [Meeting.from_hubspot(r) for r in raw_meetings]
    if query.owner_ids:
        wanted = set(query.owner_ids)
        meetings = [m for m in meetings if m.owner_id in wanted]
    won = [Deal.from_hubspot(r) for r in raw_won]

    buckets = aggregate_daily(meetings=meetings, won_deals=won, tz=query.tz)
    days = daily_series(buckets, query.start, query.end)

    owner_count = query.owner_count
    target = resolve_target(store, query.owner_ids, query.team_id, owner_count)
    results = build_day_results(days, target, owner_count)

    logger.info(
        "Magic formula %s → %s: %d meetings, %d won, %d owners selected",
        query.start, query.end, len(meetings), len(won), len(query.owner_ids),
    )

    payload: Dict[str, Any] = {
        "scope": scope_label(owner_count),
        "owner_count": owner_count,
        "owners": owners,
    }
    if is_range:
        payload["results"] = [r.model_dump() for r in results]
    else:
        payload["result"] = results[0].model_dump()
    return payload
