"""
Sales Pulse Hub — Sequence Campaigns
=======================================

Campaign summary for HubSpot sequences: enrollees per sequence, replies,
deals attributed to enrolled contacts, meetings by owner and outcome, and
won/lost deal counts for the selected owners.

Enrollments and deals are fetched one owner at a time (with a delay) to
stay under HubSpot's per-search result cap. Meetings default to the last
90 days when no start date is given.
"""
from __future__ import annotations

import asyncio
from collections import Counter
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Dict, List, Optional, Tuple

from integrations.hubspot import HubSpotClient, stage_sets
from models.crm_models import Deal, Meeting
from scripts.lib.logger import setup_logger
from scripts.lib.utils import prop, safe_float, safe_int
from scripts.pulse.dates import day_bounds

logger = setup_logger("pulse_campaigns")

DEFAULT_MEETING_LOOKBACK_DAYS = 90
NO_OUTCOME = "No Outcome"


def is_active(contact: Dict) -> bool:
    return safe_int(prop(contact, "hs_sequences_actively_enrolled_count")) > 0


def has_replied(contact: Dict) -> bool:
    return prop(contact, "hs_email_replied") == "true" or bool(prop(contact, "hs_sales_email_last_replied"))


def sequence_stats(sequences: List[Dict], enrollments: List[Dict]) -> List[Dict[str, Any]]:
    """Per-sequence counters keyed off each contact's latest enrolled sequence."""
    stats: Dict[str, Dict[str, Any]] = {}
    for seq in sequences:
        seq_id = str(seq.get("id", ""))
        stats[seq_id] = {
            "id": seq_id,
            "name": seq.get("name"),
            "user_id": seq.get("userId"),
            "total_enrollees": 0,
            "active_enrollees": 0,
            "replies": 0,
            "deals_created": 0,
            "deals_value": 0.0,
        }

    for contact in enrollments:
        seq_id = prop(contact, "hs_latest_sequence_enrolled")
        entry = stats.get(str(seq_id)) if seq_id else None
        if entry is None:
            continue
        entry["total_enrollees"] += 1
        if is_active(contact):
            entry["active_enrollees"] += 1
        if has_replied(contact):
            entry["replies"] += 1
        if safe_int(prop(contact, "num_associated_deals")) > 0:
            entry["deals_created"] += 1
            entry["deals_value"] += max(0.0, safe_float(prop(contact, "recent_deal_amount")))
    return list(stats.values())


def meeting_breakdown(meetings: List[Meeting]) -> Dict[str, Any]:
    by_owner = Counter(m.owner_id for m in meetings if m.owner_id)
    by_outcome = Counter(m.outcome or NO_OUTCOME for m in meetings)
    return {
        "total": len(meetings),
        "by_owner": dict(by_owner),
        "by_outcome": dict(by_outcome),
    }


def deal_breakdown(deals: List[Deal], pipelines: List[Dict]) -> Dict[str, Any]:
    won_stages, lost_stages = stage_sets(pipelines)
    won = [d for d in deals if d.stage in won_stages]
    lost = [d for d in deals if d.stage in lost_stages and d.stage not in won_stages]
    return {
        "created": len(deals),
        "won": len(won),
        "won_value": sum(d.amount for d in won),
        "lost": len(lost),
    }


async def _owners_and_sequences(hubspot: HubSpotClient) -> Tuple[List[Dict], List[Dict]]:
    # Sequences are listed per HubSpot user; the first owner stands in for the portal
    owners = await hubspot.get_owners()
    if not owners:
        return owners, []
    first = owners[0]
    return owners, await hubspot.get_sequences(str(first.get("userId") or first.get("id")))


async def get_campaign_data(
    hubspot: HubSpotClient,
    owner_ids: Optional[List[str]] = None,
    active_only: bool = False,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    tz: Optional[tzinfo] = None,
) -> Dict[str, Any]:
    owner_ids = [o for o in owner_ids or [] if o]
    start = day_bounds(start_date, tz)[0] if start_date else None
    end = day_bounds(end_date, tz)[1] if end_date else None

    meetings_start = start or datetime.now(timezone.utc) - timedelta(days=DEFAULT_MEETING_LOOKBACK_DAYS)

    (owners, sequences), pipelines, enrollments, raw_deals, raw_meetings = await asyncio.gather(
        _owners_and_sequences(hubspot),
        hubspot.get_pipelines(),
        hubspot.get_sequence_enrollments_by_owners(
            owner_ids, active_only=active_only, start=start, end=end,
        ),
        hubspot.get_deals_for_owners(owner_ids, start, end),
        hubspot.get_meetings(None, meetings_start, end),
    )
    deals = [Deal.from_hubspot(r) for r in raw_deals]
    meetings = [Meeting.from_hubspot(r) for r in raw_meetings]
    if owner_ids:
        wanted = set(owner_ids)
        meetings = [m for m in meetings if m.owner_id in wanted]

    logger.info(
        "Campaigns: %d sequences, %d enrollments, %d deals, %d meetings",
        len(sequences), len(enrollments), len(deals), len(meetings),
    )
    return {
        "sequences": sequence_stats(sequences, enrollments),
        "enrollments": {
            "total": len(enrollments),
            "active": sum(1 for c in enrollments if is_active(c)),
            "replied": sum(1 for c in enrollments if has_replied(c)),
        },
        "meetings": meeting_breakdown(meetings),
        "deals": deal_breakdown(deals, pipelines),
        "owners": owners,
        "pipelines": pipelines,
    }
