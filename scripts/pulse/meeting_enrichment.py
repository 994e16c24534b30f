"""
Sales Pulse Hub — Meeting Enrichment
=======================================

Builds the meetings view: HubSpot meetings in a window, each annotated with
lead source, associated deal, primary contact, engagement outcome and the
mapped Grain recording.

Engagement outcome (only for meetings without hs_meeting_outcome) is an
ordered list of resolvers; the first one that returns an outcome wins and
a failing resolver just hands over to the next:

  1. meeting detail     re-read hs_meeting_outcome / hs_engagement_id
  2. batch association  meeting -> engagement ids (v4), engagement detail
  3. legacy association v1 associated-engagements, engagement detail
  4. meeting id         the meeting id itself as an engagement id

Functions:
  pick_latest_deal()           - most recently modified associated deal
  primary_contacts()           - first associated contact per meeting
  resolve_engagement_outcome() - run the resolver chain for one meeting
  enrich_meetings()            - full meetings view for a MetricsQuery
"""
from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from integrations.grain import GrainClient
from integrations.hubspot import HubSpotClient
from models.crm_models import Contact, Deal, Meeting
from models.pulse_models import MetricsQuery
from scripts.lib.errors import ConfigError, HubError
from scripts.lib.logger import setup_logger
from scripts.lib.utils import first_text, prop
from scripts.pulse.dates import range_bounds
from scripts.pulse.store import PulseStore

logger = setup_logger("meeting_enrichment")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ─── Lead Source & Deal ─────────────────────────────────────

def pick_latest_deal(deal_ids: List[str], deals: Dict[str, Deal]) -> Optional[Deal]:
    """Associated deal with the newest hs_lastmodifieddate (else createdate)."""
    known = [deals[d] for d in deal_ids if d in deals]
    if not known:
        return None
    return max(known, key=lambda d: d.last_modified or d.create_date or _EPOCH)


# ─── Primary Contact ────────────────────────────────────────

def primary_contacts(
    contact_map: Dict[str, List[str]],
    contacts: Dict[str, Contact],
) -> Dict[str, Optional[Dict[str, Any]]]:
    """First associated contact per meeting; id-only when the record is missing."""
    result: Dict[str, Optional[Dict[str, Any]]] = {}
    for meeting_id, ids in contact_map.items():
        if not ids:
            result[meeting_id] = None
            continue
        contact = contacts.get(ids[0])
        if contact:
            result[meeting_id] = contact.model_dump()
        else:
            result[meeting_id] = {"id": ids[0], "email": None, "name": None}
    return result


# ─── Engagement Outcome ─────────────────────────────────────

@dataclass
class OutcomeLookup:
    """What is known about a meeting while its outcome is being resolved."""
    meeting: Meeting
    batch_engagement_ids: List[str] = field(default_factory=list)
    engagement_id: Optional[str] = None


OutcomeResolver = Callable[[HubSpotClient, OutcomeLookup], Awaitable[Optional[str]]]


def outcome_from_engagement(engagement: Dict[str, Any]) -> Optional[str]:
    metadata = (engagement or {}).get("metadata") or {}
    for key in ("meetingOutcome", "meeting_result", "outcome"):
        value = metadata.get(key)
        if value not in (None, ""):
            return str(value)
    return None


async def from_meeting_detail(hubspot: HubSpotClient, lookup: OutcomeLookup) -> Optional[str]:
    if lookup.engagement_id:
        return None
    detail = await hubspot.get_meeting(
        lookup.meeting.id, ["hs_engagement_id", "hs_meeting_outcome"],
    )
    engagement_id = prop(detail, "hs_engagement_id")
    if engagement_id not in (None, ""):
        lookup.engagement_id = str(engagement_id).strip()
    return first_text(prop(detail, "hs_meeting_outcome"))


async def from_batch_association(hubspot: HubSpotClient, lookup: OutcomeLookup) -> Optional[str]:
    ids = [lookup.engagement_id] if lookup.engagement_id else lookup.batch_engagement_ids
    if not ids:
        return None
    return outcome_from_engagement(await hubspot.get_engagement(ids[0]))


async def from_legacy_association(hubspot: HubSpotClient, lookup: OutcomeLookup) -> Optional[str]:
    if lookup.engagement_id or lookup.batch_engagement_ids:
        return None
    ids = await hubspot.get_engagement_ids_for_meeting(lookup.meeting.id)
    if not ids:
        return None
    return outcome_from_engagement(await hubspot.get_engagement(ids[0]))


async def from_meeting_id(hubspot: HubSpotClient, lookup: OutcomeLookup) -> Optional[str]:
    return outcome_from_engagement(await hubspot.get_engagement(lookup.meeting.id))


OUTCOME_RESOLVERS: List[OutcomeResolver] = [
    from_meeting_detail,
    from_batch_association,
    from_legacy_association,
    from_meeting_id,
]


async def resolve_engagement_outcome(
    hubspot: HubSpotClient,
    lookup: OutcomeLookup,
    resolvers: List[OutcomeResolver] = None,
) -> Optional[str]:
    """First outcome any resolver produces, or None."""
    for resolver in resolvers or OUTCOME_RESOLVERS:
        try:
            outcome = await resolver(hubspot, lookup)
        except HubError as e:
            logger.debug("Outcome resolver %s failed for meeting %s: %s",
                         resolver.__name__, lookup.meeting.id, e)
            continue
        if outcome:
            return outcome
    return None


# ─── Recordings ─────────────────────────────────────────────

async def recording_links(
    grain: Optional[GrainClient],
    store: PulseStore,
    meeting_ids: List[str],
) -> Dict[str, Dict[str, Any]]:
    """Mapped recording per meeting: id, share URL and coaching score."""
    if grain is None or not grain.is_configured or not meeting_ids:
        return {}
    try:
        mappings = [m for m in store.list_mappings(meeting_ids) if m.grain_meeting_id]
    except ConfigError as e:
        logger.info("Skipping recording links: %s", e.message)
        return {}
    if not mappings:
        return {}

    details = await grain.get_meeting_details([m.grain_meeting_id for m in mappings])
    by_recording = {d["id"]: d for d in details}

    links = {}
    for mapping in mappings:
        detail = by_recording.get(mapping.grain_meeting_id) or {}
        links[mapping.hubspot_meeting_id] = {
            "grain_meeting_id": mapping.grain_meeting_id,
            "share_url": mapping.grain_share_url or detail.get("share_url"),
            "coaching_score": detail.get("coaching_score"),
            "title": detail.get("title"),
        }
    return links


# ─── Meetings View ──────────────────────────────────────────

async def _lead_sources(
    hubspot: HubSpotClient,
    meeting_ids: List[str],
) -> Tuple[Dict[str, Optional[str]], Dict[str, Optional[str]]]:
    associations = await hubspot.get_meeting_deal_ids_batch(meeting_ids)
    deal_ids = sorted({d for ids in associations.values() for d in ids})
    deals = {}
    if deal_ids:
        deals = {d.id: d for d in (Deal.from_hubspot(r) for r in await hubspot.get_deals_by_ids(deal_ids))}

    lead_sources: Dict[str, Optional[str]] = {}
    deal_by_meeting: Dict[str, Optional[str]] = {}
    for meeting_id in meeting_ids:
        deal = pick_latest_deal(associations.get(meeting_id, []), deals)
        lead_sources[meeting_id] = deal.lead_source if deal else None
        deal_by_meeting[meeting_id] = deal.id if deal else None
    return lead_sources, deal_by_meeting


async def _contacts(hubspot: HubSpotClient, meeting_ids: List[str]) -> Dict[str, Optional[Dict[str, Any]]]:
    contact_map = await hubspot.get_meeting_contacts(meeting_ids)
    contact_ids = sorted({c for ids in contact_map.values() for c in ids})
    contacts = {}
    if contact_ids:
        contacts = {
            c.id: c for c in (Contact.from_hubspot(r) for r in await hubspot.get_contacts_by_ids(contact_ids))
        }
    return primary_contacts(contact_map, contacts)


async def _outcomes(hubspot: HubSpotClient, meetings: List[Meeting]) -> Dict[str, Optional[str]]:
    missing = [m for m in meetings if not m.outcome]
    if not missing:
        return {}
    try:
        batch = await hubspot.get_meeting_engagement_ids_batch([m.id for m in missing])
    except HubError as e:
        logger.warning("Batch meeting→engagement association failed: %s", e)
        batch = {}

    outcomes = {}
    for meeting in missing:
        lookup = OutcomeLookup(
            meeting=meeting,
            batch_engagement_ids=batch.get(meeting.id, []),
            engagement_id=meeting.engagement_id,
        )
        outcomes[meeting.id] = await resolve_engagement_outcome(hubspot, lookup)
    return outcomes


async def enrich_meetings(
    hubspot: HubSpotClient,
    grain: Optional[GrainClient],
    store: PulseStore,
    query: MetricsQuery,
) -> Dict[str, Any]:
    """Meetings in the query window plus every per-meeting annotation."""
    start, end = range_bounds(query.start, query.end, query.tz)
    raw_meetings, owners = await asyncio.gather(
        hubspot.get_meetings(query.owner_ids, start, end),
        hubspot.get_owners(),
    )
    meetings = [Meeting.from_hubspot(r) for r in raw_meetings]
    meeting_ids = [m.id for m in meetings]

    if meeting_ids:
        (lead_sources, deal_by_meeting), contacts, outcomes, recordings = await asyncio.gather(
            _lead_sources(hubspot, meeting_ids),
            _contacts(hubspot, meeting_ids),
            _outcomes(hubspot, meetings),
            recording_links(grain, store, meeting_ids),
        )
    else:
        lead_sources, deal_by_meeting, contacts, outcomes, recordings = {}, {}, {}, {}, {}

    logger.info("Enriched %d meetings (%s → %s)", len(meetings), query.start, query.end)
    return {
        "results": raw_meetings,
        "owners": owners,
        "total": len(meetings),
        "lead_sources": lead_sources,
        "deal_by_meeting_id": deal_by_meeting,
        "contacts": contacts,
        "engagement_outcomes": outcomes,
        "recordings": recordings,
        "portal_id": os.getenv("HUBSPOT_PORTAL_ID") or None,
    }
