"""
Sales Pulse Hub — Meeting ↔ Recording Reconciler
===================================================

Links HubSpot meetings to Grain recordings when no mapping exists yet.

A CRM meeting's contacts are resolved to email addresses, and every
recording in the window is indexed by participant email. Candidates for a
meeting are the recordings sharing at least one email:

  0 candidates   -> skipped
  1 candidate    -> mapped, whatever the start times say
  >1 candidates  -> nearest start time; equal distances go to the
                    lexicographically smallest recording id; skipped when
                    no candidate (or the meeting) has a parseable start

Only meetings without a mapping are attempted, so a manual mapping is never
replaced by this pass.

Functions:
  build_email_index()  - normalized email -> recording ids
  choose_recording()   - pick one recording among candidates
  auto_map()           - full pass: fetch, match, upsert
  save_mapping()       - validated manual mapping upsert
"""
from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from integrations.grain import GrainClient, parse_share_url
from integrations.hubspot import HubSpotClient
from models.crm_models import Contact, RecordingMeeting
from models.pulse_models import AutoMapResult, MeetingMapping, MeetingRef
from scripts.lib.errors import SchemaValidationError
from scripts.lib.logger import setup_logger
from scripts.lib.utils import normalize_email, parse_ts
from scripts.pulse.store import PulseStore

logger = setup_logger("pulse_reconciler")

RECORDING_LIST_LIMIT = 500


def build_email_index(recordings: Iterable[RecordingMeeting]) -> Dict[str, Set[str]]:
    index: Dict[str, Set[str]] = defaultdict(set)
    for recording in recordings:
        for participant in recording.participants:
            email = normalize_email(participant.email)
            if email:
                index[email].add(recording.id)
    return dict(index)


def candidate_ids(emails: Iterable[str], index: Dict[str, Set[str]]) -> Set[str]:
    found: Set[str] = set()
    for email in emails:
        found |= index.get(normalize_email(email), set())
    return found


def choose_recording(
    meeting_start: Optional[datetime],
    candidates: Set[str],
    recordings: Dict[str, RecordingMeeting],
) -> Optional[RecordingMeeting]:
    """Select the recording a meeting most likely corresponds to."""
    if not candidates:
        return None
    if len(candidates) == 1:
        only = next(iter(candidates))
        return recordings.get(only) or RecordingMeeting(id=only)
    if meeting_start is None:
        return None

    scored = []
    for recording_id in candidates:
        recording = recordings.get(recording_id)
        started = recording.started_at if recording else None
        if started is None:
            continue
        delta = abs((started - meeting_start).total_seconds())
        scored.append((delta, recording_id))
    if not scored:
        return None
    _, best = min(scored)
    return recordings[best]


async def contact_emails_by_meeting(
    hubspot: HubSpotClient,
    meeting_ids: List[str],
) -> Dict[str, List[str]]:
    """Meeting id -> normalized contact emails."""
    contact_map = await hubspot.get_meeting_contacts(meeting_ids)
    all_contact_ids = sorted({cid for ids in contact_map.values() for cid in ids})
    if not all_contact_ids:
        return {mid: [] for mid in meeting_ids}

    contacts = {
        c.id: c for c in (Contact.from_hubspot(r) for r in await hubspot.get_contacts_by_ids(all_contact_ids))
    }
    emails: Dict[str, List[str]] = {}
    for meeting_id in meeting_ids:
        found = []
        for contact_id in contact_map.get(meeting_id, []):
            contact = contacts.get(contact_id)
            email = normalize_email(contact.email if contact else None)
            if email and email not in found:
                found.append(email)
        emails[meeting_id] = found
    return emails


async def auto_map(
    hubspot: HubSpotClient,
    grain: GrainClient,
    store: PulseStore,
    meetings: List[MeetingRef],
    start_date: str = None,
    end_date: str = None,
) -> AutoMapResult:
    """Map every unmapped meeting that has a confident recording match."""
    result = AutoMapResult()
    if not meetings:
        return result

    meeting_ids = list(dict.fromkeys(m.id for m in meetings))
    existing = {
        m.hubspot_meeting_id for m in store.list_mappings(meeting_ids) if m.grain_meeting_id
    }
    pending = [m for m in meetings if m.id not in existing]
    result.already_mapped = len(meeting_ids) - len({m.id for m in pending})
    if not pending:
        return result

    recordings = await grain.list_meetings(start_date, end_date, limit=RECORDING_LIST_LIMIT)
    by_id = {r.id: r for r in recordings}
    index = build_email_index(recordings)
    emails = await contact_emails_by_meeting(hubspot, [m.id for m in pending])

    seen: Set[str] = set()
    for meeting in pending:
        if meeting.id in seen:
            continue
        seen.add(meeting.id)

        candidates = candidate_ids(emails.get(meeting.id, []), index)
        start = parse_ts(meeting.start_time) or parse_ts(meeting.timestamp)
        chosen = choose_recording(start, candidates, by_id)
        if chosen is None:
            logger.debug("Meeting %s: %d candidates, no confident match", meeting.id, len(candidates))
            result.skipped += 1
            continue

        mapping = store.upsert_mapping(MeetingMapping(
            hubspot_meeting_id=meeting.id,
            grain_meeting_id=chosen.id,
            grain_share_url=chosen.share_url,
        ))
        result.results.append(mapping)
        result.created += 1

    logger.info(
        "Auto-map: %d created, %d skipped, %d already mapped",
        result.created, result.skipped, result.already_mapped,
    )
    return result


def save_mapping(
    store: PulseStore,
    hubspot_meeting_id: Optional[str],
    grain_meeting_id: Optional[str] = None,
    grain_share_url: Optional[str] = None,
) -> MeetingMapping:
    """Manually map a meeting. The recording id may come from a share URL.

    Raises:
        SchemaValidationError: no meeting id, or no way to tell the recording.
    """
    if not hubspot_meeting_id:
        raise SchemaValidationError("hubspot_meeting_id is required", field="hubspot_meeting_id")

    recording_id = grain_meeting_id
    if not recording_id and grain_share_url:
        parsed = parse_share_url(grain_share_url)
        if parsed:
            recording_id = parsed[0]
    if not recording_id:
        raise SchemaValidationError(
            "grain_meeting_id is required (or provide a valid grain_share_url)",
            field="grain_meeting_id",
        )

    return store.upsert_mapping(MeetingMapping(
        hubspot_meeting_id=hubspot_meeting_id,
        grain_meeting_id=recording_id,
        grain_share_url=grain_share_url or None,
    ))
