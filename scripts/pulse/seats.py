"""
Sales Pulse Hub — Seats
==========================

Rep/manager seats and their link to HubSpot owners.

Auto-mapping tries, per seat without an owner id:
  1. email (case-insensitive)
  2. full name (whitespace-collapsed, case-insensitive)
  3. first name, only for single-word seat names with exactly one owner match
"""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, List, Optional

from integrations.hubspot import HubSpotClient
from models.crm_models import Owner
from models.pulse_models import Seat, SeatCreate
from scripts.lib.errors import SchemaValidationError
from scripts.lib.logger import setup_logger
from scripts.lib.utils import normalize_email
from scripts.pulse.store import PulseStore

logger = setup_logger("pulse_seats")


def normalize_name(value: Optional[str]) -> str:
    return " ".join((value or "").lower().split())


class OwnerIndex:
    """Lookup tables for matching seats to owners."""

    def __init__(self, owners: List[Owner]):
        self.by_email: Dict[str, str] = {}
        self.by_full_name: Dict[str, str] = {}
        self.by_first_name: Dict[str, List[str]] = defaultdict(list)
        for owner in owners:
            email = normalize_email(owner.email)
            if email:
                self.by_email[email] = owner.id
            full_name = normalize_name(owner.name)
            if full_name:
                self.by_full_name[full_name] = owner.id
            if owner.first_name:
                self.by_first_name[normalize_name(owner.first_name)].append(owner.id)

    def match(self, seat: Seat) -> Optional[str]:
        email = normalize_email(seat.email)
        if email and email in self.by_email:
            return self.by_email[email]

        name = normalize_name(seat.name)
        if not name:
            return None
        if name in self.by_full_name:
            return self.by_full_name[name]
        if " " not in name:
            matches = self.by_first_name.get(name, [])
            if len(matches) == 1:
                return matches[0]
        return None


def create_seat(store: PulseStore, payload: SeatCreate) -> Seat:
    """Raises SchemaValidationError when the name is blank."""
    name = (payload.name or "").strip()
    if not name:
        raise SchemaValidationError("name is required", field="name")
    seat = Seat(
        name=name,
        email=(payload.email or "").strip() or None,
        role=payload.role,
        status=payload.status,
        hubspot_owner_id=(payload.hubspot_owner_id or "").strip() or None,
    )
    return store.create_seat(seat)


async def auto_map_seats(hubspot: HubSpotClient, store: PulseStore) -> Dict[str, Any]:
    """Link unmapped seats to HubSpot owners. Seats with an owner id are left alone."""
    owners = [Owner.from_hubspot(o) for o in await hubspot.get_owners()]
    index = OwnerIndex(owners)

    updated: List[Seat] = []
    skipped = 0
    for seat in store.list_seats():
        if seat.hubspot_owner_id:
            skipped += 1
            continue
        owner_id = index.match(seat)
        if owner_id is None:
            skipped += 1
            continue
        saved = store.update_seat(seat.id, {"hubspot_owner_id": owner_id})
        updated.append(saved or seat.model_copy(update={"hubspot_owner_id": owner_id}))

    logger.info("Seat auto-map: %d updated, %d skipped", len(updated), skipped)
    return {
        "updated": len(updated),
        "skipped": skipped,
        "results": [s.model_dump(mode="json") for s in updated],
    }
