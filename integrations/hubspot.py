"""
HubSpot Integration
====================

Connects to HubSpot CRM for:
- Deal, meeting, call and email search (cursor-paginated, owner/date filtered)
- Meeting associations (contacts, deals, engagements) with legacy fallbacks
- Owners, pipelines, sequences and sequence enrollments
- Narrow property updates on deals and meetings

Setup:
1. Create a Private App in HubSpot -> Settings -> Integrations -> Private Apps
2. Set HUBSPOT_ACCESS_TOKEN in .env (HUBSPOT_API_KEY is accepted as a fallback)
"""

import asyncio
import os
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import aiohttp

from scripts.lib.errors import APITimeoutError, ConfigError, HubSpotAPIError
from scripts.lib.logger import setup_logger
from scripts.lib.utils import parse_ts, prop, to_epoch_ms

logger = setup_logger(__name__)

HUBSPOT_API_URL = "https://api.hubapi.com"

PAGE_SIZE = 100
BATCH_SIZE = 100
MAX_RECORDS = 10000
MAX_ENGAGEMENTS = 2000
MAX_OWNERS = 500
MAX_DEALS_PER_OWNER = 5000

REQUEST_TIMEOUT_SECONDS = float(os.getenv("HUBSPOT_TIMEOUT_SECONDS", "30"))
OWNER_FETCH_DELAY_SECONDS = float(os.getenv("OWNER_FETCH_DELAY_SECONDS", "0.2"))

DEAL_PROPERTIES = [
    "dealname", "amount", "dealstage", "pipeline", "closedate",
    "createdate", "hubspot_owner_id",
]
MEETING_PROPERTIES = [
    "hs_timestamp", "hs_meeting_title", "hs_meeting_outcome",
    "hs_meeting_start_time", "hs_meeting_end_time", "hubspot_owner_id",
    "hs_activity_type", "hs_analytics_source", "hs_analytics_source_data_1",
    "hs_analytics_source_data_2", "hs_engagement_id",
]
CALL_PROPERTIES = ["hs_timestamp", "hs_call_status", "hubspot_owner_id"]
EMAIL_PROPERTIES = [
    "hs_timestamp", "hs_email_status", "hubspot_owner_id",
    "hs_createdate", "createdate",
]
ENROLLMENT_PROPERTIES = [
    "email", "firstname", "lastname", "hubspot_owner_id",
    "hs_sequences_is_enrolled", "hs_sequences_actively_enrolled_count",
    "hs_sequences_enrolled_count", "hs_latest_sequence_enrolled",
    "hs_latest_sequence_enrolled_date", "hs_email_replied",
    "hs_email_last_reply_date", "hs_sales_email_last_replied",
    "num_associated_deals", "recent_deal_amount",
]


# ─── Filter Builders ────────────────────────────────────────

def owner_filter(owner_ids: Optional[Iterable[str]]) -> Optional[Dict[str, Any]]:
    """IN for several owners, EQ for exactly one, nothing for none."""
    ids = [str(o) for o in owner_ids or [] if o]
    if not ids:
        return None
    if len(ids) == 1:
        return {"propertyName": "hubspot_owner_id", "operator": "EQ", "value": ids[0]}
    return {"propertyName": "hubspot_owner_id", "operator": "IN", "values": ids}


def range_filters(
    property_name: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """GTE/LTE filters on a timestamp property, as epoch-millisecond strings."""
    filters = []
    if start is not None:
        filters.append({"propertyName": property_name, "operator": "GTE", "value": to_epoch_ms(start)})
    if end is not None:
        filters.append({"propertyName": property_name, "operator": "LTE", "value": to_epoch_ms(end)})
    return filters


def association_ids(entries: Optional[List[Dict[str, Any]]]) -> List[str]:
    """Target ids from a v4 association result (``id`` or ``toObjectId``)."""
    ids = []
    for entry in entries or []:
        if not isinstance(entry, dict):
            continue
        value = entry.get("id")
        if value in (None, ""):
            value = entry.get("toObjectId")
        if value not in (None, ""):
            ids.append(str(value))
    return ids


def stage_sets(pipelines: List[Dict[str, Any]]) -> Tuple[Set[str], Set[str]]:
    """Won and lost stage ids: stage id or label containing "won"/"lost"."""
    won, lost = set(), set()
    for pipeline in pipelines:
        for stage in pipeline.get("stages") or []:
            stage_id = str(stage.get("id", ""))
            haystack = f"{stage_id.lower()} {str(stage.get('label', '')).lower()}"
            if "won" in haystack:
                won.add(stage_id)
            if "lost" in haystack:
                lost.add(stage_id)
    return won, lost


def _chunks(items: List[str], size: int = BATCH_SIZE):
    for i in range(0, len(items), size):
        yield items[i:i + size]


def _dedupe_ids(ids: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for value in ids:
        if value and value not in seen:
            seen.add(value)
            out.append(str(value))
    return out


# ─── Client ─────────────────────────────────────────────────

class HubSpotClient:
    """HubSpot CRM connector."""

    def __init__(self, access_token: str = None, owner_delay: float = None):
        if access_token is None:
            access_token = os.getenv("HUBSPOT_ACCESS_TOKEN") or os.getenv("HUBSPOT_API_KEY")
        self.access_token = access_token
        self.owner_delay = OWNER_FETCH_DELAY_SECONDS if owner_delay is None else owner_delay

    @property
    def is_configured(self) -> bool:
        return bool(self.access_token)

    def _headers(self) -> Dict[str, str]:
        """Build authorization headers."""
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        json_body: dict = None,
        params: dict = None,
    ) -> Dict[str, Any]:
        """Make an authenticated request to the HubSpot API.

        Raises:
            ConfigError: no access token is configured.
            HubSpotAPIError: any non-2xx response.
            APITimeoutError: the request exceeded REQUEST_TIMEOUT_SECONDS.
        """
        if not self.is_configured:
            raise ConfigError(
                "HubSpot is not configured — set HUBSPOT_ACCESS_TOKEN in .env",
                setting="HUBSPOT_ACCESS_TOKEN",
            )

        url = f"{HUBSPOT_API_URL}{path}"
        timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(
                    method, url, headers=self._headers(), json=json_body, params=params,
                ) as resp:
                    if 200 <= resp.status < 300:
                        if resp.status == 204:
                            return {}
                        return await resp.json(content_type=None) or {}
                    text = await resp.text()
                    logger.error("HubSpot API %s %s returned %s: %s", method, path, resp.status, text)
                    raise HubSpotAPIError(resp.status, text, url=url)
        except asyncio.TimeoutError:
            logger.error("HubSpot API %s %s timed out after %ss", method, path, REQUEST_TIMEOUT_SECONDS)
            raise APITimeoutError(url, REQUEST_TIMEOUT_SECONDS)

    # ─── Pagination ──────────────────────────────────────────

    async def search(
        self,
        object_type: str,
        properties: List[str],
        filters: List[Dict[str, Any]] = None,
        limit: int = MAX_RECORDS,
    ) -> List[Dict]:
        """Run a CRM search and follow ``paging.next.after`` to the end.

        Stops early once ``limit`` records have accumulated; what was
        fetched so far is returned.
        """
        results: List[Dict] = []
        after = None
        while True:
            body: Dict[str, Any] = {"properties": properties, "limit": PAGE_SIZE}
            if filters:
                body["filterGroups"] = [{"filters": filters}]
            if after:
                body["after"] = after

            data = await self._request("POST", f"/crm/v3/objects/{object_type}/search", json_body=body)
            results.extend(data.get("results") or [])

            after = ((data.get("paging") or {}).get("next") or {}).get("after")
            if not after:
                break
            if len(results) >= limit:
                logger.warning(
                    "HubSpot %s search stopped at %d records (ceiling %d)",
                    object_type, len(results), limit,
                )
                break
        return results

    async def list_all(
        self,
        path: str,
        params: Dict[str, Any] = None,
        limit: int = MAX_RECORDS,
    ) -> List[Dict]:
        """GET a list endpoint page by page."""
        results: List[Dict] = []
        after = None
        while True:
            query = {"limit": PAGE_SIZE, **(params or {})}
            if after:
                query["after"] = after

            data = await self._request("GET", path, params=query)
            results.extend(data.get("results") or [])

            after = ((data.get("paging") or {}).get("next") or {}).get("after")
            if not after:
                break
            if len(results) >= limit:
                logger.warning("HubSpot %s list stopped at %d records (ceiling %d)", path, len(results), limit)
                break
        return results

    # ─── Deals ───────────────────────────────────────────────

    async def get_deals(
        self,
        owner_ids: List[str] = None,
        start: datetime = None,
        end: datetime = None,
    ) -> List[Dict]:
        """Deals created in the window, optionally for a set of owners."""
        filters = range_filters("createdate", start, end)
        owner = owner_filter(owner_ids)
        if owner:
            filters.append(owner)
        return await self.search("deals", DEAL_PROPERTIES, filters)

    async def get_deals_by_owner(
        self,
        owner_id: str,
        start: datetime = None,
        end: datetime = None,
        pipeline_id: str = None,
    ) -> List[Dict]:
        filters = [owner_filter([owner_id])]
        if pipeline_id:
            filters.append({"propertyName": "pipeline", "operator": "EQ", "value": pipeline_id})
        filters.extend(range_filters("createdate", start, end))
        properties = DEAL_PROPERTIES + [
            "hs_analytics_source", "hs_analytics_source_data_1", "hs_analytics_source_data_2",
        ]
        return await self.search("deals", properties, filters, limit=MAX_DEALS_PER_OWNER)

    async def get_deals_for_owners(
        self,
        owner_ids: List[str],
        start: datetime = None,
        end: datetime = None,
    ) -> List[Dict]:
        """Deals for several owners, fetched one owner at a time.

        Without owners or a date window this returns nothing: an unbounded
        deal scan is too expensive.
        """
        if not owner_ids:
            if start is None and end is None:
                return []
            return await self.search("deals", DEAL_PROPERTIES, range_filters("createdate", start, end))
        return await self._per_owner(
            owner_ids, lambda oid: self.get_deals_by_owner(oid, start=start, end=end),
        )

    async def get_pipelines(self) -> List[Dict]:
        data = await self._request("GET", "/crm/v3/pipelines/deals")
        return data.get("results") or []

    async def get_closed_deals(
        self,
        won: bool,
        owner_ids: List[str] = None,
        start: datetime = None,
        end: datetime = None,
    ) -> List[Dict]:
        """Deals closed (won or lost) in the window, by close date."""
        won_stages, lost_stages = stage_sets(await self.get_pipelines())
        stages = won_stages if won else lost_stages
        if not stages:
            logger.warning("No %s stages found in deal pipelines", "won" if won else "lost")
            return []

        filters = range_filters("closedate", start, end)
        filters.append({"propertyName": "dealstage", "operator": "IN", "values": sorted(stages)})
        owner = owner_filter(owner_ids)
        if owner:
            filters.append(owner)
        return await self.search("deals", DEAL_PROPERTIES, filters)

    async def get_deals_closed_won(self, owner_ids=None, start=None, end=None) -> List[Dict]:
        return await self.get_closed_deals(True, owner_ids, start, end)

    async def get_deals_closed_lost(self, owner_ids=None, start=None, end=None) -> List[Dict]:
        return await self.get_closed_deals(False, owner_ids, start, end)

    async def get_deals_by_ids(self, ids: List[str]) -> List[Dict]:
        return await self._batch_read(
            "deals", ids, ["lead_source", "hs_lastmodifieddate", "createdate"],
        )

    async def update_deal(self, deal_id: str, properties: Dict[str, Optional[str]]) -> Dict:
        """PATCH deal properties. ``None`` clears a property."""
        return await self._request(
            "PATCH", f"/crm/v3/objects/deals/{deal_id}",
            json_body={"properties": self._sanitize(properties)},
        )

    async def get_deal_property_options(self, property_name: str) -> List[Dict[str, str]]:
        data = await self._request("GET", f"/crm/v3/properties/deals/{property_name}")
        return [
            {"label": o.get("label", ""), "value": o.get("value", "")}
            for o in data.get("options") or []
        ]

    # ─── Meetings, Calls, Emails ────────────────────────────

    async def get_meetings(
        self,
        owner_ids: List[str] = None,
        start: datetime = None,
        end: datetime = None,
    ) -> List[Dict]:
        """Meetings whose start time falls in the window."""
        filters = []
        owner = owner_filter(owner_ids)
        if owner:
            filters.append(owner)
        filters.extend(range_filters("hs_meeting_start_time", start, end))
        return await self.search("meetings", MEETING_PROPERTIES, filters, limit=MAX_ENGAGEMENTS)

    async def get_meeting(self, meeting_id: str, properties: List[str] = None) -> Dict:
        params = {"properties": ",".join(properties)} if properties else None
        return await self._request("GET", f"/crm/v3/objects/meetings/{meeting_id}", params=params)

    async def update_meeting(self, meeting_id: str, properties: Dict[str, Optional[str]]) -> Dict:
        """PATCH meeting properties. ``None`` clears a property."""
        return await self._request(
            "PATCH", f"/crm/v3/objects/meetings/{meeting_id}",
            json_body={"properties": self._sanitize(properties)},
        )

    async def get_calls(
        self,
        owner_ids: List[str] = None,
        start: datetime = None,
        end: datetime = None,
    ) -> List[Dict]:
        filters = range_filters("hs_timestamp", start, end)
        owner = owner_filter(owner_ids)
        if owner:
            filters.append(owner)
        return await self.search("calls", CALL_PROPERTIES, filters, limit=MAX_ENGAGEMENTS)

    async def get_emails(
        self,
        owner_ids: List[str] = None,
        start: datetime = None,
        end: datetime = None,
    ) -> List[Dict]:
        """Emails in the window.

        Tries the search on ``hs_timestamp``, then on ``hs_createdate`` when
        filters are set, and finally lists all emails and filters locally.
        """
        owner = owner_filter(owner_ids)

        async def _search(timestamp_property: str) -> List[Dict]:
            filters = range_filters(timestamp_property, start, end)
            if owner:
                filters.append(owner)
            return await self.search("emails", EMAIL_PROPERTIES, filters, limit=MAX_ENGAGEMENTS)

        emails = await _search("hs_timestamp")
        if emails:
            return emails

        if start is not None or end is not None or owner:
            emails = await _search("hs_createdate")
            if emails:
                return emails

        logger.info("Email search returned nothing, filtering the email list locally")
        wanted_owners = {str(o) for o in owner_ids or []}
        matched = []
        for email in await self.list_all(
            "/crm/v3/objects/emails",
            params={"properties": ",".join(EMAIL_PROPERTIES)},
            limit=MAX_ENGAGEMENTS,
        ):
            ts = (
                parse_ts(prop(email, "hs_timestamp"))
                or parse_ts(prop(email, "hs_createdate"))
                or parse_ts(prop(email, "createdate"))
            )
            if ts is None:
                continue
            if start is not None and ts < start:
                continue
            if end is not None and ts > end:
                continue
            email_owner = prop(email, "hubspot_owner_id")
            if wanted_owners and email_owner and str(email_owner) not in wanted_owners:
                continue
            matched.append(email)
        return matched

    # ─── Associations & Batch Reads ─────────────────────────

    async def _batch_associations(self, to_type: str, meeting_ids: List[str]) -> Dict[str, List[str]]:
        mapping: Dict[str, List[str]] = {}
        for chunk in _chunks(_dedupe_ids(meeting_ids)):
            data = await self._request(
                "POST", f"/crm/v4/associations/meetings/{to_type}/batch/read",
                json_body={"inputs": [{"id": mid} for mid in chunk]},
            )
            for result in data.get("results") or []:
                from_id = str((result.get("from") or {}).get("id", ""))
                if from_id:
                    mapping[from_id] = association_ids(result.get("to"))
        return mapping

    async def get_meeting_contact_ids_batch(self, meeting_ids: List[str]) -> Dict[str, List[str]]:
        return await self._batch_associations("contacts", meeting_ids)

    async def get_meeting_deal_ids_batch(self, meeting_ids: List[str]) -> Dict[str, List[str]]:
        return await self._batch_associations("deals", meeting_ids)

    async def get_meeting_engagement_ids_batch(self, meeting_ids: List[str]) -> Dict[str, List[str]]:
        return await self._batch_associations("engagements", meeting_ids)

    async def get_meeting_contact_ids(self, meeting_id: str) -> List[str]:
        """Legacy single-meeting contact association."""
        data = await self._request(
            "GET", f"/crm/v3/objects/meetings/{meeting_id}/associations/contacts",
            params={"limit": 100},
        )
        return [str(r["id"]) for r in data.get("results") or [] if r.get("id") is not None]

    async def get_engagement_ids_for_meeting(self, meeting_id: str) -> List[str]:
        """Legacy v1 engagement association."""
        data = await self._request(
            "GET", f"/engagements/v1/engagements/associated/meeting/{meeting_id}/paged",
            params={"limit": 100},
        )
        return [str(r["id"]) for r in data.get("results") or [] if r.get("id") is not None]

    async def get_meeting_contacts(self, meeting_ids: List[str]) -> Dict[str, List[str]]:
        """Contact ids per meeting: batch read, then the legacy endpoint for gaps.

        The legacy lookup soft-fails per meeting; a failed meeting maps to
        no contacts.
        """
        ids = _dedupe_ids(meeting_ids)
        if not ids:
            return {}
        try:
            mapping = await self.get_meeting_contact_ids_batch(ids)
        except (HubSpotAPIError, APITimeoutError) as e:
            logger.warning("Batch meeting→contact association failed, using legacy lookup: %s", e)
            mapping = {}

        for meeting_id in ids:
            if mapping.get(meeting_id):
                continue
            try:
                mapping[meeting_id] = await self.get_meeting_contact_ids(meeting_id)
            except (HubSpotAPIError, APITimeoutError) as e:
                logger.warning("Contact lookup failed for meeting %s: %s", meeting_id, e)
                mapping[meeting_id] = []
        return mapping

    async def _batch_read(self, object_type: str, ids: List[str], properties: List[str]) -> List[Dict]:
        results: List[Dict] = []
        for chunk in _chunks(_dedupe_ids(ids)):
            data = await self._request(
                "POST", f"/crm/v3/objects/{object_type}/batch/read",
                json_body={"properties": properties, "inputs": [{"id": i} for i in chunk]},
            )
            results.extend(data.get("results") or [])
        return results

    async def get_contacts_by_ids(self, ids: List[str]) -> List[Dict]:
        return await self._batch_read("contacts", ids, ["email", "firstname", "lastname"])

    async def get_engagement(self, engagement_id: str) -> Dict:
        return await self._request("GET", f"/engagements/v1/engagements/{engagement_id}")

    # ─── Owners & Sequences ─────────────────────────────────

    async def get_owners(self) -> List[Dict]:
        return await self.list_all("/crm/v3/owners", limit=MAX_OWNERS)

    async def get_sequences(self, user_id: str = None) -> List[Dict]:
        """Sequences visible to a HubSpot user (default: the first owner)."""
        if not user_id:
            owners = await self.get_owners()
            if not owners:
                return []
            first = owners[0]
            user_id = str(first.get("userId") or first.get("id"))
        data = await self._request("GET", "/automation/v4/sequences", params={"userId": user_id})
        return data.get("results") or []

    async def get_sequence_enrollments(
        self,
        active_only: bool = False,
        start: datetime = None,
        end: datetime = None,
        sequence_id: str = None,
        owner_id: str = None,
    ) -> List[Dict]:
        """Contacts enrolled in sequences."""
        if active_only:
            filters = [{"propertyName": "hs_sequences_actively_enrolled_count", "operator": "GT", "value": "0"}]
        elif start is not None or end is not None:
            filters = [{"propertyName": "hs_sequences_enrolled_count", "operator": "GT", "value": "0"}]
        else:
            filters = [{"propertyName": "hs_sequences_is_enrolled", "operator": "EQ", "value": "true"}]

        filters.extend(range_filters("hs_latest_sequence_enrolled_date", start, end))
        if sequence_id:
            filters.append({"propertyName": "hs_latest_sequence_enrolled", "operator": "EQ", "value": sequence_id})
        if owner_id:
            filters.append(owner_filter([owner_id]))
        return await self.search("contacts", ENROLLMENT_PROPERTIES, filters)

    async def get_sequence_enrollments_by_owners(
        self,
        owner_ids: List[str],
        active_only: bool = False,
        start: datetime = None,
        end: datetime = None,
    ) -> List[Dict]:
        if not owner_ids:
            return await self.get_sequence_enrollments(active_only=active_only, start=start, end=end)
        return await self._per_owner(
            owner_ids,
            lambda oid: self.get_sequence_enrollments(
                active_only=active_only, start=start, end=end, owner_id=oid,
            ),
        )

    # ─── Helpers ─────────────────────────────────────────────

    async def _per_owner(self, owner_ids: List[str], fetch) -> List[Dict]:
        """Run ``fetch(owner_id)`` sequentially with a delay, de-duplicating by id."""
        records: List[Dict] = []
        seen: Set[str] = set()
        for i, owner_id in enumerate(owner_ids):
            if i > 0 and self.owner_delay > 0:
                await asyncio.sleep(self.owner_delay)
            for record in await fetch(owner_id):
                record_id = str(record.get("id", ""))
                if record_id in seen:
                    continue
                seen.add(record_id)
                records.append(record)
        return records

    @staticmethod
    def _sanitize(properties: Dict[str, Optional[Any]]) -> Dict[str, str]:
        # HubSpot clears a property only when sent an empty string
        return {key: "" if value is None else str(value) for key, value in properties.items()}

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": "HubSpot",
            "configured": self.is_configured,
            "features": ["deals", "meetings", "calls", "emails", "owners", "sequences"],
        }
