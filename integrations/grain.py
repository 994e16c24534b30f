"""
Grain Integration
==================

Connects to Grain meeting recordings for:
- Recordings in a date window (with participants)
- Single recording details, transcript and notes
- Coaching scorecards (absent scorecard -> None)
- Share-link extraction and share-URL parsing

Setup:
1. Create an API key in Grain -> Settings -> Integrations -> API
2. Set GRAIN_API_KEY in .env
"""

import asyncio
import os
import re
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from models.crm_models import CoachingFeedback, RecordingMeeting
from scripts.lib.errors import APITimeoutError, ConfigError, GrainAPIError, HubError
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

GRAIN_API_URL = "https://api.grain.com/v1"
REQUEST_TIMEOUT_SECONDS = float(os.getenv("GRAIN_TIMEOUT_SECONDS", "30"))
DEFAULT_LIST_LIMIT = 500

SHARE_URL_KEYS = (
    "shareUrl", "share_url",
    "publicShareUrl", "public_share_url",
    "recordingUrl", "recording_url",
    "shareLink", "share_link",
)

_SHARE_PATH_RE = re.compile(r"/share/recording/([^/]+)/([^/?#]+)", re.IGNORECASE)


# ─── Share Links ────────────────────────────────────────────

def extract_share_url(record: Any) -> Optional[str]:
    """First non-empty share-link field of a recording payload."""
    if not isinstance(record, dict):
        return None
    for key in SHARE_URL_KEYS:
        value = record.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def parse_share_url(url: Optional[str]) -> Optional[Tuple[str, str]]:
    """Extract ``(recording_id, share_token)`` from a Grain share URL."""
    if not url:
        return None
    match = _SHARE_PATH_RE.search(url.strip())
    if not match:
        return None
    return match.group(1), match.group(2)


def format_duration(duration: Optional[str]) -> str:
    """Grain durations arrive as HH:MM:SS; render as "1h 5m" / "42m"."""
    if not duration:
        return ""
    parts = duration.split(":")
    if len(parts) == 3 and all(p.strip().isdigit() for p in parts):
        hours, minutes = int(parts[0]), int(parts[1])
        return f"{hours}h {minutes}m" if hours > 0 else f"{minutes}m"
    return duration


# ─── Client ─────────────────────────────────────────────────

class GrainClient:
    """Grain recordings connector."""

    def __init__(self, api_key: str = None):
        self.api_key = api_key if api_key is not None else os.getenv("GRAIN_API_KEY")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, params: dict = None) -> Dict[str, Any]:
        """Make an authenticated request to the Grain API."""
        if not self.is_configured:
            raise ConfigError(
                "Grain not connected — set GRAIN_API_KEY in .env",
                setting="GRAIN_API_KEY",
            )

        url = f"{GRAIN_API_URL}{path}"
        timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(method, url, headers=self._headers(), params=params) as resp:
                    if 200 <= resp.status < 300:
                        return await resp.json(content_type=None) or {}
                    text = await resp.text()
                    logger.error("Grain API %s %s returned %s: %s", method, path, resp.status, text)
                    raise GrainAPIError(resp.status, text, url=url)
        except asyncio.TimeoutError:
            logger.error("Grain API %s %s timed out after %ss", method, path, REQUEST_TIMEOUT_SECONDS)
            raise APITimeoutError(url, REQUEST_TIMEOUT_SECONDS)

    @staticmethod
    def to_recording(record: Dict[str, Any]) -> RecordingMeeting:
        return RecordingMeeting.from_grain(record, share_url=extract_share_url(record))

    async def list_meetings(
        self,
        start_date: str = None,
        end_date: str = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> List[RecordingMeeting]:
        """Recordings between two ISO dates."""
        params: Dict[str, Any] = {}
        if start_date:
            params["start_date"] = start_date
        if end_date:
            params["end_date"] = end_date
        if limit:
            params["limit"] = limit
        data = await self._request("GET", "/meetings", params=params)
        return [self.to_recording(m) for m in data.get("meetings") or [] if isinstance(m, dict)]

    async def get_meeting(self, meeting_id: str) -> RecordingMeeting:
        return self.to_recording(await self._request("GET", f"/meetings/{meeting_id}"))

    async def get_transcript(self, meeting_id: str) -> str:
        data = await self._request("GET", f"/meetings/{meeting_id}/transcript")
        return data.get("transcript") or ""

    async def get_notes(self, meeting_id: str) -> str:
        data = await self._request("GET", f"/meetings/{meeting_id}/notes")
        return data.get("notes") or ""

    async def get_coaching_feedback(self, meeting_id: str) -> Optional[CoachingFeedback]:
        """Coaching scorecard, or None when the recording has none."""
        try:
            data = await self._request("GET", f"/meetings/{meeting_id}/coaching")
        except GrainAPIError as e:
            if e.status_code == 404:
                return None
            raise
        return CoachingFeedback.from_grain(meeting_id, data)

    async def get_meeting_details(
        self,
        meeting_ids: List[str],
        include_coaching: bool = True,
    ) -> List[Dict[str, Any]]:
        """Recording + coaching score per id, fetched concurrently.

        A failure for one id drops that id from the result.
        """

        async def _one(meeting_id: str) -> Optional[Dict[str, Any]]:
            try:
                if include_coaching:
                    recording, coaching = await asyncio.gather(
                        self.get_meeting(meeting_id),
                        self.get_coaching_feedback(meeting_id),
                    )
                else:
                    recording, coaching = await self.get_meeting(meeting_id), None
            except HubError as e:
                logger.warning("Failed to fetch Grain meeting details for %s: %s", meeting_id, e)
                return None
            return {
                "id": meeting_id,
                "title": recording.title,
                "duration": recording.duration,
                "summary": recording.summary,
                "start_datetime": recording.start_datetime,
                "coaching_score": coaching.overall_score if coaching else None,
                "share_url": recording.share_url,
            }

        ids = list(dict.fromkeys(i for i in meeting_ids if i))
        results = await asyncio.gather(*(_one(i) for i in ids))
        return [r for r in results if r is not None]

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": "Grain",
            "configured": self.is_configured,
            "features": ["recordings", "coaching", "transcripts", "notes"],
        }
