"""
Sales Pulse Hub — CRM & Recording Record Models
=================================================

Typed views over raw HubSpot and Grain payloads. Every ``from_*``
constructor is tolerant: missing or malformed properties become ``None``
(or zero for amounts) instead of raising.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from scripts.lib.utils import first_text, parse_ts, prop, safe_float, safe_int


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ─── HubSpot ────────────────────────────────────────────────

class Deal(BaseModel):
    """HubSpot deal."""
    id: str
    name: Optional[str] = None
    amount: float = 0.0
    stage: Optional[str] = None
    pipeline: Optional[str] = None
    close_date: Optional[datetime] = None
    create_date: Optional[datetime] = None
    last_modified: Optional[datetime] = None
    owner_id: Optional[str] = None
    lead_source: Optional[str] = None

    @classmethod
    def from_hubspot(cls, record: dict) -> "Deal":
        return cls(
            id=str(record.get("id", "")),
            name=_str_or_none(prop(record, "dealname")),
            amount=max(0.0, safe_float(prop(record, "amount"))),
            stage=_str_or_none(prop(record, "dealstage")),
            pipeline=_str_or_none(prop(record, "pipeline")),
            close_date=parse_ts(prop(record, "closedate")),
            create_date=parse_ts(prop(record, "createdate")),
            last_modified=parse_ts(prop(record, "hs_lastmodifieddate")),
            owner_id=_str_or_none(prop(record, "hubspot_owner_id")),
            lead_source=_str_or_none(prop(record, "lead_source")),
        )


class Meeting(BaseModel):
    """HubSpot meeting engagement."""
    id: str
    title: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    timestamp: Optional[datetime] = None
    outcome: Optional[str] = None
    owner_id: Optional[str] = None
    activity_type: Optional[str] = None
    analytics_sources: List[str] = Field(default_factory=list)
    engagement_id: Optional[str] = None

    @classmethod
    def from_hubspot(cls, record: dict) -> "Meeting":
        sources = [
            prop(record, key)
            for key in (
                "hs_analytics_source",
                "hs_analytics_source_data_1",
                "hs_analytics_source_data_2",
            )
        ]
        return cls(
            id=str(record.get("id", "")),
            title=_str_or_none(prop(record, "hs_meeting_title")),
            start_time=parse_ts(prop(record, "hs_meeting_start_time")),
            end_time=parse_ts(prop(record, "hs_meeting_end_time")),
            timestamp=parse_ts(prop(record, "hs_timestamp")),
            outcome=_str_or_none(prop(record, "hs_meeting_outcome")),
            owner_id=_str_or_none(prop(record, "hubspot_owner_id")),
            activity_type=_str_or_none(prop(record, "hs_activity_type")),
            analytics_sources=[str(s) for s in sources if s],
            engagement_id=_str_or_none(prop(record, "hs_engagement_id")),
        )

    @property
    def occurred_at(self) -> Optional[datetime]:
        """Most specific timestamp: start time, else the generic timestamp."""
        return self.start_time or self.timestamp


class Engagement(BaseModel):
    """HubSpot call or email, reduced to what the aggregator counts."""
    id: str
    timestamp: Optional[datetime] = None
    status: str = ""
    owner_id: Optional[str] = None

    @classmethod
    def from_hubspot(cls, record: dict, status_property: str) -> "Engagement":
        timestamp = (
            parse_ts(prop(record, "hs_timestamp"))
            or parse_ts(prop(record, "hs_createdate"))
            or parse_ts(prop(record, "createdate"))
        )
        return cls(
            id=str(record.get("id", "")),
            timestamp=timestamp,
            status=str(prop(record, status_property, "")),
            owner_id=_str_or_none(prop(record, "hubspot_owner_id")),
        )


class Owner(BaseModel):
    """HubSpot owner (sales rep)."""
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    user_id: Optional[int] = None

    @classmethod
    def from_hubspot(cls, record: dict) -> "Owner":
        raw_user_id = record.get("userId")
        return cls(
            id=str(record.get("id", "")),
            email=_str_or_none(record.get("email")),
            first_name=_str_or_none(record.get("firstName")),
            last_name=_str_or_none(record.get("lastName")),
            user_id=safe_int(raw_user_id) if raw_user_id is not None else None,
        )

    @property
    def name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class Contact(BaseModel):
    """HubSpot contact, as needed for meeting participants."""
    id: str
    email: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_hubspot(cls, record: dict) -> "Contact":
        name = f"{prop(record, 'firstname', '')} {prop(record, 'lastname', '')}".strip()
        return cls(
            id=str(record.get("id", "")),
            email=_str_or_none(prop(record, "email")),
            name=name or None,
        )


# ─── Grain ──────────────────────────────────────────────────

class RecordingParticipant(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    scope: str = "unknown"


class RecordingMeeting(BaseModel):
    """Grain recording."""
    id: str
    title: Optional[str] = None
    duration: Optional[str] = None
    summary: Optional[str] = None
    start_datetime: Optional[str] = None
    participants: List[RecordingParticipant] = Field(default_factory=list)
    share_url: Optional[str] = None

    @classmethod
    def from_grain(cls, record: dict, share_url: Optional[str] = None) -> "RecordingMeeting":
        participants = []
        for raw in record.get("participants") or []:
            if not isinstance(raw, dict):
                continue
            scope = raw.get("scope")
            participants.append(RecordingParticipant(
                name=_str_or_none(raw.get("name")),
                email=_str_or_none(raw.get("email")),
                scope=scope if scope in ("internal", "external") else "unknown",
            ))
        return cls(
            id=str(record.get("id", "")),
            title=_str_or_none(record.get("title")),
            duration=_str_or_none(record.get("duration")),
            summary=_str_or_none(record.get("summary")),
            start_datetime=first_text(
                record.get("startDatetime"), record.get("start_datetime"),
            ),
            participants=participants,
            share_url=share_url,
        )

    @property
    def started_at(self) -> Optional[datetime]:
        return parse_ts(self.start_datetime)


class CoachingCategory(BaseModel):
    name: str
    score: float = 0.0
    feedback: str = ""


class CoachingFeedback(BaseModel):
    """Grain coaching scorecard for one recording."""
    meeting_id: str
    overall_score: Optional[float] = None
    categories: List[CoachingCategory] = Field(default_factory=list)

    @classmethod
    def from_grain(cls, meeting_id: str, record: dict) -> "CoachingFeedback":
        raw_score = record.get("overallScore", record.get("overall_score"))
        categories = [
            CoachingCategory(
                name=str(c.get("name", "")),
                score=safe_float(c.get("score")),
                feedback=str(c.get("feedback") or ""),
            )
            for c in record.get("categories") or []
            if isinstance(c, dict)
        ]
        return cls(
            meeting_id=str(record.get("meetingId") or meeting_id),
            overall_score=safe_float(raw_score, default=None),
            categories=categories,
        )
