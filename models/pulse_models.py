"""
Sales Pulse Hub — Pulse Pydantic Models
=========================================

Targets, daily funnel metrics, goal results, meeting mappings, seats,
quotas and report templates, plus the request bodies the API accepts.
"""
from __future__ import annotations

from datetime import date, datetime, tzinfo
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ─── Query ──────────────────────────────────────────────────

class MetricsQuery(BaseModel):
    """Request-scoped filter shared by every fetch and aggregation step."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    owner_ids: List[str] = Field(default_factory=list)
    team_id: Optional[str] = None
    start: date
    end: date
    tz: Optional[tzinfo] = None

    @property
    def owner_count(self) -> int:
        return len(self.owner_ids) or 1


# ─── Targets ────────────────────────────────────────────────

class TargetScope(str, Enum):
    OWNER = "owner"
    TEAM = "team"
    GLOBAL = "global"


class Target(BaseModel):
    """Daily goal row. At most one per (scope, owner_id, team_id)."""
    id: Optional[str] = None
    scope: TargetScope = TargetScope.GLOBAL
    owner_id: Optional[str] = None
    team_id: Optional[str] = None
    meetings_target: float = 5
    qual_opps_target: float = 3
    conversions_target: float = 2
    mrr_per_conversion: float = 300
    updated_at: Optional[datetime] = None


# ─── Metrics ────────────────────────────────────────────────

class DailyMetrics(BaseModel):
    """Funnel counters for one local calendar day (or a range total)."""
    date: str
    emails_sent: int = 0
    emails_replied: int = 0
    calls_made: int = 0
    calls_connected: int = 0
    meetings_booked: int = 0
    meetings_held: int = 0
    meetings_no_show: int = 0
    meetings_canceled: int = 0
    meetings_qual_advanced: int = 0
    meetings_qual_sold: int = 0
    meetings_disqualified: int = 0
    deals_created: int = 0
    deals_advanced: int = 0
    deals_won: int = 0
    deals_lost: int = 0
    revenue: float = 0.0
    mrr: float = 0.0
    asp: float = 0.0


class FormulaMetrics(BaseModel):
    meetings_held: int = 0
    qualified_opps: int = 0
    conversions: int = 0
    revenue: float = 0.0
    asp: float = 0.0


class FormulaTargets(BaseModel):
    meetings: float = 0
    qualified_opps: float = 0
    conversions: float = 0
    revenue: float = 0
    mrr_per_conversion: float = 0


class PercentToGoal(BaseModel):
    meetings: float = 0.0
    qualified_opps: float = 0.0
    conversions: float = 0.0
    revenue: float = 0.0


class DayResult(BaseModel):
    """Actuals vs targets for one day."""
    date: str
    metrics: FormulaMetrics
    targets: FormulaTargets
    percent_to_goal: PercentToGoal
    all_goals_met: bool = False
    scope: str = "individual"
    owner_count: int = 1


# ─── Meeting Mappings ───────────────────────────────────────

class MeetingMapping(BaseModel):
    """Link between one CRM meeting and at most one recording."""
    id: Optional[str] = None
    hubspot_meeting_id: str
    grain_meeting_id: Optional[str] = None
    grain_share_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MappingCreate(BaseModel):
    """Manual mapping request. A share URL can stand in for the recording id."""
    hubspot_meeting_id: Optional[str] = None
    grain_meeting_id: Optional[str] = None
    grain_share_url: Optional[str] = None


class MeetingRef(BaseModel):
    """CRM meeting reference supplied to the auto-map pass."""
    id: str
    start_time: Optional[str] = None
    timestamp: Optional[str] = None


class AutoMapRequest(BaseModel):
    meetings: List[MeetingRef] = Field(default_factory=list)
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class AutoMapResult(BaseModel):
    created: int = 0
    skipped: int = 0
    already_mapped: int = 0
    results: List[MeetingMapping] = Field(default_factory=list)


# ─── Seats & Quotas ─────────────────────────────────────────

class SeatRole(str, Enum):
    REP = "rep"
    MANAGER = "manager"


class SeatStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    INACTIVE = "inactive"


class Seat(BaseModel):
    id: Optional[str] = None
    name: str
    email: Optional[str] = None
    role: SeatRole = SeatRole.REP
    status: SeatStatus = SeatStatus.ACTIVE
    hubspot_owner_id: Optional[str] = None
    user_id: Optional[str] = None


class SeatCreate(BaseModel):
    name: str
    email: Optional[str] = None
    role: SeatRole = SeatRole.REP
    status: SeatStatus = SeatStatus.ACTIVE
    hubspot_owner_id: Optional[str] = None


class QuotaConfig(BaseModel):
    """Per-user quota row consumed by report rendering."""
    id: Optional[str] = None
    user_id: Optional[str] = None
    metric: str
    period: str = "daily"
    target: float = 0.0


# ─── Reports ────────────────────────────────────────────────

class BlockType(str, Enum):
    HEADER = "header"
    SECTION = "section"
    METRIC = "metric"
    MAGIC_FORMULA = "magic_formula"
    STAT_PAIR = "stat_pair"
    INSIGHT = "insight"
    BREAKDOWN = "breakdown"
    MEETINGS_SUMMARY = "meetings_summary"
    ALERT = "alert"
    DIVIDER = "divider"


class BreakdownStep(BaseModel):
    metric: str
    label: str


class BlockConfig(BaseModel):
    """Per-block options. Accepts camelCase keys from stored templates."""
    model_config = ConfigDict(extra="allow", populate_by_name=True, alias_generator=to_camel)

    label: Optional[str] = None
    title: Optional[str] = None
    include_date: bool = True
    metric: Optional[str] = None
    show_quota_comparison: bool = False
    quota_period: str = "daily"
    per_rep: bool = False
    rep_count: Optional[int] = None
    metric1: Optional[str] = None
    metric2: Optional[str] = None
    separator: Optional[str] = None
    text: Optional[str] = None
    is_ai_generated: bool = False
    steps: List[BreakdownStep] = Field(default_factory=list)
    threshold: Optional[float] = None
    warning_icon: Optional[str] = None
    show_status_icon: bool = False
    success_threshold: Optional[float] = None
    warning_threshold: Optional[float] = None


class ReportBlock(BaseModel):
    id: str
    type: BlockType
    config: BlockConfig = Field(default_factory=BlockConfig)


class ReportTemplate(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    blocks: List[ReportBlock] = Field(default_factory=list)
    is_builtin: bool = False
    user_id: Optional[str] = None


class ReportRequest(BaseModel):
    """Generate a report for one day."""
    template_id: str = "dailySalesPulse"
    date: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    owner_ids: List[str] = Field(default_factory=list)
    user_id: Optional[str] = None


class GeneratedReport(BaseModel):
    id: Optional[str] = None
    user_id: Optional[str] = None
    template_id: str
    report_date: str
    content: str
    plain_text: Optional[str] = None
    metrics_snapshot: Dict[str, Any] = Field(default_factory=dict)
    persisted: bool = False
    generated_at: Optional[datetime] = None


# ─── CRM Updates ────────────────────────────────────────────

class DealUpdate(BaseModel):
    """Narrow deal update. Explicit ``None`` clears the property."""
    lead_source: Optional[str] = None
    hubspot_owner_id: Optional[str] = None


class RecordingDetailsRequest(BaseModel):
    meeting_ids: List[str] = Field(default_factory=list)
    include_coaching: bool = True
