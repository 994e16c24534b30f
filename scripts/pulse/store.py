"""
Sales Pulse Hub — Configuration Store
========================================

Supabase-backed persistence for targets, meeting mappings, seats, quotas,
report templates and generated reports.

Tables:
  magic_formula_targets  unique on scope_key (scope + owner_id / team_id), upserted
  meeting_mappings       unique on hubspot_meeting_id, upserted
  seats                  rep / manager seats linked to HubSpot owners
  quota_configs          per-user metric quotas
  report_templates       saved block layouts (blocks stored as JSON)
  generated_reports      unique on (user_id, template_id, report_date), upserted

Every failure talking to Supabase surfaces as DataFetchError.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from models.pulse_models import (
    GeneratedReport,
    MeetingMapping,
    QuotaConfig,
    ReportTemplate,
    Seat,
    Target,
    TargetScope,
)
from scripts.lib.errors import DataFetchError, HubError
from scripts.lib.logger import setup_logger
from scripts.lib.supabase_client import get_client

logger = setup_logger("pulse_store")

TARGETS_TABLE = "magic_formula_targets"
MAPPINGS_TABLE = "meeting_mappings"
SEATS_TABLE = "seats"
QUOTAS_TABLE = "quota_configs"
TEMPLATES_TABLE = "report_templates"
REPORTS_TABLE = "generated_reports"

REPORT_KEY = "user_id,template_id,report_date"

ID_COLUMNS = (
    "id", "owner_id", "team_id", "user_id", "hubspot_owner_id",
    "hubspot_meeting_id", "grain_meeting_id", "template_id",
)


def _clean(row: Dict[str, Any]) -> Dict[str, Any]:
    """Stringify id columns (Postgres may hand back ints)."""
    out = dict(row)
    for column in ID_COLUMNS:
        if out.get(column) is not None:
            out[column] = str(out[column])
    return out


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def target_key(scope: TargetScope, owner_id: str = None, team_id: str = None) -> str:
    """Unique key for a target row; NULL owner/team columns can't carry one."""
    scope = TargetScope(scope)
    if scope == TargetScope.OWNER:
        return f"owner:{owner_id}"
    if scope == TargetScope.TEAM:
        return f"team:{team_id}"
    return "global"


class PulseStore:
    """Thin repository over the Supabase tables."""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_client()
        return self._client

    def _execute(self, query, action: str) -> List[Dict[str, Any]]:
        try:
            result = query.execute()
        except HubError:
            raise
        except Exception as e:
            logger.error("Supabase: failed to %s: %s", action, e)
            raise DataFetchError(f"Failed to {action}: {e}", source="supabase") from e
        return [_clean(r) for r in (result.data or [])]

    # ─── Targets ─────────────────────────────────────────────

    def find_target(
        self,
        scope: TargetScope,
        owner_id: str = None,
        team_id: str = None,
    ) -> Optional[Target]:
        """First target row for a scope key; None when absent."""
        scope = TargetScope(scope)
        query = self.client.table(TARGETS_TABLE).select("*").eq("scope", scope.value)
        if scope == TargetScope.OWNER:
            query = query.eq("owner_id", owner_id)
        elif scope == TargetScope.TEAM:
            query = query.eq("team_id", team_id)
        else:
            query = query.is_("owner_id", "null").is_("team_id", "null")
        rows = self._execute(query.limit(1), f"read {scope.value} target")
        return Target(**rows[0]) if rows else None

    def save_target(self, target: Target) -> Target:
        """Create or replace the row for the target's scope key (last write wins)."""
        row = target.model_dump(mode="json", exclude={"id", "updated_at"})
        row["scope_key"] = target_key(target.scope, target.owner_id, target.team_id)
        row["updated_at"] = _now()
        query = self.client.table(TARGETS_TABLE).upsert(row, on_conflict="scope_key")
        rows = self._execute(query, "upsert target")
        saved = Target(**rows[0]) if rows else target
        logger.info("Saved %s target (%s)", saved.scope.value, row["scope_key"])
        return saved

    # ─── Meeting Mappings ───────────────────────────────────

    def list_mappings(self, meeting_ids: List[str] = None) -> List[MeetingMapping]:
        query = self.client.table(MAPPINGS_TABLE).select("*")
        if meeting_ids:
            query = query.in_("hubspot_meeting_id", list(meeting_ids))
        return [MeetingMapping(**r) for r in self._execute(query, "list meeting mappings")]

    def upsert_mapping(self, mapping: MeetingMapping) -> MeetingMapping:
        """Create or replace the mapping for a CRM meeting (last write wins)."""
        row = {
            "hubspot_meeting_id": mapping.hubspot_meeting_id,
            "grain_meeting_id": mapping.grain_meeting_id,
            "updated_at": _now(),
        }
        # An absent share URL keeps whatever the row already caches
        if mapping.grain_share_url:
            row["grain_share_url"] = mapping.grain_share_url
        query = self.client.table(MAPPINGS_TABLE).upsert(row, on_conflict="hubspot_meeting_id")
        rows = self._execute(query, "upsert meeting mapping")
        return MeetingMapping(**rows[0]) if rows else mapping

    # ─── Seats ───────────────────────────────────────────────

    def list_seats(self) -> List[Seat]:
        query = self.client.table(SEATS_TABLE).select("*").order("created_at")
        return [Seat(**r) for r in self._execute(query, "list seats")]

    def create_seat(self, seat: Seat) -> Seat:
        row = seat.model_dump(mode="json", exclude={"id"})
        rows = self._execute(self.client.table(SEATS_TABLE).insert(row), "create seat")
        return Seat(**rows[0]) if rows else seat

    def update_seat(self, seat_id: str, fields: Dict[str, Any]) -> Optional[Seat]:
        query = self.client.table(SEATS_TABLE).update(fields).eq("id", seat_id)
        rows = self._execute(query, "update seat")
        return Seat(**rows[0]) if rows else None

    # ─── Quotas & Templates ─────────────────────────────────

    def list_quotas(self, user_id: str = None) -> List[QuotaConfig]:
        query = self.client.table(QUOTAS_TABLE).select("*")
        if user_id:
            query = query.eq("user_id", user_id)
        return [QuotaConfig(**r) for r in self._execute(query, "list quotas")]

    def get_template(self, template_id: str) -> Optional[ReportTemplate]:
        query = self.client.table(TEMPLATES_TABLE).select("*").eq("id", template_id).limit(1)
        rows = self._execute(query, "read report template")
        if not rows:
            return None
        row = rows[0]
        blocks = row.get("blocks") or []
        if isinstance(blocks, str):
            blocks = json.loads(blocks)
        return ReportTemplate(**{**row, "blocks": blocks})

    # ─── Generated Reports ──────────────────────────────────

    def save_generated_report(self, report: GeneratedReport) -> GeneratedReport:
        """Create or replace the row for (user, template, day)."""
        row = {
            "user_id": report.user_id,
            "template_id": report.template_id,
            "report_date": report.report_date,
            "markdown": report.content,
            "data": report.metrics_snapshot,
        }
        query = self.client.table(REPORTS_TABLE).upsert(row, on_conflict=REPORT_KEY)
        rows = self._execute(query, "upsert generated report")
        report_id = rows[0].get("id") if rows else None
        return report.model_copy(update={"id": report_id, "persisted": True})
