"""
Sales Pulse Hub — Report Generation
======================================

Generates a rendered report for one day (or an explicit window) from a
template: fetch CRM activity, total it, fill in quotas from the targets,
render markdown and persist saved-template reports.

Rules:
  - Meetings, closed-won and closed-lost deals are required; calls and
    emails degrade to empty lists when their fetch fails.
  - Owner count: the selected owners, else 3 for the built-in daily
    template, else the distinct owners seen in the fetched data (min 1).
  - Quotas missing for meetings_held / deals_created / deals_won fall back
    to the global target x owner count.
  - magic_formula blocks report per rep; MRR and ASP alert thresholds follow
    the revenue target and money per conversion.
  - Only non-built-in templates are persisted, one row per (user, template, day).

Functions:
  resolve_template()  - Built-in or stored template
  owner_count_for()   - Headcount used to scale quotas
  fill_quotas()       - Quotas with target fallbacks appended
  adjust_blocks()     - Per-rep and threshold overrides
  generate_report()   - Full pipeline
"""
from __future__ import annotations

import asyncio
import os
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, List, Optional, Tuple

from integrations.hubspot import HubSpotClient
from models.crm_models import Deal, Engagement, Meeting
from models.pulse_models import (
    BlockType,
    GeneratedReport,
    QuotaConfig,
    ReportBlock,
    ReportRequest,
    ReportTemplate,
    Target,
)
from scripts.lib.errors import HubError, NotFoundError
from scripts.lib.logger import setup_logger
from scripts.pulse.aggregator import aggregate_daily, sum_metrics
from scripts.pulse.dates import check_range, parse_date, range_bounds, today
from scripts.pulse.deadline import with_deadline
from scripts.pulse.report_blocks import DEFAULT_TEMPLATES, render_report_to_markdown, to_plain_text
from scripts.pulse.store import PulseStore
from scripts.pulse.targets import get_global_target

logger = setup_logger("pulse_reports")

BUILTIN_TEMPLATE_OWNER_COUNT = 3
DEFAULT_REPORT_USER = os.getenv("REPORT_USER_ID", "demo-user")

# Quota metric -> target field it falls back to
QUOTA_FALLBACKS = {
    "meetings_held": "meetings_target",
    "deals_created": "qual_opps_target",
    "deals_won": "conversions_target",
}


def resolve_template(store: PulseStore, template_id: str) -> ReportTemplate:
    """Raises NotFoundError when a non-built-in template does not exist."""
    if template_id in DEFAULT_TEMPLATES:
        return DEFAULT_TEMPLATES[template_id]
    template = store.get_template(template_id)
    if template is None:
        raise NotFoundError(f"Template not found: {template_id}", resource="report_template")
    return template


def owner_count_for(
    owner_ids: List[str],
    template: ReportTemplate,
    meetings: List[Meeting],
    deals: List[Deal],
) -> int:
    if owner_ids:
        return len(owner_ids)
    if template.is_builtin:
        return BUILTIN_TEMPLATE_OWNER_COUNT
    seen = {m.owner_id for m in meetings if m.owner_id}
    seen |= {d.owner_id for d in deals if d.owner_id}
    return len(seen) or 1


def fill_quotas(quotas: List[QuotaConfig], target: Target, owner_count: int) -> List[QuotaConfig]:
    filled = list(quotas)
    present = {q.metric for q in quotas}
    for metric, field in QUOTA_FALLBACKS.items():
        if metric not in present:
            filled.append(QuotaConfig(
                metric=metric, period="daily", target=getattr(target, field) * owner_count,
            ))
    return filled


def adjust_blocks(blocks: List[ReportBlock], target: Target, owner_count: int) -> List[ReportBlock]:
    revenue_target = target.conversions_target * owner_count * target.mrr_per_conversion
    adjusted = []
    for block in blocks:
        update: Dict[str, Any] = {}
        if block.type == BlockType.MAGIC_FORMULA:
            update = {"per_rep": True, "rep_count": owner_count}
        elif block.type == BlockType.ALERT and block.config.metric == "mrr":
            update = {"threshold": revenue_target}
        elif block.type == BlockType.ALERT and block.config.metric == "asp":
            update = {"threshold": target.mrr_per_conversion}
        if update:
            block = block.model_copy(update={"config": block.config.model_copy(update=update)})
        adjusted.append(block)
    return adjusted


async def _soft(awaitable, label: str) -> List[Dict]:
    try:
        return await awaitable
    except HubError as e:
        logger.warning("Failed to fetch %s for report: %s", label, e)
        return []


async def _fetch_activity(hubspot: HubSpotClient, owner_ids: List[str], start, end):
    return await asyncio.gather(
        hubspot.get_meetings(owner_ids, start, end),
        hubspot.get_deals_closed_won(owner_ids, start, end),
        hubspot.get_deals_closed_lost(owner_ids, start, end),
        _soft(hubspot.get_calls(owner_ids, start, end), "calls"),
        _soft(hubspot.get_emails(owner_ids, start, end), "emails"),
    )


def _report_window(request: ReportRequest, tz: Optional[tzinfo]) -> Tuple[Any, Any, Any]:
    report_day = parse_date(request.date, "date") or today(tz)
    start = parse_date(request.start_date, "start_date") or report_day
    end = parse_date(request.end_date, "end_date") or report_day
    check_range(start, end)
    return report_day, start, end


async def generate_report(
    hubspot: HubSpotClient,
    store: PulseStore,
    request: ReportRequest,
    tz: Optional[tzinfo] = None,
    deadline: float = None,
) -> GeneratedReport:
    """Render the requested template for the request's day/window."""
    report_day, start_day, end_day = _report_window(request, tz)
    template = resolve_template(store, request.template_id)
    start, end = range_bounds(start_day, end_day, tz)
    owner_ids = [o for o in request.owner_ids if o]

    raw_meetings, raw_won, raw_lost, raw_calls, raw_emails = await with_deadline(
        _fetch_activity(hubspot, owner_ids, start, end), "report fetch", deadline,
    )

    meetings = [Meeting.from_hubspot(r) for r in raw_meetings]
    won = [Deal.from_hubspot(r) for r in raw_won]
    lost = [Deal.from_hubspot(r) for r in raw_lost]
    calls = [Engagement.from_hubspot(r, "hs_call_status") for r in raw_calls]
    emails = [Engagement.from_hubspot(r, "hs_email_status") for r in raw_emails]

    buckets = aggregate_daily(meetings, won, lost, calls, emails, tz=tz)
    metrics = sum_metrics(buckets.values(), label=report_day.isoformat())

    owner_count = owner_count_for(owner_ids, template, meetings, won + lost)
    user_id = request.user_id or DEFAULT_REPORT_USER
    target = get_global_target(store)
    quotas = fill_quotas(store.list_quotas(user_id), target, owner_count)
    blocks = adjust_blocks(template.blocks, target, owner_count)

    markdown = render_report_to_markdown(blocks, metrics, quotas, report_day)
    report = GeneratedReport(
        user_id=user_id,
        template_id=template.id,
        report_date=report_day.isoformat(),
        content=markdown,
        plain_text=to_plain_text(markdown),
        metrics_snapshot=metrics.model_dump(),
        generated_at=datetime.now(timezone.utc),
    )

    if not template.is_builtin:
        report = store.save_generated_report(report)

    logger.info(
        "Generated %s report for %s (%d owners, persisted=%s)",
        template.id, report.report_date, owner_count, report.persisted,
    )
    return report
