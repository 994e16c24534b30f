"""
Sales Pulse Hub — Report Blocks
==================================

Renders a report template (an ordered list of typed blocks) against one
DailyMetrics record and the user's quotas.

Block types:
  header            **Mar 1 Sales Pulse**
  section           bold label on its own line
  divider           horizontal rule
  metric            value + label, optional quota ratio or status icon
  magic_formula     value vs quota, optionally split per rep
  stat_pair         "12 emails sent / 4 calls connected"
  insight           free text prefixed with an arrow
  breakdown         funnel steps joined by arrows
  meetings_summary  booked / no-show / held / qualified bullets
  alert             value with a warning when below threshold

Functions:
  render_block()                 - One block to markdown ("" to skip)
  render_report_to_markdown()    - Whole template, blank blocks dropped
  render_report_to_plain_text()  - Markdown with formatting removed
"""
from __future__ import annotations

from datetime import date as date_type
from typing import Dict, List, Optional

from models.pulse_models import (
    BlockConfig,
    BlockType,
    DailyMetrics,
    QuotaConfig,
    ReportBlock,
    ReportTemplate,
)
from scripts.lib.utils import safe_div, safe_float

METRIC_LABELS = {
    "emails_sent": "emails sent",
    "emails_received": "emails received",
    "emails_opened": "emails opened",
    "emails_replied": "replies",
    "calls_made": "calls made",
    "calls_connected": "calls connected",
    "meetings_booked": "meetings booked",
    "meetings_held": "meetings held",
    "meetings_no_show": "no-shows",
    "deals_created": "deals created",
    "deals_advanced": "deals advanced",
    "deals_won": "deals won",
    "deals_lost": "deals lost",
    "revenue": "revenue",
    "mrr": "MRR",
    "asp": "ASP",
}

CURRENCY_METRICS = {"revenue", "mrr", "asp"}

DEFAULT_WARNING_ICON = "⚠️⚠️"
PLAIN_TEXT_RULE = "────────────────"


# ─── Formatting ─────────────────────────────────────────────

def format_number(value: float) -> str:
    """Thousands separators, at most three decimals: 1,200 / 1.667."""
    text = f"{value:,.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def format_currency(value: float) -> str:
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def format_metric(metric: str, value: float) -> str:
    return format_currency(value) if metric in CURRENCY_METRICS else format_number(value)


def format_day(day: date_type) -> str:
    return f"{day:%b} {day.day}"


def status_icon(value: float, target: float) -> str:
    """Quota check: met, within 70%, or behind."""
    if target <= 0:
        return "✅"
    ratio = value / target
    if ratio >= 1:
        return "✅"
    if ratio >= 0.7:
        return "⚠️"
    return "❌"


def status_dot(value: float, target: float) -> str:
    if target <= 0:
        return ""
    ratio = value / target
    if ratio >= 1:
        return "🟢"
    if ratio >= 0.8:
        return "🟡"
    return "🔴"


def metric_value(metrics: DailyMetrics, metric: str) -> float:
    return safe_float(getattr(metrics, metric, 0))


def find_quota(quotas: List[QuotaConfig], metric: str, period: str) -> Optional[QuotaConfig]:
    period = period or "daily"
    for quota in quotas:
        if quota.metric == metric and quota.period == period:
            return quota
    return None


# ─── Block Renderers ────────────────────────────────────────

def _header(config: BlockConfig, metrics, quotas, day) -> str:
    prefix = f"{format_day(day)} " if config.include_date else ""
    return f"**{prefix}{config.title or 'Sales Pulse'}**\n"


def _section(config: BlockConfig, metrics, quotas, day) -> str:
    return f"\n**{config.label or ''}**"


def _divider(config: BlockConfig, metrics, quotas, day) -> str:
    return "\n---\n"


def _metric(config: BlockConfig, metrics, quotas, day) -> str:
    if not config.metric:
        return ""
    value = metric_value(metrics, config.metric)
    formatted = format_metric(config.metric, value)
    label = config.label or METRIC_LABELS.get(config.metric, config.metric)

    if config.show_quota_comparison:
        quota = find_quota(quotas, config.metric, config.quota_period)
        if quota:
            ratio = safe_div(value, quota.target)
            return f"{format_number(value)} {label}: {ratio:.1f} {status_icon(value, quota.target)}"
    elif config.show_status_icon and config.success_threshold is not None:
        success = config.success_threshold
        warning = config.warning_threshold or success * 0.7
        icon = "✅" if value >= success else "⚠️" if value >= warning else "❌"
        return f"{formatted} {label} {icon}"

    return f"{formatted} {label}"


def _magic_formula(config: BlockConfig, metrics, quotas, day) -> str:
    if not config.metric:
        return ""
    value = metric_value(metrics, config.metric)
    label = config.label or METRIC_LABELS.get(config.metric, config.metric)
    quota = find_quota(quotas, config.metric, config.quota_period)
    if quota is None:
        return f"{format_number(value)} {label}"

    if config.per_rep and config.rep_count and config.rep_count > 0:
        target_per_rep = quota.target / config.rep_count
        value_per_rep = value / config.rep_count
        return f"{format_number(target_per_rep)} {label}: {format_number(value_per_rep)}"

    return f"{format_number(value)} {label} {status_dot(value, quota.target)}"


def _stat_pair(config: BlockConfig, metrics, quotas, day) -> str:
    if not config.metric1 or not config.metric2:
        return ""
    value1 = metric_value(metrics, config.metric1)
    value2 = metric_value(metrics, config.metric2)
    label1 = METRIC_LABELS.get(config.metric1, config.metric1)
    label2 = METRIC_LABELS.get(config.metric2, config.metric2)
    separator = config.separator or " / "
    return f"{format_number(value1)} {label1}{separator}{format_number(value2)} {label2}"


def _insight(config: BlockConfig, metrics, quotas, day) -> str:
    text = config.text or ""
    return text if text.startswith("→") else f"→ {text}"


def _breakdown(config: BlockConfig, metrics, quotas, day) -> str:
    if not config.steps:
        return ""
    return " → ".join(
        f"{format_number(metric_value(metrics, step.metric))} {step.label}" for step in config.steps
    )


def _meetings_summary(config: BlockConfig, metrics, quotas, day) -> str:
    m = metrics
    return "\n".join([
        f"• {format_number(m.meetings_booked)} booked",
        f"• {format_number(m.meetings_no_show)} no-shows, {format_number(m.meetings_canceled)} canceled",
        f"• {format_number(m.meetings_held)} held",
        f"• {format_number(m.meetings_qual_advanced)} qual-advanced, "
        f"{format_number(m.meetings_qual_sold)} qualified-sold",
        f"• {format_number(m.meetings_disqualified)} DQ'd",
    ])


def _alert(config: BlockConfig, metrics, quotas, day) -> str:
    if not config.metric:
        return ""
    value = metric_value(metrics, config.metric)
    formatted = format_metric(config.metric, value)
    label = config.label or METRIC_LABELS.get(config.metric, config.metric)
    warning = config.warning_icon or DEFAULT_WARNING_ICON

    if config.threshold is not None and value < config.threshold:
        return f"{label}: {formatted} {warning} {status_dot(value, config.threshold)}"
    dot = status_dot(value, config.threshold) if config.threshold is not None else ""
    return f"{label}: {formatted} {dot}".strip()


RENDERERS = {
    BlockType.HEADER: _header,
    BlockType.SECTION: _section,
    BlockType.DIVIDER: _divider,
    BlockType.METRIC: _metric,
    BlockType.MAGIC_FORMULA: _magic_formula,
    BlockType.STAT_PAIR: _stat_pair,
    BlockType.INSIGHT: _insight,
    BlockType.BREAKDOWN: _breakdown,
    BlockType.MEETINGS_SUMMARY: _meetings_summary,
    BlockType.ALERT: _alert,
}


# ─── Report ─────────────────────────────────────────────────

def render_block(
    block: ReportBlock,
    metrics: DailyMetrics,
    quotas: List[QuotaConfig],
    day: date_type,
) -> str:
    renderer = RENDERERS.get(block.type)
    return renderer(block.config, metrics, quotas, day) if renderer else ""


def render_report_to_markdown(
    blocks: List[ReportBlock],
    metrics: DailyMetrics,
    quotas: List[QuotaConfig],
    day: date_type,
) -> str:
    lines = []
    for block in blocks:
        rendered = render_block(block, metrics, quotas, day)
        if rendered:
            lines.append(rendered)
    return "\n".join(lines)


def to_plain_text(markdown: str) -> str:
    return markdown.replace("**", "").replace("---", PLAIN_TEXT_RULE)


def render_report_to_plain_text(
    blocks: List[ReportBlock],
    metrics: DailyMetrics,
    quotas: List[QuotaConfig],
    day: date_type,
) -> str:
    """Markdown without bold markers, rules drawn with box characters (for email)."""
    return to_plain_text(render_report_to_markdown(blocks, metrics, quotas, day))


# ─── Built-in Templates ─────────────────────────────────────

def _block(block_id: str, block_type: BlockType, **config) -> ReportBlock:
    return ReportBlock(id=block_id, type=block_type, config=BlockConfig(**config))


DEFAULT_TEMPLATES: Dict[str, ReportTemplate] = {
    "dailySalesPulse": ReportTemplate(
        id="dailySalesPulse",
        name="Daily Sales Pulse",
        is_builtin=True,
        blocks=[
            _block("header", BlockType.HEADER, title="Sales Pulse", include_date=True),
            _block("section-formula", BlockType.SECTION, label="Magic Formula"),
            _block("metric-meetings", BlockType.MAGIC_FORMULA, metric="meetings_held",
                   label="meetings", show_quota_comparison=True, quota_period="daily"),
            _block("metric-opps", BlockType.MAGIC_FORMULA, metric="deals_created",
                   label="Qual Opps", show_quota_comparison=True, quota_period="daily"),
            _block("metric-conversions", BlockType.MAGIC_FORMULA, metric="deals_won",
                   label="Conversions", show_quota_comparison=True, quota_period="daily"),
            _block("section-outbound", BlockType.SECTION, label="Outbound"),
            _block("stat-outbound", BlockType.STAT_PAIR, metric1="emails_sent", metric2="calls_connected"),
            _block("insight-outbound", BlockType.INSIGHT, text="outbound volume summary", is_ai_generated=True),
            _block("section-meetings", BlockType.SECTION, label="Meetings"),
            _block("summary-meetings", BlockType.MEETINGS_SUMMARY),
            _block("section-revenue", BlockType.SECTION, label="Conversion & Revenue"),
            _block("stat-deals", BlockType.STAT_PAIR, metric1="deals_won", metric2="deals_lost",
                   separator=" won / "),
            _block("alert-mrr", BlockType.ALERT, metric="mrr", label="MRR sold", threshold=500,
                   warning_icon=DEFAULT_WARNING_ICON),
            _block("alert-asp", BlockType.ALERT, metric="asp", label="ASP", threshold=150,
                   warning_icon=DEFAULT_WARNING_ICON),
        ],
    ),
}
