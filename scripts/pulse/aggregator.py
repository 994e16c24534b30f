"""
Sales Pulse Hub — Daily Metrics Aggregator
============================================

Buckets fetched meetings, deals, calls and emails by local calendar day
and turns each bucket into a DailyMetrics record.

Grouping keys:
  meetings        start time, else hs_timestamp
  won/lost deals  close date
  calls/emails    hs_timestamp, else create date

Records without a parseable timestamp are dropped.

Functions:
  aggregate_daily()  - {date_key: DailyMetrics} for the days that have data
  daily_series()     - one DailyMetrics per day of a range, zero-filled
  sum_metrics()      - range total with ASP recomputed from the totals
"""
from __future__ import annotations

from collections import Counter, defaultdict
from datetime import date, tzinfo
from typing import Dict, Iterable, List, Optional

from models.crm_models import Deal, Engagement, Meeting
from models.pulse_models import DailyMetrics
from scripts.lib.logger import setup_logger
from scripts.lib.utils import safe_div
from scripts.pulse import outcomes
from scripts.pulse.dates import date_key, iter_days

logger = setup_logger("pulse_aggregator")

# Outcome tag -> counter it increments
TAG_COUNTERS = {
    outcomes.NO_SHOW: "meetings_no_show",
    outcomes.CANCELED: "meetings_canceled",
    outcomes.QUALIFIED_ADVANCED: "meetings_qual_advanced",
    outcomes.QUALIFIED_SOLD: "meetings_qual_sold",
    outcomes.DISQUALIFIED: "meetings_disqualified",
    outcomes.QUALIFIED: "deals_created",
}

COUNT_FIELDS = [
    "emails_sent", "emails_replied", "calls_made", "calls_connected",
    "meetings_booked", "meetings_held", "meetings_no_show", "meetings_canceled",
    "meetings_qual_advanced", "meetings_qual_sold", "meetings_disqualified",
    "deals_created", "deals_advanced", "deals_won", "deals_lost",
]


def is_call_connected(call: Engagement) -> bool:
    status = call.status.lower()
    return "completed" in status or "connected" in status


def is_email_replied(email: Engagement) -> bool:
    return "replied" in email.status.lower()


def _finalize(key: str, counts: Counter, revenue: float) -> DailyMetrics:
    booked = counts["meetings_booked"]
    held = max(0, booked - counts["meetings_no_show"] - counts["meetings_canceled"])
    won = counts["deals_won"]
    return DailyMetrics(
        date=key,
        **{name: counts[name] for name in COUNT_FIELDS if name != "meetings_held"},
        meetings_held=held,
        revenue=revenue,
        mrr=revenue,
        asp=safe_div(revenue, won),
    )


def aggregate_daily(
    meetings: Iterable[Meeting] = (),
    won_deals: Iterable[Deal] = (),
    lost_deals: Iterable[Deal] = (),
    calls: Iterable[Engagement] = (),
    emails: Iterable[Engagement] = (),
    tz: Optional[tzinfo] = None,
) -> Dict[str, DailyMetrics]:
    """Bucket records by local day and compute each day's funnel."""
    counts: Dict[str, Counter] = defaultdict(Counter)
    revenue: Dict[str, float] = defaultdict(float)
    dropped = 0

    for meeting in meetings:
        key = date_key(meeting.occurred_at, tz)
        if key is None:
            dropped += 1
            continue
        tags = outcomes.classify(meeting.outcome).tags
        bucket = counts[key]
        bucket["meetings_booked"] += 1
        for tag in tags:
            counter = TAG_COUNTERS.get(tag)
            if counter:
                bucket[counter] += 1

    for deal in won_deals:
        key = date_key(deal.close_date, tz)
        if key is None:
            dropped += 1
            continue
        counts[key]["deals_won"] += 1
        revenue[key] += deal.amount

    for deal in lost_deals:
        key = date_key(deal.close_date, tz)
        if key is None:
            dropped += 1
            continue
        counts[key]["deals_lost"] += 1

    for call in calls:
        key = date_key(call.timestamp, tz)
        if key is None:
            dropped += 1
            continue
        counts[key]["calls_made"] += 1
        if is_call_connected(call):
            counts[key]["calls_connected"] += 1

    for email in emails:
        key = date_key(email.timestamp, tz)
        if key is None:
            dropped += 1
            continue
        counts[key]["emails_sent"] += 1
        if is_email_replied(email):
            counts[key]["emails_replied"] += 1

    if dropped:
        logger.debug("Dropped %d records without a parseable timestamp", dropped)

    return {
        key: _finalize(key, counts[key], revenue.get(key, 0.0))
        for key in sorted(set(counts) | set(revenue))
    }


def daily_series(
    buckets: Dict[str, DailyMetrics],
    start: date,
    end: date,
) -> List[DailyMetrics]:
    """Every day from start to end (inclusive); days without data are zeros."""
    series = []
    for day in iter_days(start, end):
        key = day.isoformat()
        series.append(buckets.get(key) or DailyMetrics(date=key))
    return series


def sum_metrics(days: Iterable[DailyMetrics], label: str = "total") -> DailyMetrics:
    """Add up a run of days. MRR follows revenue; ASP comes from the totals."""
    totals: Counter = Counter()
    revenue = 0.0
    for day in days:
        for name in COUNT_FIELDS:
            totals[name] += getattr(day, name)
        revenue += day.revenue
    return DailyMetrics(
        date=label,
        **{name: totals[name] for name in COUNT_FIELDS},
        revenue=revenue,
        mrr=revenue,
        asp=safe_div(revenue, totals["deals_won"]),
    )
