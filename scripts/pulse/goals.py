"""
Sales Pulse Hub — Goal Reconciliation
========================================

Turns a day's DailyMetrics and the resolved Target into the magic-formula
day result: actuals, targets, percent-to-goal and whether every goal was met.

  revenue target   = conversions target x money per conversion
  percent-to-goal  = actual / target, 0 when the target is 0
  all_goals_met    = held, qualified opps, conversions and revenue all >= target
  scope            = "individual" for 0-1 owners, else "team_total"
"""
from __future__ import annotations

from typing import Iterable, List

from models.pulse_models import (
    DailyMetrics,
    DayResult,
    FormulaMetrics,
    FormulaTargets,
    PercentToGoal,
    Target,
)
from scripts.lib.utils import safe_div


def scope_label(owner_count: int) -> str:
    return "team_total" if owner_count > 1 else "individual"


def build_day_result(metrics: DailyMetrics, target: Target, owner_count: int = 1) -> DayResult:
    revenue_target = target.conversions_target * target.mrr_per_conversion

    actual = FormulaMetrics(
        meetings_held=metrics.meetings_held,
        qualified_opps=metrics.deals_created,
        conversions=metrics.deals_won,
        revenue=metrics.revenue,
        asp=safe_div(metrics.revenue, metrics.deals_won),
    )
    goals = FormulaTargets(
        meetings=target.meetings_target,
        qualified_opps=target.qual_opps_target,
        conversions=target.conversions_target,
        revenue=revenue_target,
        mrr_per_conversion=target.mrr_per_conversion,
    )
    percent = PercentToGoal(
        meetings=safe_div(actual.meetings_held, goals.meetings),
        qualified_opps=safe_div(actual.qualified_opps, goals.qualified_opps),
        conversions=safe_div(actual.conversions, goals.conversions),
        revenue=safe_div(actual.revenue, goals.revenue),
    )
    all_met = (
        actual.meetings_held >= goals.meetings
        and actual.qualified_opps >= goals.qualified_opps
        and actual.conversions >= goals.conversions
        and actual.revenue >= goals.revenue
    )
    return DayResult(
        date=metrics.date,
        metrics=actual,
        targets=goals,
        percent_to_goal=percent,
        all_goals_met=all_met,
        scope=scope_label(owner_count),
        owner_count=owner_count,
    )


def build_day_results(days: Iterable[DailyMetrics], target: Target, owner_count: int = 1) -> List[DayResult]:
    return [build_day_result(day, target, owner_count) for day in days]
