"""Tests for the magic formula pipeline."""

import asyncio
from datetime import date, timezone

import pytest

from scripts.lib.errors import APITimeoutError, SchemaValidationError
from scripts.pulse import magic_formula
from scripts.pulse.magic_formula import build_query, compute_magic_formula

UTC = timezone.utc


def meeting(meeting_id, start, outcome=None, owner="7"):
    props = {"hs_meeting_start_time": start, "hubspot_owner_id": owner}
    if outcome:
        props["hs_meeting_outcome"] = outcome
    return {"id": meeting_id, "properties": props}


class TestBuildQuery:
    def test_single_day(self):
        query, is_range = build_query(["7"], None, "2024-03-01", tz=UTC)
        assert (query.start, query.end) == (date(2024, 3, 1), date(2024, 3, 1))
        assert is_range is False
        assert query.owner_ids == ["7"]

    def test_range(self):
        query, is_range = build_query(start_date="2024-03-01", end_date="2024-03-03")
        assert (query.start, query.end) == (date(2024, 3, 1), date(2024, 3, 3))
        assert is_range is True

    def test_equal_bounds_are_a_single_day(self):
        _, is_range = build_query(start_date="2024-03-01", end_date="2024-03-01")
        assert is_range is False

    def test_start_only_collapses_to_that_day(self):
        query, is_range = build_query(start_date="2024-03-05")
        assert (query.start, query.end) == (date(2024, 3, 5), date(2024, 3, 5))
        assert is_range is False

    def test_defaults_to_today(self, monkeypatch):
        monkeypatch.setattr(magic_formula, "today", lambda tz=None: date(2024, 6, 1))
        query, _ = build_query()
        assert query.start == query.end == date(2024, 6, 1)

    def test_inverted_range(self):
        with pytest.raises(SchemaValidationError) as exc:
            build_query(start_date="2024-03-03", end_date="2024-03-01")
        assert exc.value.field == "end_date"

    def test_bad_date(self):
        with pytest.raises(SchemaValidationError):
            build_query(day="yesterday-ish")

    def test_blank_owner_ids_are_dropped(self):
        query, _ = build_query(["", "7"], team_id="", day="2024-03-01")
        assert query.owner_ids == ["7"]
        assert query.team_id is None


class TestComputeMagicFormula:
    @pytest.mark.asyncio
    async def test_single_day_result(self, hubspot, store):
        hubspot.get_meetings.return_value = [
            meeting("m1", "2024-03-01T15:00:00Z", "Completed"),
            meeting("m2", "2024-03-01T16:00:00Z", "No Show"),
            meeting("m3", "2024-03-01T17:00:00Z", "Completed", owner="9"),
        ]
        hubspot.get_deals_closed_won.return_value = [
            {"id": "d1", "properties": {"amount": "1200", "closedate": "2024-03-01T18:00:00Z"}},
        ]
        hubspot.get_owners.return_value = [{"id": "7"}]
        query, is_range = build_query(["7"], None, "2024-03-01", tz=UTC)

        payload = await compute_magic_formula(hubspot, store, query, is_range)

        result = payload["result"]
        assert payload["scope"] == "individual"
        assert payload["owner_count"] == 1
        assert payload["owners"] == [{"id": "7"}]
        assert result["date"] == "2024-03-01"
        assert result["metrics"] == {
            "meetings_held": 1,
            "qualified_opps": 0,
            "conversions": 1,
            "revenue": 1200.0,
            "asp": 1200.0,
        }
        assert result["targets"]["meetings"] == 5
        assert result["targets"]["revenue"] == 600
        assert result["percent_to_goal"]["revenue"] == 2.0
        assert result["all_goals_met"] is False

    @pytest.mark.asyncio
    async def test_team_targets_scale(self, hubspot, store, supabase):
        supabase.seed("magic_formula_targets", {
            "scope": "global", "owner_id": None, "team_id": None,
            "meetings_target": 5, "qual_opps_target": 3, "conversions_target": 2, "mrr_per_conversion": 300,
        })
        query, _ = build_query(["1", "2", "3"], None, "2024-03-01", tz=UTC)

        payload = await compute_magic_formula(hubspot, store, query)

        assert payload["scope"] == "team_total"
        assert payload["owner_count"] == 3
        assert payload["result"]["targets"]["meetings"] == 15
        assert payload["result"]["targets"]["revenue"] == 6 * 300

    @pytest.mark.asyncio
    async def test_empty_range_is_zero_filled(self, hubspot, store):
        query, is_range = build_query(start_date="2024-03-01", end_date="2024-03-03", tz=UTC)

        payload = await compute_magic_formula(hubspot, store, query, is_range)

        results = payload["results"]
        assert [r["date"] for r in results] == ["2024-03-01", "2024-03-02", "2024-03-03"]
        assert all(r["all_goals_met"] is False for r in results)
        assert all(r["metrics"]["meetings_held"] == 0 for r in results)
        assert all(r["percent_to_goal"]["meetings"] == 0 for r in results)

    @pytest.mark.asyncio
    async def test_deadline(self, hubspot, store):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)
            return []

        hubspot.get_meetings.side_effect = slow
        query, _ = build_query(day="2024-03-01", tz=UTC)
        with pytest.raises(APITimeoutError):
            await compute_magic_formula(hubspot, store, query, deadline=0.01)
