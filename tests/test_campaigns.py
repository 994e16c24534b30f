"""Tests for the sequence campaign summary."""

import asyncio
from datetime import date, timezone

import pytest

from models.crm_models import Deal, Meeting
from scripts.pulse.campaigns import deal_breakdown, get_campaign_data, meeting_breakdown, sequence_stats

UTC = timezone.utc

PIPELINES = [{"id": "default", "stages": [
    {"id": "closedwon", "label": "Closed Won"},
    {"id": "closedlost", "label": "Closed Lost"},
    {"id": "demo", "label": "Demo Booked"},
]}]


def contact(seq_id, active=0, replied=False, deals=0, amount=None):
    props = {
        "hs_latest_sequence_enrolled": seq_id,
        "hs_sequences_actively_enrolled_count": str(active),
        "num_associated_deals": str(deals),
    }
    if replied:
        props["hs_email_replied"] = "true"
    if amount is not None:
        props["recent_deal_amount"] = amount
    return {"id": f"c-{seq_id}-{active}-{deals}", "properties": props}


def test_sequence_stats():
    sequences = [{"id": 11, "name": "Outbound A", "userId": 5}, {"id": "12", "name": "Empty"}]
    enrollments = [
        contact("11", active=1, replied=True),
        contact("11", deals=1, amount="2500"),
        contact("99"),
        contact(None),
    ]
    stats = {s["id"]: s for s in sequence_stats(sequences, enrollments)}
    assert stats["11"]["total_enrollees"] == 2
    assert stats["11"]["active_enrollees"] == 1
    assert stats["11"]["replies"] == 1
    assert stats["11"]["deals_created"] == 1
    assert stats["11"]["deals_value"] == 2500
    assert stats["12"]["total_enrollees"] == 0


def test_meeting_breakdown():
    meetings = [
        Meeting(id="1", owner_id="7", outcome="Completed"),
        Meeting(id="2", owner_id="7"),
        Meeting(id="3", owner_id="8", outcome="Completed"),
    ]
    result = meeting_breakdown(meetings)
    assert result["total"] == 3
    assert result["by_owner"] == {"7": 2, "8": 1}
    assert result["by_outcome"] == {"Completed": 2, "No Outcome": 1}


def test_deal_breakdown():
    deals = [
        Deal(id="1", stage="closedwon", amount=1000),
        Deal(id="2", stage="closedwon", amount=500),
        Deal(id="3", stage="closedlost"),
        Deal(id="4", stage="demo"),
    ]
    assert deal_breakdown(deals, PIPELINES) == {"created": 4, "won": 2, "won_value": 1500, "lost": 1}


class TestGetCampaignData:
    @pytest.mark.asyncio
    async def test_summary(self, hubspot):
        hubspot.get_owners.return_value = [{"id": "7", "userId": 101}, {"id": "8"}]
        hubspot.get_sequences.return_value = [{"id": "11", "name": "Outbound A"}]
        hubspot.get_pipelines.return_value = PIPELINES
        hubspot.get_sequence_enrollments_by_owners.return_value = [contact("11", active=1, replied=True)]
        hubspot.get_deals_for_owners.return_value = [
            {"id": "d1", "properties": {"dealstage": "closedwon", "amount": "800"}},
        ]
        hubspot.get_meetings.return_value = [
            {"id": "m1", "properties": {"hubspot_owner_id": "7"}},
            {"id": "m2", "properties": {"hubspot_owner_id": "8"}},
        ]

        data = await get_campaign_data(
            hubspot, owner_ids=["7"], active_only=True,
            start_date=date(2024, 3, 1), end_date=date(2024, 3, 31), tz=UTC,
        )

        hubspot.get_sequences.assert_awaited_once_with("101")
        enroll_args = hubspot.get_sequence_enrollments_by_owners.await_args
        assert enroll_args.args[0] == ["7"]
        assert enroll_args.kwargs["active_only"] is True
        assert hubspot.get_meetings.await_args.args[0] is None
        assert data["enrollments"] == {"total": 1, "active": 1, "replied": 1}
        assert data["sequences"][0]["total_enrollees"] == 1
        assert data["meetings"]["total"] == 1
        assert data["deals"]["won_value"] == 800

    @pytest.mark.asyncio
    async def test_no_owners_means_no_sequences(self, hubspot):
        data = await get_campaign_data(hubspot)
        hubspot.get_sequences.assert_not_awaited()
        assert data["sequences"] == []
        meetings_start = hubspot.get_meetings.await_args.args[1]
        assert meetings_start is not None

    @pytest.mark.asyncio
    async def test_pipelines_fetched_alongside_owners(self, hubspot):
        pipelines_started = asyncio.Event()

        async def owners():
            # Only returns once the pipeline fetch is already in flight
            await asyncio.wait_for(pipelines_started.wait(), timeout=1)
            return [{"id": "7"}]

        async def pipelines():
            pipelines_started.set()
            return PIPELINES

        hubspot.get_owners.side_effect = owners
        hubspot.get_pipelines.side_effect = pipelines

        data = await get_campaign_data(hubspot, owner_ids=["7"])

        assert data["owners"] == [{"id": "7"}]
        assert data["pipelines"] == PIPELINES
        hubspot.get_sequences.assert_awaited_once_with("7")
