"""Tests for the FastAPI surface: routing, payloads and error mapping."""

from datetime import timezone

import pytest
from fastapi.testclient import TestClient

from dashboard.api.deps import get_grain, get_hubspot, get_store, get_tz, split_ids
from dashboard.api.main import app
from scripts.lib.errors import APITimeoutError, ConfigError, HubSpotAPIError


@pytest.fixture
def client(hubspot, grain, store):
    app.dependency_overrides[get_hubspot] = lambda: hubspot
    app.dependency_overrides[get_grain] = lambda: grain
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_tz] = lambda: timezone.utc
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_split_ids():
    assert split_ids(" 1, ,2,") == ["1", "2"]
    assert split_ids(None) == []


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "Sales Pulse Hub"
        assert set(data["integrations"]) == {"supabase", "hubspot", "grain"}


class TestMagicFormula:
    def test_single_day(self, client, hubspot):
        response = client.get("/api/magic-formula", params={"owner_ids": "7", "date": "2024-03-01"})
        assert response.status_code == 200
        data = response.json()
        assert data["scope"] == "individual"
        assert data["result"]["date"] == "2024-03-01"
        assert hubspot.get_meetings.await_args.args[0] == ["7"]

    def test_range(self, client):
        response = client.get("/api/magic-formula", params={"start_date": "2024-03-01", "end_date": "2024-03-02"})
        assert response.status_code == 200
        assert len(response.json()["results"]) == 2

    def test_inverted_range_is_bad_request(self, client):
        response = client.get("/api/magic-formula", params={"start_date": "2024-03-03", "end_date": "2024-03-01"})
        assert response.status_code == 400
        assert "end_date" in response.json()["detail"]

    def test_hubspot_not_connected(self, client, hubspot):
        hubspot.get_meetings.side_effect = ConfigError("HubSpot not connected", setting="HUBSPOT_ACCESS_TOKEN")
        response = client.get("/api/magic-formula", params={"date": "2024-03-01"})
        assert response.status_code == 401

    def test_upstream_timeout(self, client, hubspot):
        hubspot.get_meetings.side_effect = APITimeoutError("/crm/v3/objects/meetings/search", 30)
        response = client.get("/api/magic-formula", params={"date": "2024-03-01"})
        assert response.status_code == 504

    def test_targets_roundtrip(self, client):
        assert client.get("/api/magic-formula/targets").json()["target"]["meetings_target"] == 5

        response = client.post("/api/magic-formula/targets", json={"meetingsTarget": 8})
        assert response.status_code == 200
        assert response.json()["target"]["meetings_target"] == 8
        assert client.get("/api/magic-formula/targets").json()["target"]["meetings_target"] == 8

    def test_invalid_target(self, client):
        response = client.post("/api/magic-formula/targets", json={"meetingsTarget": "many"})
        assert response.status_code == 400

    def test_store_failure_is_server_error(self, client, supabase):
        supabase.fail = True
        assert client.get("/api/magic-formula/targets").status_code == 500


class TestHubSpotRoutes:
    def test_owners(self, client, hubspot):
        hubspot.get_owners.return_value = [{"id": "1"}, {"id": "2"}]
        assert client.get("/api/hubspot/owners").json() == {"results": [{"id": "1"}, {"id": "2"}], "count": 2}

    def test_upstream_error_is_bad_gateway(self, client, hubspot):
        hubspot.get_pipelines.side_effect = HubSpotAPIError(500, "boom")
        response = client.get("/api/hubspot/pipelines")
        assert response.status_code == 502

    def test_meetings_view(self, client):
        response = client.get("/api/hubspot/meetings", params={"start_date": "2024-03-01"})
        assert response.status_code == 200
        assert response.json()["total"] == 0

    def test_meetings_inverted_window(self, client, hubspot):
        response = client.get("/api/hubspot/meetings", params={"start_date": "2024-03-05", "end_date": "2024-03-01"})
        assert response.status_code == 400
        assert "end_date" in response.json()["detail"]
        hubspot.get_meetings.assert_not_awaited()

    def test_meetings_unknown_preset(self, client):
        assert client.get("/api/hubspot/meetings", params={"preset": "fortnight"}).status_code == 400

    def test_campaigns_inverted_window(self, client, hubspot):
        response = client.get("/api/hubspot/campaigns", params={"start_date": "2024-03-05", "end_date": "2024-03-01"})
        assert response.status_code == 400
        hubspot.get_owners.assert_not_awaited()

    def test_lead_source_options(self, client, hubspot):
        hubspot.get_deal_property_options.return_value = [{"label": "Referral", "value": "referral"}]
        assert client.get("/api/hubspot/properties/deals/lead_source").json() == {
            "options": [{"label": "Referral", "value": "referral"}],
        }

    def test_patch_deal_clears_with_null(self, client, hubspot):
        hubspot.update_deal.return_value = {"id": "9"}
        response = client.patch("/api/hubspot/deals/9", json={"lead_source": None})
        assert response.status_code == 200
        assert response.json() == {"result": {"id": "9"}}
        hubspot.update_deal.assert_awaited_once_with("9", {"lead_source": None})

    def test_patch_deal_needs_a_property(self, client, hubspot):
        assert client.patch("/api/hubspot/deals/9", json={}).status_code == 400
        hubspot.update_deal.assert_not_awaited()

    def test_list_deals_per_owner(self, client, hubspot):
        hubspot.get_deals_for_owners.return_value = [{"id": "d1"}]
        response = client.get("/api/hubspot/deals", params={"owner_ids": "7,8", "start_date": "2024-03-01"})
        assert response.json() == {"results": [{"id": "d1"}], "count": 1}
        owners, start, end = hubspot.get_deals_for_owners.await_args.args
        assert owners == ["7", "8"]
        assert start.isoformat() == "2024-03-01T00:00:00+00:00"
        assert end is None
        hubspot.get_deals.assert_not_awaited()

    def test_list_deals_without_owners(self, client, hubspot):
        assert client.get("/api/hubspot/deals").json() == {"results": [], "count": 0}
        hubspot.get_deals.assert_awaited_once_with(None, None, None)

    def test_list_deals_inverted_window(self, client):
        response = client.get("/api/hubspot/deals", params={"start_date": "2024-03-02", "end_date": "2024-03-01"})
        assert response.status_code == 400


class TestMappingRoutes:
    def test_list_without_ids(self, client):
        assert client.get("/api/meetings/mappings").json() == {"results": []}

    def test_create_from_share_url_then_list(self, client):
        response = client.post("/api/meetings/mappings", json={
            "hubspot_meeting_id": "m1",
            "grain_share_url": "https://grain.com/share/recording/rec-1/tok",
        })
        assert response.status_code == 200
        assert response.json()["result"]["grain_meeting_id"] == "rec-1"

        listed = client.get("/api/meetings/mappings", params={"hubspot_ids": "m1,m2"}).json()
        assert [m["hubspot_meeting_id"] for m in listed["results"]] == ["m1"]

    def test_create_requires_meeting_id(self, client):
        response = client.post("/api/meetings/mappings", json={"grain_meeting_id": "r1"})
        assert response.status_code == 400

    def test_auto_map_with_no_meetings(self, client):
        response = client.post("/api/meetings/mappings/auto", json={"meetings": []})
        assert response.status_code == 200
        assert response.json()["created"] == 0


class TestGrainRoutes:
    def test_details_without_ids(self, client):
        assert client.post("/api/grain/meetings/details", json={"meeting_ids": []}).json() == {"results": []}

    def test_details_when_not_connected(self, client, grain):
        grain.is_configured = False
        response = client.post("/api/grain/meetings/details", json={"meeting_ids": ["r1"]})
        assert response.status_code == 401

    def test_list_recordings(self, client):
        assert client.get("/api/grain/meetings").json() == {"results": [], "total": 0}


class TestReportAndSeatRoutes:
    def test_generate_builtin(self, client):
        response = client.post("/api/reports/generate", json={"date": "2024-03-01"})
        assert response.status_code == 200
        data = response.json()
        assert data["markdown"].startswith("**Mar 1 Sales Pulse**")
        assert data["persisted"] is False

    def test_unknown_template(self, client):
        response = client.post("/api/reports/generate", json={"template_id": "nope", "date": "2024-03-01"})
        assert response.status_code == 404

    def test_report_inverted_window(self, client):
        response = client.post("/api/reports/generate", json={"start_date": "2024-03-05", "end_date": "2024-03-01"})
        assert response.status_code == 400

    def test_seats(self, client):
        created = client.post("/api/seats", json={"name": "Ann Lee", "email": "ann@x.com"})
        assert created.status_code == 200
        assert created.json()["result"]["role"] == "rep"
        assert [s["name"] for s in client.get("/api/seats").json()["results"]] == ["Ann Lee"]

    def test_seat_needs_a_name(self, client):
        assert client.post("/api/seats", json={"name": " "}).status_code == 400
