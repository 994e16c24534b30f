"""Tests for the Grain integration."""

from unittest.mock import patch

import pytest

from integrations.grain import GrainClient, extract_share_url, format_duration, parse_share_url
from scripts.lib.errors import ConfigError, GrainAPIError

SHARE = "https://grain.com/share/recording/rec-1/tok-9?t=30"


class TestShareLinks:
    def test_parse_share_url(self):
        assert parse_share_url(SHARE) == ("rec-1", "tok-9")

    def test_parse_share_url_is_case_insensitive(self):
        assert parse_share_url("https://grain.com/Share/Recording/A/B") == ("A", "B")

    def test_parse_share_url_rejects_other_links(self):
        assert parse_share_url("https://grain.com/app/meetings/abc") is None
        assert parse_share_url(None) is None
        assert parse_share_url("") is None

    def test_extract_share_url_takes_first_non_empty_field(self):
        record = {"share_url": "  ", "shareUrl": SHARE}
        assert extract_share_url(record) == SHARE
        assert extract_share_url({"title": "x"}) is None

    def test_format_duration(self):
        assert format_duration("01:05:00") == "1h 5m"
        assert format_duration("00:42:10") == "42m"
        assert format_duration("") == ""
        assert format_duration("about an hour") == "about an hour"


class TestGrainClient:
    def test_configuration_from_env(self):
        with patch.dict("os.environ", {"GRAIN_API_KEY": "g-key"}, clear=False):
            assert GrainClient().is_configured is True
        with patch.dict("os.environ", {"GRAIN_API_KEY": ""}, clear=False):
            assert GrainClient().is_configured is False

    @pytest.mark.asyncio
    async def test_unconfigured_raises_config_error(self, fake_http):
        with pytest.raises(ConfigError):
            await GrainClient(api_key="").list_meetings()
        assert fake_http.calls == []

    @pytest.mark.asyncio
    async def test_list_meetings_parses_recordings(self, fake_http):
        fake_http.add({"meetings": [
            {
                "id": "rec-1",
                "title": "Discovery",
                "startDatetime": "2024-03-01T15:00:00Z",
                "participants": [
                    {"name": "Ann", "email": "ann@client.com", "scope": "external"},
                    {"name": "Rep", "email": "rep@us.com", "scope": "host"},
                ],
                "share_url": SHARE,
            },
            "junk",
        ]})
        client = GrainClient(api_key="k")

        recordings = await client.list_meetings("2024-03-01", "2024-03-02", limit=50)

        assert len(recordings) == 1
        rec = recordings[0]
        assert rec.id == "rec-1"
        assert rec.share_url == SHARE
        assert rec.started_at is not None
        assert [p.scope for p in rec.participants] == ["external", "unknown"]
        assert fake_http.calls[0]["params"] == {"start_date": "2024-03-01", "end_date": "2024-03-02", "limit": 50}

    @pytest.mark.asyncio
    async def test_transcript_and_notes_default_to_empty(self, fake_http):
        fake_http.add({"transcript": "Hello there"})
        fake_http.add({"notes": None})
        client = GrainClient(api_key="k")
        assert await client.get_transcript("rec-1") == "Hello there"
        assert await client.get_notes("rec-1") == ""
        assert fake_http.calls[0]["url"].endswith("/meetings/rec-1/transcript")
        assert fake_http.calls[1]["url"].endswith("/meetings/rec-1/notes")

    @pytest.mark.asyncio
    async def test_missing_coaching_is_none(self, fake_http):
        fake_http.add(status=404, text="not found")
        assert await GrainClient(api_key="k").get_coaching_feedback("rec-1") is None

    @pytest.mark.asyncio
    async def test_coaching_server_error_propagates(self, fake_http):
        fake_http.add(status=500, text="boom")
        with pytest.raises(GrainAPIError):
            await GrainClient(api_key="k").get_coaching_feedback("rec-1")

    @pytest.mark.asyncio
    async def test_meeting_details_drop_failed_items(self, fake_http):
        def handler(method, url, body, params):
            if url.endswith("/meetings/good"):
                return fake_http.response({"id": "good", "title": "Demo", "summary": "went well"})
            if url.endswith("/meetings/good/coaching"):
                return fake_http.response({"overallScore": 82})
            return fake_http.response(status=500, text="down")

        fake_http.handler = handler
        details = await GrainClient(api_key="k").get_meeting_details(["good", "bad", "good"])

        assert details == [{
            "id": "good",
            "title": "Demo",
            "duration": None,
            "summary": "went well",
            "start_datetime": None,
            "coaching_score": 82.0,
            "share_url": None,
        }]
