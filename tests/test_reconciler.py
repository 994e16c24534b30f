"""Tests for meeting ↔ recording reconciliation."""

from datetime import datetime, timezone

import pytest

from models.crm_models import RecordingMeeting, RecordingParticipant
from models.pulse_models import MeetingRef
from scripts.lib.errors import SchemaValidationError
from scripts.pulse.reconciler import (
    auto_map,
    build_email_index,
    choose_recording,
    save_mapping,
)

UTC = timezone.utc
MEETING_START = "2024-03-01T15:00:00Z"


def recording(rec_id, start, *emails, share_url=None):
    return RecordingMeeting(
        id=rec_id,
        start_datetime=start,
        participants=[RecordingParticipant(email=e, scope="external") for e in emails],
        share_url=share_url,
    )


@pytest.fixture
def contacts(hubspot):
    """Meeting m1 has one contact, ann@client.com."""
    hubspot.get_meeting_contacts.return_value = {"m1": ["c1"]}
    hubspot.get_contacts_by_ids.return_value = [
        {"id": "c1", "properties": {"email": "Ann@Client.com"}},
    ]
    return hubspot


class TestChooseRecording:
    def test_no_candidates(self):
        assert choose_recording(None, set(), {}) is None

    def test_single_candidate_ignores_time(self):
        rec = recording("r1", "2024-03-05T09:00:00Z")
        start = datetime(2024, 3, 1, 15, tzinfo=UTC)
        assert choose_recording(start, {"r1"}, {"r1": rec}) is rec

    def test_nearest_start_wins(self):
        recs = {
            "near": recording("near", "2024-03-01T15:05:00Z"),
            "far": recording("far", "2024-03-01T18:00:00Z"),
        }
        start = datetime(2024, 3, 1, 15, tzinfo=UTC)
        assert choose_recording(start, {"near", "far"}, recs).id == "near"

    def test_tie_goes_to_smallest_id(self):
        recs = {
            "r-b": recording("r-b", "2024-03-01T15:10:00Z"),
            "r-a": recording("r-a", "2024-03-01T14:50:00Z"),
        }
        start = datetime(2024, 3, 1, 15, tzinfo=UTC)
        assert choose_recording(start, {"r-b", "r-a"}, recs).id == "r-a"

    def test_several_candidates_need_a_meeting_start(self):
        recs = {"a": recording("a", MEETING_START), "b": recording("b", MEETING_START)}
        assert choose_recording(None, {"a", "b"}, recs) is None

    def test_candidates_without_start_are_ignored(self):
        recs = {"a": recording("a", None), "b": recording("b", "2024-03-02T00:00:00Z")}
        start = datetime(2024, 3, 1, 15, tzinfo=UTC)
        assert choose_recording(start, {"a", "b"}, recs).id == "b"


def test_email_index_normalizes_addresses():
    index = build_email_index([
        recording("r1", None, " ANN@client.com "),
        recording("r2", None, "ann@client.com", None),
    ])
    assert index == {"ann@client.com": {"r1", "r2"}}


class TestAutoMap:
    @pytest.mark.asyncio
    async def test_single_shared_email_maps(self, contacts, grain, store, supabase):
        grain.list_meetings.return_value = [
            recording("r1", "2024-03-04T09:00:00Z", "ann@client.com", share_url="https://grain.com/share/recording/r1/t"),
        ]

        result = await auto_map(contacts, grain, store, [MeetingRef(id="m1", start_time=MEETING_START)])

        assert (result.created, result.skipped, result.already_mapped) == (1, 0, 0)
        rows = supabase.tables["meeting_mappings"]
        assert len(rows) == 1
        assert rows[0]["grain_meeting_id"] == "r1"
        assert rows[0]["grain_share_url"] == "https://grain.com/share/recording/r1/t"

    @pytest.mark.asyncio
    async def test_closest_recording_is_chosen(self, contacts, grain, store):
        grain.list_meetings.return_value = [
            recording("late", "2024-03-01T18:00:00Z", "ann@client.com"),
            recording("close", "2024-03-01T15:05:00Z", "ann@client.com"),
        ]
        result = await auto_map(contacts, grain, store, [MeetingRef(id="m1", start_time=MEETING_START)])
        assert result.results[0].grain_meeting_id == "close"

    @pytest.mark.asyncio
    async def test_equidistant_recordings_pick_smallest_id(self, contacts, grain, store):
        grain.list_meetings.return_value = [
            recording("r-b", "2024-03-01T15:10:00Z", "ann@client.com"),
            recording("r-a", "2024-03-01T14:50:00Z", "ann@client.com"),
        ]
        result = await auto_map(contacts, grain, store, [MeetingRef(id="m1", start_time=MEETING_START)])
        assert result.results[0].grain_meeting_id == "r-a"

    @pytest.mark.asyncio
    async def test_no_shared_email_is_skipped(self, contacts, grain, store, supabase):
        grain.list_meetings.return_value = [recording("r1", MEETING_START, "bob@other.com")]
        result = await auto_map(contacts, grain, store, [MeetingRef(id="m1", start_time=MEETING_START)])
        assert (result.created, result.skipped) == (0, 1)
        assert not supabase.tables.get("meeting_mappings")

    @pytest.mark.asyncio
    async def test_ambiguous_without_start_is_skipped(self, contacts, grain, store):
        grain.list_meetings.return_value = [
            recording("a", MEETING_START, "ann@client.com"),
            recording("b", MEETING_START, "ann@client.com"),
        ]
        result = await auto_map(contacts, grain, store, [MeetingRef(id="m1")])
        assert result.skipped == 1

    @pytest.mark.asyncio
    async def test_existing_mapping_is_never_replaced(self, contacts, grain, store, supabase):
        supabase.seed("meeting_mappings", {"hubspot_meeting_id": "m1", "grain_meeting_id": "manual"})

        result = await auto_map(contacts, grain, store, [MeetingRef(id="m1", start_time=MEETING_START)])

        assert result.already_mapped == 1
        assert result.created == 0
        grain.list_meetings.assert_not_awaited()
        assert supabase.tables["meeting_mappings"][0]["grain_meeting_id"] == "manual"

    @pytest.mark.asyncio
    async def test_duplicate_meeting_refs_map_once(self, contacts, grain, store):
        grain.list_meetings.return_value = [recording("r1", MEETING_START, "ann@client.com")]
        refs = [MeetingRef(id="m1", start_time=MEETING_START), MeetingRef(id="m1")]
        result = await auto_map(contacts, grain, store, refs)
        assert result.created == 1

    @pytest.mark.asyncio
    async def test_empty_request_does_nothing(self, hubspot, grain, store):
        result = await auto_map(hubspot, grain, store, [])
        assert result.created == 0
        grain.list_meetings.assert_not_awaited()


class TestSaveMapping:
    def test_upsert_is_idempotent_per_meeting(self, store, supabase):
        save_mapping(store, "m1", "r1")
        saved = save_mapping(store, "m1", "r2")
        rows = supabase.tables["meeting_mappings"]
        assert len(rows) == 1
        assert rows[0]["grain_meeting_id"] == "r2"
        assert saved.grain_meeting_id == "r2"

    def test_recording_id_from_share_url(self, store):
        saved = save_mapping(store, "m1", grain_share_url="https://grain.com/share/recording/rec-9/tok")
        assert saved.grain_meeting_id == "rec-9"
        assert saved.grain_share_url == "https://grain.com/share/recording/rec-9/tok"

    def test_meeting_id_required(self, store):
        with pytest.raises(SchemaValidationError) as exc:
            save_mapping(store, None, "r1")
        assert exc.value.field == "hubspot_meeting_id"

    def test_recording_required(self, store):
        with pytest.raises(SchemaValidationError) as exc:
            save_mapping(store, "m1", grain_share_url="https://grain.com/app/meetings/x")
        assert exc.value.field == "grain_meeting_id"
