"""Shared fixtures: in-memory Supabase, fake aiohttp session, mocked clients."""

import asyncio
import json
from datetime import timezone
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from integrations.grain import GrainClient
from integrations.hubspot import HubSpotClient
from scripts.pulse.store import PulseStore

UTC = timezone.utc


# ─── Supabase ───────────────────────────────────────────────

class FakeResult:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Chainable subset of the PostgREST query builder."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.filters: List[Callable[[dict], bool]] = []
        self.op = "select"
        self.payload: Any = None
        self.on_conflict: Optional[str] = None
        self._limit: Optional[int] = None
        self._order: Optional[tuple] = None

    # reads
    def select(self, *columns):
        self.op = "select"
        return self

    def eq(self, column, value):
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def is_(self, column, value):
        assert value == "null"
        self.filters.append(lambda r: r.get(column) is None)
        return self

    def in_(self, column, values):
        wanted = list(values)
        self.filters.append(lambda r: r.get(column) in wanted)
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, n):
        self._limit = n
        return self

    # writes
    def insert(self, row):
        self.op, self.payload = "insert", row
        return self

    def update(self, fields):
        self.op, self.payload = "update", fields
        return self

    def upsert(self, row, on_conflict=None):
        self.op, self.payload, self.on_conflict = "upsert", row, on_conflict
        return self

    def execute(self):
        self.db.executed.append((self.table_name, self.op))
        if self.db.fail:
            raise RuntimeError("connection refused")
        rows = self.db.tables.setdefault(self.table_name, [])

        if self.op == "insert":
            payloads = self.payload if isinstance(self.payload, list) else [self.payload]
            return FakeResult([self.db.insert(self.table_name, p) for p in payloads])

        if self.op == "upsert":
            keys = [k.strip() for k in (self.on_conflict or "").split(",") if k.strip()]
            for row in rows:
                if keys and all(row.get(k) == self.payload.get(k) for k in keys):
                    row.update(self.payload)
                    return FakeResult([dict(row)])
            return FakeResult([self.db.insert(self.table_name, self.payload)])

        matched = [r for r in rows if all(f(r) for f in self.filters)]
        if self.op == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResult([dict(r) for r in matched])

        if self._order:
            column, desc = self._order
            matched = sorted(matched, key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        if self._limit is not None:
            matched = matched[: self._limit]
        return FakeResult([dict(r) for r in matched])


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[dict]] = {}
        self.executed: List[tuple] = []
        self.fail = False
        self._next_id = 1

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def insert(self, table: str, payload: dict) -> dict:
        row = {"id": str(self._next_id), "created_at": f"2024-01-01T00:00:{self._next_id:02d}+00:00", **payload}
        self._next_id += 1
        self.tables.setdefault(table, []).append(row)
        return dict(row)

    def seed(self, table: str, *rows: dict):
        for row in rows:
            self.insert(table, row)


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def store(supabase):
    return PulseStore(client=supabase)


# ─── aiohttp ────────────────────────────────────────────────

class FakeResponse:
    def __init__(self, payload: Any = None, status: int = 200, text: str = None):
        self.payload = payload
        self.status = status
        self._text = text

    async def json(self, content_type="application/json"):
        return self.payload

    async def text(self):
        if self._text is not None:
            return self._text
        return json.dumps(self.payload) if self.payload is not None else ""

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, http: "FakeHTTP", **kwargs):
        self.http = http
        self.kwargs = kwargs

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def request(self, method, url, headers=None, json=None, params=None):
        return self.http.respond(method, url, headers=headers, json=json, params=params)


class FakeHTTP:
    """Records requests and replays queued responses (or a handler's)."""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.responses: List[Any] = []
        self.handler: Optional[Callable[..., FakeResponse]] = None

    def add(self, payload: Any = None, status: int = 200, text: str = None):
        self.responses.append(FakeResponse(payload, status, text))

    def response(self, payload: Any = None, status: int = 200, text: str = None) -> FakeResponse:
        return FakeResponse(payload, status, text)

    def add_timeout(self):
        self.responses.append(asyncio.TimeoutError())

    def session(self, *args, **kwargs):
        return FakeSession(self, **kwargs)

    def respond(self, method, url, headers=None, json=None, params=None):
        self.calls.append({"method": method, "url": url, "headers": headers, "json": json, "params": params})
        if self.handler is not None:
            response = self.handler(method, url, json, params)
        else:
            assert self.responses, f"unexpected request {method} {url}"
            response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture
def fake_http(monkeypatch):
    http = FakeHTTP()
    monkeypatch.setattr("integrations.hubspot.aiohttp.ClientSession", http.session)
    monkeypatch.setattr("integrations.grain.aiohttp.ClientSession", http.session)
    return http


# ─── Mocked clients ─────────────────────────────────────────

@pytest.fixture
def hubspot():
    """HubSpotClient double whose async methods return empty results."""
    client = MagicMock(spec=HubSpotClient)
    client.is_configured = True
    for name in (
        "get_meetings", "get_deals", "get_deals_closed_won", "get_deals_closed_lost", "get_calls",
        "get_emails", "get_owners", "get_deals_by_ids", "get_contacts_by_ids",
        "get_engagement_ids_for_meeting", "get_sequences", "get_pipelines",
        "get_sequence_enrollments_by_owners", "get_deals_for_owners",
        "get_deal_property_options",
    ):
        getattr(client, name).return_value = []
    for name in (
        "get_meeting_deal_ids_batch", "get_meeting_contacts",
        "get_meeting_engagement_ids_batch", "get_meeting", "get_engagement", "update_deal",
    ):
        getattr(client, name).return_value = {}
    return client


@pytest.fixture
def grain():
    client = MagicMock(spec=GrainClient)
    client.is_configured = True
    client.list_meetings.return_value = []
    client.get_meeting_details.return_value = []
    return client

