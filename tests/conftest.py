"""Shared test fixtures for the recapbot test suite."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest
import pytest_asyncio

from recapbot.integrations.recall_client import RecallClient
from recapbot.storage.postgres_store import PostgresStore

RECALL_BASE_URL = "https://recall.test/api/v1"
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for time-dependent gates."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeRecallAPI:
    """In-memory Recall.ai served through httpx.MockTransport.

    ``bots`` maps bot id to the JSON returned by GET /bot/{id}/;
    ``transcripts`` maps a transcript path to its body (str bodies are sent
    as text, anything else as JSON). Unknown paths return 404.
    """

    def __init__(self) -> None:
        self.bots: dict[str, Any] = {}
        self.transcripts: dict[str, Any] = {}
        self.created: list[dict[str, Any]] = []
        self.requests: list[httpx.Request] = []
        self.create_status = 201

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api/v1")

        if request.method == "POST" and path == "/bot/":
            if self.create_status >= 400:
                return httpx.Response(self.create_status, json={"detail": "provider unavailable"})
            payload = json.loads(request.content)
            bot_id = f"recall-bot-{len(self.created) + 1}"
            self.created.append(payload)
            self.bots[bot_id] = bot_payload(["ready"], bot_id=bot_id)
            return httpx.Response(self.create_status, json={"id": bot_id})

        if request.method == "GET" and path in self.transcripts:
            body = self.transcripts[path]
            if isinstance(body, str):
                return httpx.Response(200, text=body)
            return httpx.Response(200, json=body)

        if request.method == "GET" and path.startswith("/bot/") and path.endswith("/") and path.count("/") == 3:
            bot_id = path.split("/")[2]
            if bot_id in self.bots:
                return httpx.Response(200, json=self.bots[bot_id])

        return httpx.Response(404, json={"detail": "Not found."})

    def paths(self, method: str = "GET") -> list[str]:
        return [r.url.path.removeprefix("/api/v1") for r in self.requests if r.method == method]


def bot_payload(
    codes: list[str],
    bot_id: str = "recall-bot-1",
    recordings: list[dict[str, Any]] | None = None,
    provider: str | None = "deepgram",
) -> dict[str, Any]:
    """Build a GET /bot/{id}/ body with the given status-change history."""
    payload: dict[str, Any] = {
        "id": bot_id,
        "status_changes": [
            {"code": code, "sub_code": None, "created_at": "2024-06-01T11:00:00Z"} for code in codes
        ],
        "recordings": recordings or [],
    }
    if provider is not None:
        payload["transcription_options"] = {"provider": provider}
    return payload


def iso(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_recall() -> FakeRecallAPI:
    return FakeRecallAPI()


@pytest_asyncio.fixture
async def recall(fake_recall: FakeRecallAPI):
    client = RecallClient(
        api_key="test-key",
        base_url=RECALL_BASE_URL,
        max_attempts=1,
        transport=httpx.MockTransport(fake_recall.handler),
    )
    yield client
    await client.close()


@pytest_asyncio.fixture
async def store(tmp_path):
    """A fresh SQLite-backed store per test."""
    store = PostgresStore(f"sqlite+aiosqlite:///{tmp_path / 'recapbot.db'}")
    await store.init_db()
    yield store
    await store.disconnect()


@pytest_asyncio.fixture
async def user(store: PostgresStore):
    return await store.create_user(email="ada@example.com", name="Ada")


@pytest_asyncio.fixture
async def account(store: PostgresStore, user):
    return await store.create_google_account(
        user_id=user.id,
        email="ada@example.com",
        access_token="access",
        refresh_token="refresh",
        expires_at=NOW + timedelta(hours=1),
    )


@pytest.fixture
def make_event(store: PostgresStore, account):
    """Factory for calendar events on the default account."""
    counter = {"n": 0}

    async def _make(
        start_time: datetime = datetime(2024, 6, 1, 15, 0, tzinfo=timezone.utc),
        meeting_link: str | None = "https://meet.google.com/abc-defg-hij",
        is_recording_enabled: bool = True,
        title: str = "Quarterly planning",
        **extra: Any,
    ):
        counter["n"] += 1
        return await store.create_calendar_event(
            google_account_id=account.id,
            event_id=f"gcal-{counter['n']}",
            title=title,
            start_time=start_time,
            end_time=start_time + timedelta(hours=1),
            meeting_link=meeting_link,
            platform="meet" if meeting_link else None,
            attendees=[{"email": "grace@example.com"}],
            is_recording_enabled=is_recording_enabled,
            **extra,
        )

    return _make
