"""Tests for the HTTP surface."""

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from recapbot.bots.lifecycle import MissingPreconditionError
from recapbot.content.generator import ContentGenerationError
from recapbot.integrations.recall_client import RecallAPIError
from recapbot.main import app
from recapbot.models.schemas import (
    BotCreationOutcome,
    BotCreationResult,
    CalendarSyncResult,
    SweepReport,
    TranscriptFetchResult,
    TranscriptOutcome,
)

START = datetime(2024, 6, 1, 15, 0, tzinfo=timezone.utc)
HEADERS = {"X-User-Id": "1"}


def _event(**overrides):
    fields = dict(
        id=3,
        title="Quarterly planning",
        start_time=START,
        end_time=START.replace(hour=16),
        meeting_link="https://zoom.us/j/123",
        platform="zoom",
        is_recording_enabled=True,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _meeting(**overrides):
    fields = dict(
        id=11,
        user_id=1,
        calendar_event_id=3,
        recall_bot_id=5,
        title="Quarterly planning",
        start_time=START,
        end_time=None,
        platform="zoom",
        status="completed",
        transcript="Hello world",
        attendees=[],
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _content(**overrides):
    fields = dict(
        id=1,
        meeting_id=11,
        type="follow_up_email",
        platform=None,
        automation_id=None,
        content="Dear team",
        status="draft",
        created_at=START,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def mock_store():
    store = MagicMock()
    store.get_meeting = AsyncMock(return_value=_meeting())
    store.get_meetings_by_user_id = AsyncMock(return_value=[_meeting(), _meeting(id=12, transcript=None)])
    store.get_bot = AsyncMock(return_value=SimpleNamespace(id=5, status="completed", recall_bot_id="abc"))
    store.get_calendar_event = AsyncMock(return_value=_event())
    settings_row = SimpleNamespace(bot_join_minutes_before=5, auto_join_new_events=True)
    store.get_or_create_settings = AsyncMock(return_value=settings_row)
    store.get_settings = AsyncMock(return_value=settings_row)
    store.update_settings = AsyncMock(
        return_value=SimpleNamespace(bot_join_minutes_before=12, auto_join_new_events=True)
    )
    with patch("recapbot.main.postgres_store", store):
        yield store


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["reconciler_running"] is False

    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "recapbot_sweeps_total" in response.text

    def test_deep_health(self, client):
        status = {"status": "healthy", "components": {}}
        with patch("recapbot.main.get_deep_health_status", new_callable=AsyncMock, return_value=status):
            response = client.get("/health/deep")
        assert response.json() == status


class TestRecordingToggle:
    def test_enable_creates_bot(self, client, mock_store):
        result = BotCreationResult(
            outcome=BotCreationOutcome.CREATED, calendar_event_id=3, bot_id=5, meeting_id=11, recall_bot_id="abc"
        )
        with patch("recapbot.main.lifecycle") as lifecycle:
            lifecycle.set_recording = AsyncMock(return_value=(_event(), result))
            response = client.patch(
                "/calendar-events/3/recording", json={"is_recording_enabled": True}, headers=HEADERS
            )

        assert response.status_code == 200
        body = response.json()
        assert body["event"]["is_recording_enabled"] is True
        assert body["bot"]["outcome"] == "created"
        assert body["detail"] is None
        lifecycle.set_recording.assert_awaited_once_with(3, 1, True)

    def test_provider_failure_reported(self, client, mock_store):
        result = BotCreationResult(outcome=BotCreationOutcome.FAILED, calendar_event_id=3, error="boom")
        with patch("recapbot.main.lifecycle") as lifecycle:
            lifecycle.set_recording = AsyncMock(return_value=(_event(), result))
            response = client.patch(
                "/calendar-events/3/recording", json={"is_recording_enabled": True}, headers=HEADERS
            )

        assert response.status_code == 200
        assert response.json()["detail"] == "Failed to create recording bot"

    def test_missing_link_keeps_flag(self, client, mock_store):
        with patch("recapbot.main.lifecycle") as lifecycle:
            lifecycle.set_recording = AsyncMock(side_effect=MissingPreconditionError("no meeting link"))
            response = client.patch(
                "/calendar-events/3/recording", json={"is_recording_enabled": True}, headers=HEADERS
            )

        assert response.status_code == 200
        assert response.json()["detail"] == "no meeting link"
        assert response.json()["bot"] is None

    @pytest.mark.parametrize("error,status", [(LookupError("nope"), 404), (PermissionError("mine"), 403)])
    def test_errors_are_mapped(self, client, error, status):
        with patch("recapbot.main.lifecycle") as lifecycle:
            lifecycle.set_recording = AsyncMock(side_effect=error)
            response = client.patch(
                "/calendar-events/3/recording", json={"is_recording_enabled": True}, headers=HEADERS
            )
        assert response.status_code == status

    def test_requires_user_header(self, client):
        response = client.patch("/calendar-events/3/recording", json={"is_recording_enabled": True})
        assert response.status_code == 422


class TestMeetings:
    def test_list(self, client, mock_store):
        response = client.get("/meetings", headers=HEADERS)
        assert response.status_code == 200
        assert [m["id"] for m in response.json()] == [11, 12]

    def test_get_other_users_meeting(self, client, mock_store):
        mock_store.get_meeting.return_value = _meeting(user_id=2)
        response = client.get("/meetings/11", headers=HEADERS)
        assert response.status_code == 404

    def test_fetch_transcript(self, client, mock_store):
        result = TranscriptFetchResult(outcome=TranscriptOutcome.NOT_READY, meeting_id=11, reason="too soon")
        with patch("recapbot.main.evaluator") as evaluator:
            evaluator.attempt_transcript_fetch = AsyncMock(return_value=result)
            response = client.post("/meetings/11/fetch-transcript", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["outcome"] == "not_ready"

    def test_fetch_transcript_without_bot(self, client, mock_store):
        mock_store.get_meeting.return_value = _meeting(recall_bot_id=None)
        response = client.post("/meetings/11/fetch-transcript", headers=HEADERS)
        assert response.status_code == 400

    def test_fetch_transcript_provider_error(self, client, mock_store):
        with patch("recapbot.main.evaluator") as evaluator:
            evaluator.attempt_transcript_fetch = AsyncMock(side_effect=RecallAPIError("Recall.ai get_bot returned 503"))
            response = client.post("/meetings/11/fetch-transcript", headers=HEADERS)
        assert response.status_code == 502

    def test_list_contents(self, client, mock_store):
        mock_store.get_meeting_contents_by_meeting_id = AsyncMock(
            return_value=[_content(), _content(id=2, type="social_post", platform="linkedin", content="Post")]
        )

        response = client.get("/meetings/11/contents", headers=HEADERS)

        assert response.status_code == 200
        assert [(c["id"], c["type"]) for c in response.json()] == [(1, "follow_up_email"), (2, "social_post")]
        mock_store.get_meeting_contents_by_meeting_id.assert_awaited_once_with(11)

    def test_contents_of_other_users_meeting(self, client, mock_store):
        mock_store.get_meeting.return_value = _meeting(user_id=2)
        mock_store.get_meeting_contents_by_meeting_id = AsyncMock(return_value=[])

        response = client.get("/meetings/11/contents", headers=HEADERS)

        assert response.status_code == 404
        mock_store.get_meeting_contents_by_meeting_id.assert_not_awaited()


class TestContent:
    def test_follow_up_email(self, client, mock_store):
        with patch("recapbot.main.content_service") as service:
            service.create_follow_up_email = AsyncMock(return_value=_content())
            response = client.post("/meetings/11/follow-up-email", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["content"] == "Dear team"

    def test_follow_up_email_without_transcript(self, client, mock_store):
        with patch("recapbot.main.content_service") as service:
            service.create_follow_up_email = AsyncMock(side_effect=ContentGenerationError("No transcript"))
            response = client.post("/meetings/11/follow-up-email", headers=HEADERS)
        assert response.status_code == 400

    def test_social_post(self, client, mock_store):
        draft = _content(type="social_post", platform="linkedin", content="Post")
        with patch("recapbot.main.content_service") as service:
            service.create_social_post = AsyncMock(return_value=draft)
            response = client.post(
                "/meetings/11/social-posts", json={"platform": "linkedin"}, headers=HEADERS
            )

        assert response.status_code == 200
        assert response.json()["platform"] == "linkedin"
        service.create_social_post.assert_awaited_once()


class TestAutomations:
    def test_run_automations(self, client, mock_store):
        draft = _content(type="social_post", platform="linkedin", automation_id=7, content="Post")
        with patch("recapbot.main.content_service") as service:
            service.run_automations = AsyncMock(return_value=[draft])
            response = client.post("/meetings/11/automations/run", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()[0]["automation_id"] == 7

    def test_run_automations_without_transcript(self, client, mock_store):
        mock_store.get_meeting.return_value = _meeting(transcript=None, status="scheduled")
        with patch("recapbot.main.content_service") as service:
            service.run_automations = AsyncMock(return_value=[])
            response = client.post("/meetings/11/automations/run", headers=HEADERS)

        assert response.status_code == 400
        service.run_automations.assert_not_awaited()

    def test_create_and_list(self, client, mock_store):
        automation = SimpleNamespace(id=7, name="LinkedIn recap", platform="linkedin", prompt="Summarize", is_active=True)
        mock_store.create_automation = AsyncMock(return_value=automation)
        mock_store.get_automations_by_user_id = AsyncMock(return_value=[automation])

        created = client.post(
            "/automations",
            json={"name": "LinkedIn recap", "platform": "linkedin", "prompt": "Summarize"},
            headers=HEADERS,
        )
        listed = client.get("/automations", headers=HEADERS)

        assert created.status_code == 200
        mock_store.create_automation.assert_awaited_once_with(1, "LinkedIn recap", "linkedin", "Summarize")
        assert [a["id"] for a in listed.json()] == [7]


class TestCalendarEvents:
    def test_list_upcoming(self, client, mock_store):
        mock_store.get_upcoming_calendar_events_by_user_id = AsyncMock(return_value=[_event()])

        response = client.get("/calendar-events", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()[0]["meeting_link"] == "https://zoom.us/j/123"
        mock_store.get_upcoming_calendar_events_by_user_id.assert_awaited_once_with(1)

    def test_sync(self, client):
        results = [
            CalendarSyncResult(account="ada@example.com", success=True, events_synced=3),
            CalendarSyncResult(account="ada.work@example.com", success=False, error="Google Calendar returned 401"),
        ]
        with patch("recapbot.main.calendar_sync") as calendar_sync:
            calendar_sync.sync_user = AsyncMock(return_value=results)
            response = client.post("/calendar-events/sync", headers=HEADERS)

        assert response.status_code == 200
        assert [r["success"] for r in response.json()] == [True, False]
        calendar_sync.sync_user.assert_awaited_once_with(1)


class TestUsers:
    def test_register_returns_existing_user(self, client, mock_store):
        existing = SimpleNamespace(id=1, email="ada@example.com", name="Ada", picture=None)
        mock_store.get_user_by_email = AsyncMock(return_value=existing)
        mock_store.create_user = AsyncMock()

        response = client.post("/users", json={"email": "ada@example.com", "name": "Ada"})

        assert response.json()["id"] == 1
        mock_store.create_user.assert_not_awaited()

    def test_register_new_user_gets_settings(self, client, mock_store):
        mock_store.get_user_by_email = AsyncMock(return_value=None)
        mock_store.create_user = AsyncMock(
            return_value=SimpleNamespace(id=9, email="alan@example.com", name="Alan", picture=None)
        )
        mock_store.create_settings = AsyncMock()

        response = client.post("/users", json={"email": "alan@example.com", "name": "Alan"})

        assert response.status_code == 200
        assert response.json()["id"] == 9
        mock_store.create_settings.assert_awaited_once()
        assert mock_store.create_settings.await_args.args == (9,)

    def test_current_user_not_found(self, client, mock_store):
        mock_store.get_user = AsyncMock(return_value=None)
        response = client.get("/user", headers=HEADERS)
        assert response.status_code == 404

    def test_connect_google_account(self, client, mock_store):
        mock_store.create_google_account = AsyncMock(
            return_value=SimpleNamespace(id=4, email="ada@example.com", picture=None, is_connected=True)
        )

        response = client.post(
            "/google-accounts",
            json={
                "email": "ada@example.com",
                "access_token": "access",
                "refresh_token": "refresh",
                "expires_at": "2024-06-01T13:00:00Z",
            },
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["is_connected"] is True
        assert mock_store.create_google_account.await_args.kwargs["user_id"] == 1


class TestSettings:
    def test_get_settings(self, client, mock_store):
        response = client.get("/settings", headers=HEADERS)
        assert response.json() == {"bot_join_minutes_before": 5, "auto_join_new_events": True}

    def test_update_settings(self, client, mock_store):
        response = client.patch("/settings", json={"bot_join_minutes_before": 12}, headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["bot_join_minutes_before"] == 12
        mock_store.update_settings.assert_awaited_once_with(1, bot_join_minutes_before=12)

    @pytest.mark.parametrize("minutes", [0, 31])
    def test_join_minutes_out_of_range(self, client, mock_store, minutes):
        response = client.patch("/settings", json={"bot_join_minutes_before": minutes}, headers=HEADERS)
        assert response.status_code == 422


class TestReconcile:
    def test_reconcile_now(self, client):
        report = SweepReport(started_at=START, finished_at=START, active_bots=2, transitions=1)
        with patch("recapbot.main.supervisor") as supervisor:
            supervisor.run_sweep = AsyncMock(return_value=report)
            response = client.post("/reconcile")

        assert response.status_code == 200
        assert response.json()["active_bots"] == 2
