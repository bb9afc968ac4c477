"""FastAPI application: recapbot's HTTP interface.

Endpoints:
  GET   /health                            Liveness check
  GET   /health/deep                       Database, Recall.ai and scheduler status
  GET   /metrics                           Prometheus metrics
  POST  /users, GET /user                  Sign-in registration and current user
  GET   /google-accounts, POST ...         Connected calendar accounts
  GET   /calendar-events                   Upcoming events
  POST  /calendar-events/sync              Pull events from connected calendars
  PATCH /calendar-events/{id}/recording    Enable/disable recording for an event
  GET   /meetings, /meetings/{id}          Meeting records
  GET   /meetings/{id}/contents            Generated drafts for a meeting
  POST  /meetings/{id}/fetch-transcript    Manual transcript fetch attempt
  POST  /meetings/{id}/follow-up-email     Draft a follow-up email
  POST  /meetings/{id}/social-posts        Draft a social media post
  POST  /meetings/{id}/automations/run     Draft posts from active automations
  GET   /automations, POST /automations    Saved social post prompts
  GET   /settings, PATCH /settings         Bot join preferences
  POST  /reconcile                         Run one reconciliation sweep now
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from recapbot import __version__
from recapbot.bots.lifecycle import BotLifecycleController, MissingPreconditionError
from recapbot.bots.reconciler import ReconciliationSupervisor
from recapbot.bots.transcripts import TranscriptReadinessEvaluator
from recapbot.calendar.sync import CalendarSyncService
from recapbot.config import settings
from recapbot.content.generator import ContentGenerationError, ContentGenerator
from recapbot.content.service import ContentService
from recapbot.health import get_deep_health_status
from recapbot.integrations.google_calendar import GoogleCalendarClient, GoogleCalendarError
from recapbot.integrations.recall_client import RecallAPIError, RecallClient
from recapbot.logging_config import setup_logging
from recapbot.metrics import metrics_response
from recapbot.models.schemas import (
    AutomationCreate,
    AutomationRead,
    BotCreationOutcome,
    CalendarEventRead,
    CalendarSyncResult,
    GoogleAccountCreate,
    GoogleAccountRead,
    MeetingContentRead,
    MeetingRead,
    RecordingToggle,
    RecordingToggleResponse,
    SettingsRead,
    SettingsUpdate,
    SocialPostRequest,
    SweepReport,
    TranscriptFetchResult,
    UserCreate,
    UserRead,
)
from recapbot.storage.postgres_store import Meeting, PostgresStore
from recapbot.validation import validate_and_exit

# ── Logging ──

setup_logging()
logger = logging.getLogger("recapbot")

# ── Shared Resources ──

postgres_store = PostgresStore()
recall_client = RecallClient()
google_client = GoogleCalendarClient()
calendar_sync = CalendarSyncService(postgres_store, google_client)
lifecycle = BotLifecycleController(postgres_store, recall_client)
evaluator = TranscriptReadinessEvaluator(postgres_store, recall_client)
supervisor = ReconciliationSupervisor(postgres_store, recall_client, evaluator)
content_service = ContentService(postgres_store, ContentGenerator())


# ── App Lifecycle ──


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: validate config, create schema, start sweeps. Shutdown: stop and disconnect."""
    logger.info("=" * 60)
    logger.info("  recapbot starting up...")
    logger.info("  Environment: %s", settings.environment)
    logger.info("  Reconcile interval: %ds", settings.reconcile_interval_seconds)
    logger.info("=" * 60)

    validate_and_exit()
    await postgres_store.init_db()

    if settings.reconcile_enabled:
        supervisor.start()
    else:
        logger.warning("Reconciliation disabled (RECONCILE_ENABLED=false)")

    yield

    logger.info("recapbot shutting down...")
    supervisor.stop()
    await recall_client.close()
    await google_client.close()
    await postgres_store.disconnect()
    logger.info("All connections closed. Goodbye.")


# ── FastAPI App ──

app = FastAPI(
    title="recapbot",
    description="Meeting recording bots with transcript-driven follow-ups",
    version=__version__,
    lifespan=lifespan,
)


# ── Error Mapping ──


@app.exception_handler(LookupError)
async def not_found_handler(request: Request, exc: LookupError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PermissionError)
async def forbidden_handler(request: Request, exc: PermissionError):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(MissingPreconditionError)
async def precondition_handler(request: Request, exc: MissingPreconditionError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(RecallAPIError)
async def provider_error_handler(request: Request, exc: RecallAPIError):
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(GoogleCalendarError)
async def calendar_error_handler(request: Request, exc: GoogleCalendarError):
    return JSONResponse(status_code=502, content={"detail": str(exc)})


# ── Helpers ──


async def _owned_meeting(meeting_id: int, user_id: int) -> Meeting:
    meeting = await postgres_store.get_meeting(meeting_id)
    if meeting is None or meeting.user_id != user_id:
        raise HTTPException(status_code=404, detail="Meeting not found")
    return meeting


# ── Health ──


@app.get("/health")
async def health_check():
    """Liveness check."""
    return {
        "status": "ok",
        "environment": settings.environment,
        "reconciler_running": supervisor.is_running,
    }


@app.get("/health/deep")
async def deep_health_check():
    """Check the database, Recall.ai and the sweep scheduler."""
    return await get_deep_health_status(postgres_store, recall_client, supervisor.is_running)


@app.get("/metrics")
async def metrics():
    return metrics_response()


# ── Users & Accounts ──


@app.post("/users", response_model=UserRead)
async def register_user(body: UserCreate):
    """Return the user with this email, creating it with default settings on first sign-in."""
    user = await postgres_store.get_user_by_email(body.email)
    if user is not None:
        return user
    user = await postgres_store.create_user(body.email, body.name, body.picture)
    await postgres_store.create_settings(
        user.id, bot_join_minutes_before=settings.default_bot_join_minutes_before
    )
    logger.info("Registered user %d", user.id)
    return user


@app.get("/user", response_model=UserRead)
async def get_current_user(x_user_id: int = Header(alias="X-User-Id")):
    user = await postgres_store.get_user(x_user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@app.post("/google-accounts", response_model=GoogleAccountRead)
async def connect_google_account(body: GoogleAccountCreate, x_user_id: int = Header(alias="X-User-Id")):
    """Store the tokens of a Google account the user has authorized."""
    return await postgres_store.create_google_account(
        user_id=x_user_id,
        email=body.email,
        access_token=body.access_token,
        refresh_token=body.refresh_token,
        expires_at=body.expires_at,
        picture=body.picture,
    )


@app.get("/google-accounts", response_model=list[GoogleAccountRead])
async def list_google_accounts(x_user_id: int = Header(alias="X-User-Id")):
    return await postgres_store.get_google_accounts_by_user_id(x_user_id)


# ── Calendar Events ──


@app.get("/calendar-events", response_model=list[CalendarEventRead])
async def list_calendar_events(x_user_id: int = Header(alias="X-User-Id")):
    """Upcoming events across the user's connected calendars."""
    return await postgres_store.get_upcoming_calendar_events_by_user_id(x_user_id)


@app.post("/calendar-events/sync", response_model=list[CalendarSyncResult])
async def sync_calendar_events(x_user_id: int = Header(alias="X-User-Id")):
    return await calendar_sync.sync_user(x_user_id)


@app.patch("/calendar-events/{event_id}/recording", response_model=RecordingToggleResponse)
async def toggle_recording(event_id: int, body: RecordingToggle, x_user_id: int = Header(alias="X-User-Id")):
    """Enable or disable recording; enabling schedules the recording bot.

    The flag is saved even when the bot cannot be scheduled; the reason is
    returned in ``detail``.
    """
    try:
        event, result = await lifecycle.set_recording(event_id, x_user_id, body.is_recording_enabled)
    except MissingPreconditionError as e:
        event = await postgres_store.get_calendar_event(event_id)
        return RecordingToggleResponse.model_validate({"event": event, "detail": str(e)}, from_attributes=True)

    detail = None
    if result is not None and result.outcome == BotCreationOutcome.FAILED:
        detail = "Failed to create recording bot"
    return RecordingToggleResponse.model_validate(
        {"event": event, "bot": result, "detail": detail}, from_attributes=True
    )


# ── Meetings ──


@app.get("/meetings", response_model=list[MeetingRead])
async def list_meetings(x_user_id: int = Header(alias="X-User-Id")):
    return await postgres_store.get_meetings_by_user_id(x_user_id)


@app.get("/meetings/{meeting_id}", response_model=MeetingRead)
async def get_meeting(meeting_id: int, x_user_id: int = Header(alias="X-User-Id")):
    return await _owned_meeting(meeting_id, x_user_id)


@app.post("/meetings/{meeting_id}/fetch-transcript", response_model=TranscriptFetchResult)
async def fetch_transcript(meeting_id: int, x_user_id: int = Header(alias="X-User-Id")):
    """Run one transcript fetch attempt now instead of waiting for the next sweep."""
    meeting = await _owned_meeting(meeting_id, x_user_id)
    if meeting.recall_bot_id is None:
        raise HTTPException(status_code=400, detail="Meeting has no recording bot")
    bot = await postgres_store.get_bot(meeting.recall_bot_id)
    if bot is None:
        raise HTTPException(status_code=400, detail="Meeting has no recording bot")
    return await evaluator.attempt_transcript_fetch(bot, meeting)


@app.post("/meetings/{meeting_id}/follow-up-email", response_model=MeetingContentRead)
async def create_follow_up_email(meeting_id: int, x_user_id: int = Header(alias="X-User-Id")):
    meeting = await _owned_meeting(meeting_id, x_user_id)
    try:
        return await content_service.create_follow_up_email(meeting)
    except ContentGenerationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/meetings/{meeting_id}/social-posts", response_model=MeetingContentRead)
async def create_social_post(
    meeting_id: int, body: SocialPostRequest, x_user_id: int = Header(alias="X-User-Id")
):
    meeting = await _owned_meeting(meeting_id, x_user_id)
    try:
        return await content_service.create_social_post(
            meeting, body.platform, prompt=body.prompt, automation_id=body.automation_id
        )
    except ContentGenerationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/meetings/{meeting_id}/contents", response_model=list[MeetingContentRead])
async def list_meeting_contents(meeting_id: int, x_user_id: int = Header(alias="X-User-Id")):
    """Drafts generated for a meeting, oldest first."""
    meeting = await _owned_meeting(meeting_id, x_user_id)
    return await postgres_store.get_meeting_contents_by_meeting_id(meeting.id)


@app.post("/meetings/{meeting_id}/automations/run", response_model=list[MeetingContentRead])
async def run_meeting_automations(meeting_id: int, x_user_id: int = Header(alias="X-User-Id")):
    """Draft one social post per active automation."""
    meeting = await _owned_meeting(meeting_id, x_user_id)
    if not meeting.transcript:
        raise HTTPException(status_code=400, detail="Meeting has no transcript yet")
    return await content_service.run_automations(meeting)


# ── Automations ──


@app.get("/automations", response_model=list[AutomationRead])
async def list_automations(x_user_id: int = Header(alias="X-User-Id")):
    return await postgres_store.get_automations_by_user_id(x_user_id)


@app.post("/automations", response_model=AutomationRead)
async def create_automation(body: AutomationCreate, x_user_id: int = Header(alias="X-User-Id")):
    return await postgres_store.create_automation(x_user_id, body.name, body.platform, body.prompt)


# ── Settings ──


@app.get("/settings", response_model=SettingsRead)
async def get_settings(x_user_id: int = Header(alias="X-User-Id")):
    return await postgres_store.get_or_create_settings(x_user_id)


@app.patch("/settings", response_model=SettingsRead)
async def update_settings(body: SettingsUpdate, x_user_id: int = Header(alias="X-User-Id")):
    await postgres_store.get_or_create_settings(x_user_id)
    changes = body.model_dump(exclude_none=True)
    if not changes:
        return await postgres_store.get_settings(x_user_id)
    return await postgres_store.update_settings(x_user_id, **changes)


# ── Reconciliation ──


@app.post("/reconcile", response_model=SweepReport)
async def reconcile_now():
    """Run one reconciliation sweep immediately."""
    return await supervisor.run_sweep()


def run() -> None:
    """Serve the app with uvicorn using the configured bind address."""
    import uvicorn

    uvicorn.run("recapbot.main:app", host=settings.host, port=settings.port, log_config=None)
