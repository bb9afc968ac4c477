"""Pydantic models for data flowing through recapbot.

Covers the application status enumerations, the lenient view of the
Recall.ai bot snapshot, and the result objects returned by the bot
lifecycle components.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Status Enumerations ──


class BotStatus(str, Enum):
    """Application-level status of a recording bot."""

    SCHEDULED = "scheduled"
    JOINED = "joined"  # legacy rows; ranked with JOINING
    JOINING = "joining"
    RECORDING = "recording"
    COMPLETED = "completed"
    FAILED = "failed"


class MeetingStatus(str, Enum):
    """Application-level status of a meeting record."""

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class ContentType(str, Enum):
    FOLLOW_UP_EMAIL = "follow_up_email"
    SOCIAL_POST = "social_post"


class ContentStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class MeetingPlatform(str, Enum):
    ZOOM = "zoom"
    TEAMS = "teams"
    MEET = "meet"


# ── Recall.ai Snapshot Models ──


def _lenient_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


class StatusChange(BaseModel):
    """One entry of the provider's append-only status history."""

    model_config = ConfigDict(extra="ignore")

    code: str | None = None
    sub_code: str | None = None
    created_at: datetime | None = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, value: Any) -> datetime | None:
        return _lenient_datetime(value)

    @field_validator("code", "sub_code", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None


class RecordingSnapshot(BaseModel):
    """A recording attached to a bot, with its transcription sub-state."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    status: Any = None
    completed_at: datetime | None = None
    transcription_started_at: datetime | None = None
    transcription_completed_at: datetime | None = None

    @field_validator(
        "completed_at", "transcription_started_at", "transcription_completed_at", mode="before"
    )
    @classmethod
    def _parse_timestamps(cls, value: Any) -> datetime | None:
        return _lenient_datetime(value)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str | None:
        return None if value is None else str(value)


class TranscriptionOptions(BaseModel):
    model_config = ConfigDict(extra="ignore")

    provider: str | None = None

    @field_validator("provider", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None


class BotSnapshot(BaseModel):
    """Current provider view of a bot.

    Sub-fields that arrive with an unexpected type degrade to empty values
    rather than failing validation; the provider's shape is not fixed.
    """

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    status_changes: list[StatusChange] = Field(default_factory=list)
    recordings: list[RecordingSnapshot] = Field(default_factory=list)
    transcription_options: TranscriptionOptions | None = None

    @field_validator("status_changes", "recordings", mode="before")
    @classmethod
    def _only_lists(cls, value: Any) -> list:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    @field_validator("transcription_options", mode="before")
    @classmethod
    def _only_dicts(cls, value: Any) -> dict | None:
        return value if isinstance(value, dict) else None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str | None:
        return None if value is None else str(value)

    @property
    def latest_code(self) -> str | None:
        """Code of the most recent status change, if any."""
        if not self.status_changes:
            return None
        return self.status_changes[-1].code

    @property
    def first_recording(self) -> RecordingSnapshot | None:
        return self.recordings[0] if self.recordings else None

    @property
    def transcription_disabled(self) -> bool:
        return bool(self.transcription_options and self.transcription_options.provider == "none")


# ── Lifecycle Results ──


class BotCreationOutcome(str, Enum):
    """What create_bot_for_event did."""

    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    SKIPPED_PAST = "skipped_past"
    FAILED = "failed"


class BotCreationResult(BaseModel):
    """Result of one create_bot_for_event call."""

    outcome: BotCreationOutcome
    calendar_event_id: int
    join_at: datetime | None = None
    bot_id: int | None = None
    meeting_id: int | None = None
    recall_bot_id: str | None = None
    error: str | None = None


class ReadinessState(str, Enum):
    READY = "ready"
    NOT_READY = "not_ready"
    TRANSCRIPTION_DISABLED = "transcription_disabled"


class ReadinessDecision(BaseModel):
    """Outcome of the transcript readiness gates for one snapshot."""

    state: ReadinessState
    reason: str = ""
    recording_id: str | None = None

    @property
    def ready(self) -> bool:
        return self.state == ReadinessState.READY


class TranscriptOutcome(str, Enum):
    FETCHED = "fetched"
    NOT_READY = "not_ready"
    TRANSCRIPTION_DISABLED = "transcription_disabled"
    ALREADY_STORED = "already_stored"
    SKIPPED = "skipped"


class TranscriptFetchResult(BaseModel):
    outcome: TranscriptOutcome
    meeting_id: int | None = None
    transcript: str | None = None
    reason: str = ""


class SweepReport(BaseModel):
    """Summary of one reconciliation sweep."""

    started_at: datetime
    finished_at: datetime | None = None
    skipped: bool = False
    active_bots: int = 0
    transitions: int = 0
    completed_bots: int = 0
    transcripts_fetched: int = 0
    errors: int = 0


# ── API Payloads ──


class RecordingToggle(BaseModel):
    is_recording_enabled: bool


class SettingsUpdate(BaseModel):
    bot_join_minutes_before: int | None = Field(default=None, ge=1, le=30)
    auto_join_new_events: bool | None = None


class SocialPostRequest(BaseModel):
    platform: str = Field(description="linkedin | facebook")
    prompt: str | None = None
    automation_id: int | None = None


class SocialPostDraft(BaseModel):
    content: str
    image_prompt: str = "professional business meeting"


class CalendarEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    start_time: datetime
    end_time: datetime
    meeting_link: str | None = None
    platform: str | None = None
    is_recording_enabled: bool


class RecordingToggleResponse(BaseModel):
    event: CalendarEventRead
    bot: BotCreationResult | None = None
    detail: str | None = None


class MeetingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    calendar_event_id: int | None = None
    title: str
    start_time: datetime
    end_time: datetime | None = None
    platform: str | None = None
    status: str
    transcript: str | None = None
    attendees: Any = None


class MeetingContentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    meeting_id: int
    type: str
    platform: str | None = None
    automation_id: int | None = None
    content: str
    status: str
    created_at: datetime


class SettingsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    bot_join_minutes_before: int
    auto_join_new_events: bool


class UserCreate(BaseModel):
    email: str
    name: str
    picture: str | None = None


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    picture: str | None = None


class GoogleAccountCreate(BaseModel):
    """Tokens from a completed Google OAuth exchange."""

    email: str
    access_token: str
    refresh_token: str
    expires_at: datetime
    picture: str | None = None


class GoogleAccountRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    picture: str | None = None
    is_connected: bool


class CalendarSyncResult(BaseModel):
    """Sync outcome for one connected calendar account."""

    account: str
    success: bool
    events_synced: int = 0
    error: str | None = None


class AutomationCreate(BaseModel):
    name: str = Field(min_length=1)
    platform: str = Field(description="linkedin | facebook")
    prompt: str = Field(min_length=1)


class AutomationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    platform: str
    prompt: str
    is_active: bool
