"""PostgreSQL persistence gateway for recapbot.

Stores users, calendar events, recording bots, meetings, and the content
generated from them. Uses SQLAlchemy async with asyncpg.

The store carries no business rules. The two guarantees it does provide
are enforced by the database itself: at most one bot and one meeting per
calendar event (unique constraints, surfaced as compare-and-create), and
a write-once meeting transcript (conditional update).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    select,
    text,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from recapbot.config import settings
from recapbot.models.schemas import MeetingStatus

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ── ORM Base ──


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all tables."""
    pass


# ── Tables ──


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(320), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    picture = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)


class UserSettings(Base):
    """Per-user preferences consumed by the bot lifecycle."""

    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    bot_join_minutes_before = Column(Integer, nullable=False, default=5)
    auto_join_new_events = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)


class GoogleAccount(Base):
    __tablename__ = "google_accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String(320), nullable=False)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    picture = Column(Text, nullable=True)
    is_connected = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)


class CalendarEvent(Base):
    """One calendar occurrence synced from a connected calendar account."""

    __tablename__ = "calendar_events"
    __table_args__ = (UniqueConstraint("google_account_id", "event_id", name="uq_calendar_events_account_event"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    google_account_id = Column(
        Integer, ForeignKey("google_accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_id = Column(String(255), nullable=False)  # external calendar event id
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    meeting_link = Column(Text, nullable=True)
    platform = Column(String(20), nullable=True)  # zoom, teams, meet
    attendees = Column(JSON, nullable=True)
    is_recording_enabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)


class RecallBot(Base):
    """Application record of one Recall.ai bot instance."""

    __tablename__ = "recall_bots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    calendar_event_id = Column(
        Integer, ForeignKey("calendar_events.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    recall_bot_id = Column(String(255), nullable=False, unique=True)
    status = Column(String(20), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)


class Meeting(Base):
    """Durable record of a single recorded occurrence."""

    __tablename__ = "meetings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    calendar_event_id = Column(
        Integer, ForeignKey("calendar_events.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    recall_bot_id = Column(Integer, ForeignKey("recall_bots.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(500), nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    platform = Column(String(20), nullable=True)
    transcript = Column(Text, nullable=True)
    attendees = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)


class Automation(Base):
    """A saved prompt that turns meetings into social posts."""

    __tablename__ = "automations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    platform = Column(String(20), nullable=False)  # linkedin, facebook
    prompt = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)


class MeetingContent(Base):
    """Generated follow-up email or social post attached to a meeting."""

    __tablename__ = "meeting_contents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    meeting_id = Column(Integer, ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(30), nullable=False)  # follow_up_email, social_post
    platform = Column(String(20), nullable=True)
    automation_id = Column(Integer, ForeignKey("automations.id", ondelete="SET NULL"), nullable=True)
    content = Column(Text, nullable=False)
    image_url = Column(Text, nullable=True)
    status = Column(String(20), nullable=False)  # draft, published
    published_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)


# ── Store Class ──


class PostgresStore:
    """Async persistence gateway used by every recapbot component."""

    def __init__(self, url: str | None = None) -> None:
        self._url = url or settings.postgres_url
        engine_kwargs: dict[str, Any] = {"echo": False}
        if not self._url.startswith("sqlite"):
            engine_kwargs.update(pool_size=10, max_overflow=20)
        self._engine = create_async_engine(self._url, **engine_kwargs)
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)

    async def init_db(self) -> None:
        """Create all tables if they don't exist."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema initialized")

    async def disconnect(self) -> None:
        """Dispose of the engine connection pool."""
        await self._engine.dispose()
        logger.info("Database connection closed")

    def session(self) -> AsyncSession:
        """Get a new async session."""
        return self._session_factory()

    # ── Generic helpers ──

    async def _add(self, row: Base) -> Base:
        async with self.session() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return row

    async def _add_unique(self, row: Base) -> Base | None:
        """Insert a row, returning None when a unique constraint rejects it."""
        async with self.session() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return None
            await session.refresh(row)
            return row

    async def _get(self, model: type[Base], row_id: int) -> Any:
        async with self.session() as session:
            return await session.get(model, row_id)

    async def _first(self, stmt) -> Any:
        async with self.session() as session:
            result = await session.execute(stmt)
            return result.scalars().first()

    async def _all(self, stmt) -> list[Any]:
        async with self.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def _update(self, model: type[Base], row_id: int, data: dict[str, Any]) -> Any:
        async with self.session() as session:
            row = await session.get(model, row_id)
            if row is None:
                raise LookupError(f"{model.__name__} {row_id} not found")
            for key, value in data.items():
                if not hasattr(row, key):
                    raise AttributeError(f"{model.__name__} has no column '{key}'")
                setattr(row, key, value)
            await session.commit()
            await session.refresh(row)
            return row

    # ── Users & Settings ──

    async def create_user(self, email: str, name: str, picture: str | None = None) -> User:
        return await self._add(User(email=email, name=name, picture=picture))

    async def get_user(self, user_id: int) -> User | None:
        return await self._get(User, user_id)

    async def get_user_by_email(self, email: str) -> User | None:
        return await self._first(select(User).where(User.email == email))

    async def get_settings(self, user_id: int) -> UserSettings | None:
        return await self._first(select(UserSettings).where(UserSettings.user_id == user_id))

    async def create_settings(
        self, user_id: int, bot_join_minutes_before: int = 5, auto_join_new_events: bool = True
    ) -> UserSettings:
        return await self._add(UserSettings(
            user_id=user_id,
            bot_join_minutes_before=bot_join_minutes_before,
            auto_join_new_events=auto_join_new_events,
        ))

    async def update_settings(self, user_id: int, **data: Any) -> UserSettings:
        existing = await self.get_settings(user_id)
        if existing is None:
            raise LookupError(f"Settings for user {user_id} not found")
        return await self._update(UserSettings, existing.id, data)

    async def get_or_create_settings(self, user_id: int) -> UserSettings:
        existing = await self.get_settings(user_id)
        if existing is not None:
            return existing
        created = await self._add_unique(UserSettings(user_id=user_id))
        return created or await self.get_settings(user_id)

    # ── Calendar ──

    async def create_google_account(
        self,
        user_id: int,
        email: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        picture: str | None = None,
    ) -> GoogleAccount:
        return await self._add(GoogleAccount(
            user_id=user_id,
            email=email,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            picture=picture,
        ))

    async def get_google_account(self, account_id: int) -> GoogleAccount | None:
        return await self._get(GoogleAccount, account_id)

    async def get_google_accounts_by_user_id(self, user_id: int) -> list[GoogleAccount]:
        return await self._all(
            select(GoogleAccount)
            .where(GoogleAccount.user_id == user_id, GoogleAccount.is_connected.is_(True))
            .order_by(GoogleAccount.id)
        )

    async def create_calendar_event(self, **data: Any) -> CalendarEvent:
        return await self._add(CalendarEvent(**data))

    async def get_calendar_event(self, event_id: int) -> CalendarEvent | None:
        return await self._get(CalendarEvent, event_id)

    async def update_calendar_event(self, event_id: int, **data: Any) -> CalendarEvent:
        return await self._update(CalendarEvent, event_id, data)

    async def upsert_calendar_event(self, google_account_id: int, event_id: str, **data: Any) -> CalendarEvent:
        """Create or refresh a synced event, keyed on its external calendar id.

        The recording flag is never overwritten by a sync.
        """
        data.pop("is_recording_enabled", None)
        existing = await self._first(
            select(CalendarEvent).where(
                CalendarEvent.google_account_id == google_account_id,
                CalendarEvent.event_id == event_id,
            )
        )
        if existing is not None:
            return await self._update(CalendarEvent, existing.id, data)
        return await self.create_calendar_event(
            google_account_id=google_account_id,
            event_id=event_id,
            is_recording_enabled=False,
            **data,
        )

    async def get_upcoming_calendar_events_by_user_id(
        self, user_id: int, now: datetime | None = None
    ) -> list[CalendarEvent]:
        now = now or _now()
        stmt = (
            select(CalendarEvent)
            .join(GoogleAccount, GoogleAccount.id == CalendarEvent.google_account_id)
            .where(GoogleAccount.user_id == user_id, CalendarEvent.start_time >= now)
            .order_by(CalendarEvent.start_time)
        )
        return await self._all(stmt)

    # ── Recall Bots ──

    async def get_bot(self, bot_id: int) -> RecallBot | None:
        return await self._get(RecallBot, bot_id)

    async def get_bot_by_calendar_event_id(self, calendar_event_id: int) -> RecallBot | None:
        return await self._first(select(RecallBot).where(RecallBot.calendar_event_id == calendar_event_id))

    async def create_bot(
        self, user_id: int, calendar_event_id: int, recall_bot_id: str, status: str
    ) -> RecallBot | None:
        """Insert a bot unless the calendar event already has one.

        Returns None when the unique constraint on the calendar event rejects
        the insert; callers treat that as "someone else created it".
        """
        bot = await self._add_unique(RecallBot(
            user_id=user_id,
            calendar_event_id=calendar_event_id,
            recall_bot_id=recall_bot_id,
            status=str(status.value if hasattr(status, "value") else status),
        ))
        if bot is None:
            logger.info("Bot for calendar event %d already exists; insert skipped", calendar_event_id)
        return bot

    async def update_bot(self, bot_id: int, **data: Any) -> RecallBot:
        if "status" in data and hasattr(data["status"], "value"):
            data["status"] = data["status"].value
        return await self._update(RecallBot, bot_id, data)

    async def list_bots_by_status(self, statuses: Iterable[str]) -> list[RecallBot]:
        values = [s.value if hasattr(s, "value") else s for s in statuses]
        return await self._all(select(RecallBot).where(RecallBot.status.in_(values)).order_by(RecallBot.id))

    # ── Meetings ──

    async def get_meeting(self, meeting_id: int) -> Meeting | None:
        return await self._get(Meeting, meeting_id)

    async def get_meetings_by_user_id(self, user_id: int) -> list[Meeting]:
        return await self._all(
            select(Meeting).where(Meeting.user_id == user_id).order_by(Meeting.start_time.desc())
        )

    async def get_meeting_by_calendar_event_id(self, calendar_event_id: int) -> Meeting | None:
        return await self._first(select(Meeting).where(Meeting.calendar_event_id == calendar_event_id))

    async def create_meeting(self, **data: Any) -> Meeting | None:
        """Insert a meeting unless the calendar event already has one (returns None)."""
        if hasattr(data.get("status"), "value"):
            data["status"] = data["status"].value
        meeting = await self._add_unique(Meeting(**data))
        if meeting is None:
            logger.info("Meeting for calendar event %s already exists; insert skipped", data.get("calendar_event_id"))
        return meeting

    async def update_meeting(self, meeting_id: int, **data: Any) -> Meeting:
        if "status" in data and hasattr(data["status"], "value"):
            data["status"] = data["status"].value
        return await self._update(Meeting, meeting_id, data)

    async def store_meeting_transcript(self, meeting_id: int, transcript: str) -> bool:
        """Write transcript and completed status in one statement, only if no transcript exists.

        Returns True when the row was written.
        """
        async with self.session() as session:
            result = await session.execute(
                update(Meeting)
                .where(Meeting.id == meeting_id, Meeting.transcript.is_(None))
                .values(
                    transcript=transcript,
                    status=MeetingStatus.COMPLETED.value,
                    updated_at=_now(),
                )
            )
            await session.commit()
            return result.rowcount == 1

    # ── Meeting Contents ──

    async def create_meeting_content(self, **data: Any) -> MeetingContent:
        for key in ("type", "status"):
            if hasattr(data.get(key), "value"):
                data[key] = data[key].value
        return await self._add(MeetingContent(**data))

    async def get_meeting_contents_by_meeting_id(self, meeting_id: int) -> list[MeetingContent]:
        return await self._all(
            select(MeetingContent).where(MeetingContent.meeting_id == meeting_id).order_by(MeetingContent.id)
        )

    # ── Automations ──

    async def create_automation(self, user_id: int, name: str, platform: str, prompt: str) -> Automation:
        return await self._add(Automation(user_id=user_id, name=name, platform=platform, prompt=prompt))

    async def get_automation(self, automation_id: int) -> Automation | None:
        return await self._get(Automation, automation_id)

    async def get_automations_by_user_id(self, user_id: int) -> list[Automation]:
        return await self._all(select(Automation).where(Automation.user_id == user_id).order_by(Automation.id))

    async def get_active_automations_by_user_id(self, user_id: int) -> list[Automation]:
        return await self._all(
            select(Automation)
            .where(Automation.user_id == user_id, Automation.is_active.is_(True))
            .order_by(Automation.id)
        )

    # ── Health ──

    async def health_check(self) -> bool:
        """Return True if the database is reachable."""
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.debug("Database health check failed: %s", e)
            return False
