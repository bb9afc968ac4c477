"""Bot lifecycle controller: schedules a recording bot for a calendar event.

Creation is idempotent per calendar event. A lookup runs first, and the
unique constraints on ``recall_bots.calendar_event_id`` and
``meetings.calendar_event_id`` settle concurrent callers: whoever inserts
the meeting first owns the provider call.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from recapbot import metrics
from recapbot.config import settings
from recapbot.integrations.recall_client import RecallAPIError, RecallClient
from recapbot.models.schemas import BotCreationOutcome, BotCreationResult, BotStatus, MeetingStatus
from recapbot.storage.postgres_store import CalendarEvent, PostgresStore
from recapbot.utils import Clock, as_utc, utcnow

logger = logging.getLogger(__name__)

BOT_CREATION_FAILED_PLACEHOLDER = "Failed to create recording bot"


class MissingPreconditionError(ValueError):
    """The calendar event cannot have a bot (no meeting link, recording off, ...)."""


def bot_display_name(title: str) -> str:
    """Name the bot shows in the call, derived from the event title."""
    return f"Meeting: {title}"


def compute_join_at(start_time: datetime, minutes_before: int) -> datetime:
    return as_utc(start_time) - timedelta(minutes=minutes_before)


class BotLifecycleController:
    """Creates Bot + Meeting pairs for events marked for recording."""

    def __init__(
        self,
        store: PostgresStore,
        recall: RecallClient,
        clock: Clock = utcnow,
        default_join_minutes: int | None = None,
    ) -> None:
        self.store = store
        self.recall = recall
        self.clock = clock
        self.default_join_minutes = default_join_minutes or settings.default_bot_join_minutes_before

    async def _join_minutes_for(self, user_id: int) -> int:
        user_settings = await self.store.get_settings(user_id)
        if user_settings and user_settings.bot_join_minutes_before:
            return user_settings.bot_join_minutes_before
        return self.default_join_minutes

    async def create_bot_for_event(self, event: CalendarEvent, user_id: int) -> BotCreationResult:
        """Schedule a recording bot for ``event`` and create its meeting record.

        Exactly one Bot and one Meeting exist afterwards, or none when the
        join time has already passed. A provider or database failure after
        the meeting is inserted leaves it ``failed`` with a placeholder
        transcript.

        Raises:
            MissingPreconditionError: the event has no meeting link or
                recording is not enabled for it.
        """
        if not event.meeting_link:
            raise MissingPreconditionError(f"Calendar event {event.id} does not have a meeting link")
        if not event.is_recording_enabled:
            raise MissingPreconditionError(f"Recording is not enabled for calendar event {event.id}")

        existing_bot = await self.store.get_bot_by_calendar_event_id(event.id)
        if existing_bot is not None:
            logger.info("Bot already exists for event %d - '%s'", event.id, event.title)
            return self._result(
                BotCreationOutcome.ALREADY_EXISTS,
                event,
                bot_id=existing_bot.id,
                recall_bot_id=existing_bot.recall_bot_id,
            )

        existing_meeting = await self.store.get_meeting_by_calendar_event_id(event.id)
        if existing_meeting is not None:
            logger.info(
                "Meeting %d already exists for event %d (status=%s); not retrying",
                existing_meeting.id, event.id, existing_meeting.status,
            )
            return self._result(BotCreationOutcome.ALREADY_EXISTS, event, meeting_id=existing_meeting.id)

        minutes_before = await self._join_minutes_for(user_id)
        join_at = compute_join_at(event.start_time, minutes_before)
        if join_at <= as_utc(self.clock()):
            logger.info("Skipping bot creation for past event %d - '%s'", event.id, event.title)
            return self._result(BotCreationOutcome.SKIPPED_PAST, event, join_at=join_at)

        logger.info("Setting up recording for event %d - '%s', bot joins at %s", event.id, event.title, join_at)

        meeting = await self.store.create_meeting(
            user_id=user_id,
            calendar_event_id=event.id,
            title=event.title,
            start_time=event.start_time,
            end_time=event.end_time,
            platform=event.platform,
            attendees=event.attendees,
            status=MeetingStatus.SCHEDULED,
        )
        if meeting is None:
            # A concurrent caller inserted the meeting first and owns the bot.
            return self._result(BotCreationOutcome.ALREADY_EXISTS, event, join_at=join_at)

        recall_bot_id = None
        try:
            recall_bot_id = await self.recall.create_bot(
                meeting_url=event.meeting_link,
                join_at=join_at,
                bot_name=bot_display_name(event.title),
            )
            bot = await self.store.create_bot(
                user_id=user_id,
                calendar_event_id=event.id,
                recall_bot_id=recall_bot_id,
                status=BotStatus.SCHEDULED,
            )
            if bot is None:
                return await self._link_existing_bot(event, meeting.id, recall_bot_id, join_at)
            await self.store.update_meeting(meeting.id, recall_bot_id=bot.id)
        except (RecallAPIError, SQLAlchemyError) as e:
            logger.error("Bot creation failed for event %d: %s", event.id, e)
            if recall_bot_id is not None:
                logger.error(
                    "Recall bot %s is scheduled but has no local record (meeting %d)", recall_bot_id, meeting.id
                )
            await self.store.update_meeting(
                meeting.id,
                status=MeetingStatus.FAILED,
                transcript=BOT_CREATION_FAILED_PLACEHOLDER,
            )
            logger.info("Meeting %d marked failed after bot creation error", meeting.id)
            return self._result(
                BotCreationOutcome.FAILED,
                event,
                join_at=join_at,
                meeting_id=meeting.id,
                recall_bot_id=recall_bot_id,
                error=str(e),
            )

        logger.info(
            "Created bot %d (recall=%s) for meeting %d, joining %d minutes before start",
            bot.id, recall_bot_id, meeting.id, minutes_before,
        )
        return self._result(
            BotCreationOutcome.CREATED,
            event,
            join_at=join_at,
            bot_id=bot.id,
            meeting_id=meeting.id,
            recall_bot_id=recall_bot_id,
        )

    async def _link_existing_bot(
        self, event: CalendarEvent, meeting_id: int, stray_recall_bot_id: str, join_at: datetime
    ) -> BotCreationResult:
        """Attach the meeting to the bot row that won the insert race."""
        existing_bot = await self.store.get_bot_by_calendar_event_id(event.id)
        logger.warning(
            "Recall bot %s for meeting %d is unused; event %d already has bot %s",
            stray_recall_bot_id, meeting_id, event.id,
            existing_bot.recall_bot_id if existing_bot else None,
        )
        if existing_bot is None:
            return self._result(BotCreationOutcome.ALREADY_EXISTS, event, join_at=join_at, meeting_id=meeting_id)

        await self.store.update_meeting(meeting_id, recall_bot_id=existing_bot.id)
        return self._result(
            BotCreationOutcome.ALREADY_EXISTS,
            event,
            join_at=join_at,
            meeting_id=meeting_id,
            bot_id=existing_bot.id,
            recall_bot_id=existing_bot.recall_bot_id,
        )

    async def set_recording(
        self, event_id: int, user_id: int, enabled: bool
    ) -> tuple[CalendarEvent, BotCreationResult | None]:
        """Toggle recording for an event owned by ``user_id``.

        Enabling schedules the bot. The flag is persisted before bot
        creation runs, so it stays saved when creation raises.

        Raises:
            LookupError: the event does not exist.
            PermissionError: the event belongs to another user's calendar.
            MissingPreconditionError: recording was enabled but the event has
                no meeting link.
        """
        event = await self.store.get_calendar_event(event_id)
        if event is None:
            raise LookupError(f"Calendar event {event_id} not found")

        account = await self.store.get_google_account(event.google_account_id)
        if account is None or account.user_id != user_id:
            raise PermissionError(f"Calendar event {event_id} does not belong to user {user_id}")

        event = await self.store.update_calendar_event(event_id, is_recording_enabled=enabled)
        if not enabled:
            return event, None

        result = await self.create_bot_for_event(event, user_id)
        return event, result

    @staticmethod
    def _result(outcome: BotCreationOutcome, event: CalendarEvent, **fields) -> BotCreationResult:
        metrics.bots_created_total.labels(outcome=outcome.value).inc()
        return BotCreationResult(outcome=outcome, calendar_event_id=event.id, **fields)
