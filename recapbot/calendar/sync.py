"""Pulls upcoming events from connected Google calendars into local storage.

Only timed events with a joinable meeting link are kept. Re-syncing an
event refreshes its details but never touches its recording flag.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from recapbot.calendar.links import extract_meeting_link
from recapbot.config import settings
from recapbot.integrations.google_calendar import GoogleCalendarClient, GoogleCalendarError
from recapbot.models.schemas import CalendarSyncResult
from recapbot.storage.postgres_store import GoogleAccount, PostgresStore
from recapbot.utils import Clock, as_utc, utcnow

logger = logging.getLogger(__name__)

UNTITLED_EVENT = "Untitled event"


def _parse_event_time(value: Any) -> datetime | None:
    if not isinstance(value, dict) or not isinstance(value.get("dateTime"), str):
        return None
    try:
        return as_utc(datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00")))
    except ValueError:
        return None


def parse_attendees(raw: Any) -> list[dict[str, Any]]:
    attendees = []
    for attendee in raw if isinstance(raw, list) else []:
        email = attendee.get("email") if isinstance(attendee, dict) else None
        if not email:
            continue
        attendees.append({
            "email": email,
            "name": attendee.get("displayName") or email.split("@")[0],
            "response_status": attendee.get("responseStatus"),
        })
    return attendees


def parse_google_event(item: dict[str, Any]) -> dict[str, Any] | None:
    """Map a Calendar v3 event resource to calendar event fields.

    Returns None for events that cannot be recorded: all-day events,
    unparseable times, or no meeting link.
    """
    start_time = _parse_event_time(item.get("start"))
    end_time = _parse_event_time(item.get("end"))
    if start_time is None or end_time is None:
        logger.debug("Skipping event %s without a usable start/end time", item.get("id"))
        return None

    meeting_link, platform = extract_meeting_link(
        hangout_link=item.get("hangoutLink"),
        description=item.get("description"),
        location=item.get("location"),
    )
    if meeting_link is None:
        return None

    return {
        "title": item.get("summary") or UNTITLED_EVENT,
        "description": item.get("description"),
        "start_time": start_time,
        "end_time": end_time,
        "meeting_link": meeting_link,
        "platform": platform.value,
        "attendees": parse_attendees(item.get("attendees")),
    }


class CalendarSyncService:
    """Syncs each connected account's upcoming events."""

    def __init__(
        self,
        store: PostgresStore,
        google: GoogleCalendarClient,
        clock: Clock = utcnow,
        window_days: int | None = None,
    ) -> None:
        self.store = store
        self.google = google
        self.clock = clock
        self.window_days = window_days or settings.calendar_sync_days

    async def sync_account(self, account: GoogleAccount) -> int:
        """Sync one account and return the number of events stored.

        Raises:
            GoogleCalendarError: the token has expired or the API call failed.
        """
        now = as_utc(self.clock())
        if as_utc(account.expires_at) <= now:
            raise GoogleCalendarError("Access token expired; reconnect the account")

        items = await self.google.list_events(account.access_token, now, now + timedelta(days=self.window_days))
        synced = 0
        for item in items:
            if not item.get("id"):
                continue
            fields = parse_google_event(item)
            if fields is None:
                continue
            await self.store.upsert_calendar_event(account.id, str(item["id"]), **fields)
            synced += 1

        logger.info("Synced %d of %d events for %s", synced, len(items), account.email)
        return synced

    async def sync_user(self, user_id: int) -> list[CalendarSyncResult]:
        """Sync every connected account of a user; one failing account does not stop the rest."""
        results = []
        for account in await self.store.get_google_accounts_by_user_id(user_id):
            try:
                synced = await self.sync_account(account)
            except GoogleCalendarError as e:
                logger.error("Calendar sync failed for %s: %s", account.email, e)
                results.append(CalendarSyncResult(account=account.email, success=False, error=str(e)))
                continue
            results.append(CalendarSyncResult(account=account.email, success=True, events_synced=synced))
        return results
