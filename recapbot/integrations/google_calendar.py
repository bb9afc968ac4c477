"""Google Calendar integration: reads upcoming events from a primary calendar."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from recapbot.config import settings
from recapbot.retry import retry_on_transport_error
from recapbot.utils import as_utc

logger = logging.getLogger(__name__)


class GoogleCalendarError(Exception):
    """A Google Calendar call failed (non-2xx response or transport error)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _rfc3339(value: datetime) -> str:
    return as_utc(value).isoformat().replace("+00:00", "Z")


class GoogleCalendarClient:
    """Async client for the Calendar v3 events API."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.google_calendar_api_url).rstrip("/")
        self._max_attempts = max_attempts
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.google_timeout_seconds,
            transport=transport,
        )

    async def list_events(
        self,
        access_token: str,
        time_min: datetime,
        time_max: datetime,
        max_results: int | None = None,
    ) -> list[dict[str, Any]]:
        """List single (expanded) events on the primary calendar in a window.

        Args:
            access_token: OAuth access token of the connected account
            time_min: Window start
            time_max: Window end
            max_results: Page size; defaults to CALENDAR_SYNC_MAX_RESULTS

        Returns:
            The raw event resources, ordered by start time
        """
        params = {
            "maxResults": max_results or settings.calendar_sync_max_results,
            "timeMin": _rfc3339(time_min),
            "timeMax": _rfc3339(time_max),
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        send = retry_on_transport_error(self._max_attempts)(self.client.get)
        try:
            response = await send(
                "/calendars/primary/events",
                params=params,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            logger.error("Google Calendar request failed: %s", e)
            raise GoogleCalendarError(f"Google Calendar request failed: {e}") from e

        if response.is_error:
            logger.error("Google Calendar returned %d: %s", response.status_code, response.text[:500])
            raise GoogleCalendarError(
                f"Google Calendar returned {response.status_code}", status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise GoogleCalendarError("Invalid JSON from Google Calendar") from e
        items = data.get("items") if isinstance(data, dict) else None
        return [item for item in items or [] if isinstance(item, dict)]

    async def close(self) -> None:
        await self.client.aclose()
