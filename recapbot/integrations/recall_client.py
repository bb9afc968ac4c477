"""Recall.ai integration: bot scheduling, status snapshots, transcripts.

Recall.ai deploys bots to Zoom, Teams, and Google Meet for recording and
transcription. The API is treated as eventually consistent: bot status,
recording state and transcript availability are reported independently
and the transcript representation varies between endpoints.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from recapbot import metrics
from recapbot.config import settings
from recapbot.models.schemas import BotSnapshot
from recapbot.retry import retry_on_transport_error
from recapbot.utils import as_utc

logger = logging.getLogger(__name__)


class RecallAPIError(Exception):
    """A Recall.ai call failed (non-2xx response or transport error)."""

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def format_join_at(join_at: datetime) -> str:
    """ISO-8601 UTC timestamp with a trailing Z, as Recall.ai expects."""
    return as_utc(join_at).isoformat().replace("+00:00", "Z")


class RecallClient:
    """Async client for the Recall.ai bot API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        max_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = settings.recall_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.recall_api_url).rstrip("/")
        self._max_attempts = max_attempts
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Token {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout or settings.recall_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> RecallClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ── Transport ──

    async def _request(
        self, operation: str, method: str, path: str, payload: dict | None = None
    ) -> httpx.Response:
        if not self.api_key:
            raise RecallAPIError("Recall.ai API key not configured")

        send = retry_on_transport_error(self._max_attempts)(self.client.request)
        try:
            response = await send(method, path, json=payload)
        except httpx.HTTPError as e:
            metrics.provider_errors_total.labels(operation=operation, status="transport").inc()
            logger.error("Recall.ai %s %s failed: %s", method, path, e)
            raise RecallAPIError(f"Recall.ai {operation} failed: {e}") from e

        if response.is_error:
            metrics.provider_errors_total.labels(operation=operation, status=str(response.status_code)).inc()
            logger.error(
                "Recall.ai %s %s returned %d: %s",
                method, path, response.status_code, response.text[:500],
            )
            raise RecallAPIError(
                f"Recall.ai {operation} returned {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )
        return response

    # ── Bots ──

    async def create_bot(
        self,
        meeting_url: str,
        join_at: datetime,
        bot_name: str,
        transcription_options: dict | None = None,
    ) -> str:
        """Schedule a bot to join a meeting.

        Args:
            meeting_url: URL of the meeting (Zoom, Teams, Google Meet)
            join_at: When the bot should join
            bot_name: Display name shown to meeting participants
            transcription_options: Overrides the configured transcription provider

        Returns:
            The Recall.ai bot id
        """
        payload = {
            "bot_name": bot_name,
            "meeting_url": meeting_url,
            "join_at": format_join_at(join_at),
            "transcription_options": transcription_options or {
                "provider": settings.recall_transcription_provider,
                "use_separate_streams_when_available": True,
            },
            "recording_mode": settings.recall_recording_mode,
        }

        logger.info("Scheduling Recall.ai bot '%s' at %s", bot_name, payload["join_at"])
        response = await self._request("create_bot", "POST", "/bot/", payload)
        data = self._json(response, "create_bot")
        bot_id = data.get("id") if isinstance(data, dict) else None
        if not bot_id:
            raise RecallAPIError("Recall.ai create_bot response has no bot id", body=response.text)
        logger.info("Recall.ai bot scheduled: %s", bot_id)
        return str(bot_id)

    async def get_bot_status(self, bot_id: str) -> BotSnapshot:
        """Fetch the provider's current view of a bot."""
        response = await self._request("get_bot", "GET", f"/bot/{bot_id}/")
        data = self._json(response, "get_bot")
        if not isinstance(data, dict):
            raise RecallAPIError(f"Unexpected bot payload for {bot_id}", body=response.text)
        snapshot = BotSnapshot.model_validate(data)
        logger.debug(
            "Bot %s snapshot: latest=%s recordings=%d",
            bot_id, snapshot.latest_code, len(snapshot.recordings),
        )
        return snapshot

    # ── Transcripts ──

    @staticmethod
    def transcript_endpoints(bot_id: str, recording_id: str | None = None) -> list[str]:
        """Candidate transcript endpoints, in the order they should be tried."""
        endpoints = [f"/bot/{bot_id}/transcript/", f"/bot/{bot_id}/transcript"]
        if recording_id:
            endpoints.append(f"/recording/{recording_id}/transcript/")
        return endpoints

    async def get_transcript_payload(self, path: str) -> Any:
        """GET a transcript endpoint and return its body.

        Returns decoded JSON when the body parses, otherwise the raw text.
        """
        response = await self._request("get_transcript", "GET", path)
        try:
            return response.json()
        except ValueError:
            return response.text

    # ── Helpers ──

    @staticmethod
    def _json(response: httpx.Response, operation: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise RecallAPIError(
                f"Invalid JSON from Recall.ai {operation}", status_code=response.status_code, body=response.text
            ) from e

    async def health_check(self) -> bool:
        """Check if the Recall.ai API is reachable with the configured key."""
        if not self.api_key:
            return False
        try:
            response = await self.client.get("/bot/", params={"page_size": 1})
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.debug("Recall.ai health check failed: %s", e)
            return False

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
