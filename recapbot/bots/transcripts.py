"""Transcript readiness heuristics and shape-tolerant transcript extraction.

Recall.ai reports recording completion and transcript availability
independently, and transcript bodies come back in several shapes depending
on the endpoint. Readiness is decided from the bot snapshot with two
quiescence windows; extraction tries the known shapes in a fixed order.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from recapbot import metrics
from recapbot.config import settings
from recapbot.integrations.recall_client import RecallAPIError, RecallClient
from recapbot.models.schemas import (
    BotSnapshot,
    BotStatus,
    ReadinessDecision,
    ReadinessState,
    TranscriptFetchResult,
    TranscriptOutcome,
)
from recapbot.storage.postgres_store import Meeting, PostgresStore, RecallBot
from recapbot.utils import Clock, as_utc, utcnow

logger = logging.getLogger(__name__)


# ── Shape Extraction ──


def _clean(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _segment_text(segment: Any) -> str | None:
    if isinstance(segment, str):
        return _clean(segment)
    if not isinstance(segment, dict):
        return None
    for key in ("text", "content", "transcript"):
        text = _clean(segment.get(key))
        if text:
            return text
    words = segment.get("words")
    if isinstance(words, list):
        return _clean(" ".join(
            w["text"].strip() for w in words
            if isinstance(w, dict) and isinstance(w.get("text"), str) and w["text"].strip()
        ))
    return None


def _join_segments(segments: Any) -> str | None:
    if not isinstance(segments, list):
        return None
    pieces = [text for text in map(_segment_text, segments) if text]
    return " ".join(pieces) or None


def _from_string(payload: Any) -> str | None:
    return _clean(payload)


def _field(name: str) -> Callable[[Any], str | None]:
    def extract(payload: Any) -> str | None:
        if isinstance(payload, dict):
            return _clean(payload.get(name))
        return None

    extract.__name__ = f"_from_{name}"
    return extract


def _from_segments(payload: Any) -> str | None:
    return _join_segments(payload)


def _from_data_string(payload: Any) -> str | None:
    if isinstance(payload, dict):
        return _clean(payload.get("data"))
    return None


def _from_data_segments(payload: Any) -> str | None:
    if isinstance(payload, dict):
        return _join_segments(payload.get("data"))
    return None


TRANSCRIPT_EXTRACTORS: tuple[Callable[[Any], str | None], ...] = (
    _from_string,
    _field("transcript"),
    _field("text"),
    _field("content"),
    _from_segments,
    _from_data_string,
    _from_data_segments,
)


def extract_transcript(payload: Any) -> str | None:
    """Return transcript text from any supported payload shape, or None.

    Never raises; unrecognized or empty payloads yield None.
    """
    for extractor in TRANSCRIPT_EXTRACTORS:
        text = extractor(payload)
        if text:
            return text
    return None


# ── Readiness Evaluator ──


class TranscriptReadinessEvaluator:
    """Decides when a completed bot's transcript can be fetched, and fetches it."""

    def __init__(
        self,
        store: PostgresStore,
        recall: RecallClient,
        clock: Clock = utcnow,
        transcript_quiescence: timedelta | None = None,
        recording_quiescence: timedelta | None = None,
    ) -> None:
        self.store = store
        self.recall = recall
        self.clock = clock
        self.transcript_quiescence = transcript_quiescence or timedelta(
            minutes=settings.transcript_quiescence_minutes
        )
        self.recording_quiescence = recording_quiescence or timedelta(
            minutes=settings.recording_quiescence_minutes
        )

    def check_readiness(self, snapshot: BotSnapshot, now: datetime | None = None) -> ReadinessDecision:
        """Apply the readiness gates to a bot snapshot.

        Args:
            snapshot: Current provider view of the bot
            now: Evaluation time; defaults to the evaluator's clock

        Returns:
            A decision; ``transcription_disabled`` is final for this bot.
        """
        now = as_utc(now or self.clock())

        recording = snapshot.first_recording
        if recording is None:
            return ReadinessDecision(state=ReadinessState.NOT_READY, reason="no recordings yet")

        if snapshot.transcription_disabled:
            return ReadinessDecision(
                state=ReadinessState.TRANSCRIPTION_DISABLED,
                reason="transcription provider is 'none'",
                recording_id=recording.id,
            )

        if recording.transcription_completed_at is not None:
            elapsed = now - as_utc(recording.transcription_completed_at)
            if elapsed < self.transcript_quiescence:
                return ReadinessDecision(
                    state=ReadinessState.NOT_READY,
                    reason=f"transcription completed {elapsed.total_seconds():.0f}s ago",
                    recording_id=recording.id,
                )
            return ReadinessDecision(state=ReadinessState.READY, recording_id=recording.id)

        if recording.completed_at is None:
            return ReadinessDecision(
                state=ReadinessState.NOT_READY,
                reason="recording has not finished",
                recording_id=recording.id,
            )

        elapsed = now - as_utc(recording.completed_at)
        if elapsed < self.recording_quiescence:
            return ReadinessDecision(
                state=ReadinessState.NOT_READY,
                reason=f"recording completed {elapsed.total_seconds():.0f}s ago",
                recording_id=recording.id,
            )
        return ReadinessDecision(state=ReadinessState.READY, recording_id=recording.id)

    async def attempt_transcript_fetch(self, bot: RecallBot, meeting: Meeting) -> TranscriptFetchResult:
        """Try once to fetch and store the transcript for a completed bot.

        Endpoint failures are not raised; the attempt is reported as
        ``not_ready`` and the next sweep retries it. A failure reading the
        bot snapshot propagates as RecallAPIError.
        """
        if bot.status != BotStatus.COMPLETED.value:
            return self._result(TranscriptOutcome.SKIPPED, meeting, reason=f"bot status is {bot.status}")
        if meeting.transcript is not None:
            return self._result(TranscriptOutcome.ALREADY_STORED, meeting)

        snapshot = await self.recall.get_bot_status(bot.recall_bot_id)
        decision = self.check_readiness(snapshot)

        if decision.state == ReadinessState.TRANSCRIPTION_DISABLED:
            logger.error(
                "Transcription is disabled for bot %s (meeting %d); no transcript will be produced",
                bot.recall_bot_id, meeting.id,
            )
            return self._result(TranscriptOutcome.TRANSCRIPTION_DISABLED, meeting, reason=decision.reason)

        if not decision.ready:
            logger.info("Transcript for meeting %d not ready: %s", meeting.id, decision.reason)
            return self._result(TranscriptOutcome.NOT_READY, meeting, reason=decision.reason)

        transcript = await self._fetch_from_endpoints(bot.recall_bot_id, decision.recording_id)
        if transcript is None:
            logger.warning("No transcript content found for bot %s, will retry", bot.recall_bot_id)
            return self._result(TranscriptOutcome.NOT_READY, meeting, reason="no endpoint returned a transcript")

        if not await self.store.store_meeting_transcript(meeting.id, transcript):
            logger.info("Meeting %d already had a transcript; fetched copy discarded", meeting.id)
            return self._result(TranscriptOutcome.ALREADY_STORED, meeting)

        logger.info("Stored transcript for meeting %d (%d chars)", meeting.id, len(transcript))
        return self._result(TranscriptOutcome.FETCHED, meeting, transcript=transcript)

    async def _fetch_from_endpoints(self, recall_bot_id: str, recording_id: str | None) -> str | None:
        for path in self.recall.transcript_endpoints(recall_bot_id, recording_id):
            try:
                payload = await self.recall.get_transcript_payload(path)
            except RecallAPIError as e:
                logger.debug("Transcript endpoint %s failed: %s", path, e)
                continue
            transcript = extract_transcript(payload)
            if transcript:
                logger.debug("Transcript found at %s", path)
                return transcript
        return None

    @staticmethod
    def _result(outcome: TranscriptOutcome, meeting: Meeting, **fields) -> TranscriptFetchResult:
        metrics.transcript_fetch_total.labels(outcome=outcome.value).inc()
        return TranscriptFetchResult(outcome=outcome, meeting_id=meeting.id, **fields)
