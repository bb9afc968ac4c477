"""Periodic reconciliation of local bot state against Recall.ai.

Each sweep runs two phases, one bot at a time:
  1. Status: poll every non-terminal bot and move it (and its meeting)
     forward along the status state machine
  2. Transcripts: for every completed bot whose meeting has no
     transcript, attempt a fetch

A failure on one bot is logged and counted; the sweep continues.
"""

from __future__ import annotations

import asyncio
import logging
import time

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from recapbot import metrics
from recapbot.bots.status import (
    ACTIVE_BOT_STATUSES,
    meeting_status_for_bot,
    next_bot_status,
    next_meeting_status,
)
from recapbot.bots.transcripts import TranscriptReadinessEvaluator
from recapbot.config import settings
from recapbot.integrations.recall_client import RecallClient
from recapbot.models.schemas import BotStatus, SweepReport, TranscriptOutcome
from recapbot.storage.postgres_store import PostgresStore, RecallBot
from recapbot.utils import Clock, utcnow

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "bot_reconciliation"


class ReconciliationSupervisor:
    """Owns the sweep job and runs sweeps on demand."""

    def __init__(
        self,
        store: PostgresStore,
        recall: RecallClient,
        evaluator: TranscriptReadinessEvaluator,
        interval_seconds: int | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.recall = recall
        self.evaluator = evaluator
        self.interval_seconds = interval_seconds or settings.reconcile_interval_seconds
        self.clock = clock
        self._lock = asyncio.Lock()
        self._scheduler: AsyncIOScheduler | None = None

    # ── Scheduling ──

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Schedule the sweep on the running event loop."""
        if self.is_running:
            return
        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self._tick,
            IntervalTrigger(seconds=self.interval_seconds),
            id=SWEEP_JOB_ID,
            name="Bot reconciliation sweep",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Reconciliation scheduled every %ds", self.interval_seconds)

    def stop(self) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Reconciliation stopped")

    async def _tick(self) -> None:
        try:
            await self.run_sweep()
        except Exception as e:
            logger.error("Reconciliation sweep failed: %s", e, exc_info=True)

    # ── Sweep ──

    async def run_sweep(self) -> SweepReport:
        """Run one sweep now, or skip it if another sweep is still running."""
        report = SweepReport(started_at=self.clock())
        if self._lock.locked():
            logger.warning("Previous sweep still running, skipping this tick")
            metrics.sweeps_total.labels(result="skipped").inc()
            report.skipped = True
            report.finished_at = self.clock()
            return report

        async with self._lock:
            started = time.monotonic()
            await self._sweep_statuses(report)
            await self._sweep_transcripts(report)
            metrics.sweep_duration_seconds.observe(time.monotonic() - started)

        report.finished_at = self.clock()
        metrics.sweeps_total.labels(result="completed").inc()
        logger.info(
            "Sweep done: %d active, %d transitions, %d completed, %d transcripts, %d errors",
            report.active_bots, report.transitions, report.completed_bots,
            report.transcripts_fetched, report.errors,
        )
        return report

    async def _sweep_statuses(self, report: SweepReport) -> None:
        bots = await self.store.list_bots_by_status(ACTIVE_BOT_STATUSES)
        report.active_bots = len(bots)
        metrics.active_bots.set(len(bots))

        for bot in bots:
            try:
                if await self.refresh_bot_status(bot):
                    report.transitions += 1
            except Exception as e:
                report.errors += 1
                metrics.sweep_bot_errors_total.labels(phase="status").inc()
                logger.error("Status check failed for bot %s: %s", bot.recall_bot_id, e)

    async def _sweep_transcripts(self, report: SweepReport) -> None:
        bots = await self.store.list_bots_by_status([BotStatus.COMPLETED])
        report.completed_bots = len(bots)

        for bot in bots:
            try:
                meeting = await self.store.get_meeting_by_calendar_event_id(bot.calendar_event_id)
                if meeting is None or meeting.transcript is not None:
                    continue
                result = await self.evaluator.attempt_transcript_fetch(bot, meeting)
                if result.outcome == TranscriptOutcome.FETCHED:
                    report.transcripts_fetched += 1
            except Exception as e:
                report.errors += 1
                metrics.sweep_bot_errors_total.labels(phase="transcript").inc()
                logger.error("Transcript fetch failed for bot %s: %s", bot.recall_bot_id, e)

    async def refresh_bot_status(self, bot: RecallBot) -> bool:
        """Poll one bot and apply any forward transition.

        Returns True when the bot's status changed.
        """
        snapshot = await self.recall.get_bot_status(bot.recall_bot_id)
        code = snapshot.latest_code
        current = BotStatus(bot.status)
        new_status = next_bot_status(current, code)
        if new_status == current:
            logger.debug("Bot %s unchanged at %s (latest code %s)", bot.recall_bot_id, current.value, code)
            return False

        await self.store.update_bot(bot.id, status=new_status)
        metrics.bot_status_transitions_total.labels(
            from_status=current.value, to_status=new_status.value
        ).inc()
        logger.info("Bot %s: %s -> %s (%s)", bot.recall_bot_id, current.value, new_status.value, code)

        meeting = await self.store.get_meeting_by_calendar_event_id(bot.calendar_event_id)
        if meeting is not None:
            target = next_meeting_status(meeting.status, meeting_status_for_bot(new_status))
            if target.value != meeting.status:
                await self.store.update_meeting(meeting.id, status=target)
                logger.info("Meeting %d: %s -> %s", meeting.id, meeting.status, target.value)
        return True
