"""Prometheus metrics export for recapbot.

Tracks reconciliation sweeps, bot status transitions, transcript fetch
outcomes and provider errors.
"""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# ── Registry ──

registry = CollectorRegistry()


# ── Reconciliation Metrics ──

sweeps_total = Counter(
    "recapbot_sweeps_total",
    "Reconciliation sweeps by result",
    ["result"],  # completed, skipped
    registry=registry,
)

sweep_duration_seconds = Histogram(
    "recapbot_sweep_duration_seconds",
    "Wall-clock duration of a reconciliation sweep",
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
    registry=registry,
)

sweep_bot_errors_total = Counter(
    "recapbot_sweep_bot_errors_total",
    "Per-bot failures caught during a sweep",
    ["phase"],  # status, transcript
    registry=registry,
)

active_bots = Gauge(
    "recapbot_active_bots",
    "Bots in a non-terminal status at the start of the last sweep",
    registry=registry,
)

bot_status_transitions_total = Counter(
    "recapbot_bot_status_transitions_total",
    "Bot status transitions applied by the reconciler",
    ["from_status", "to_status"],
    registry=registry,
)

transcript_fetch_total = Counter(
    "recapbot_transcript_fetch_total",
    "Transcript fetch attempts by outcome",
    ["outcome"],
    registry=registry,
)

bots_created_total = Counter(
    "recapbot_bots_created_total",
    "create_bot_for_event calls by outcome",
    ["outcome"],
    registry=registry,
)


# ── Provider Metrics ──

provider_errors_total = Counter(
    "recapbot_provider_errors_total",
    "Recall.ai request failures",
    ["operation", "status"],
    registry=registry,
)


def metrics_response() -> Response:
    """Render the registry in the Prometheus text format."""
    return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)
