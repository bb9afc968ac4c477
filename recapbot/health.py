"""Health check utilities for deep service verification."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from recapbot.integrations.recall_client import RecallClient
from recapbot.storage.postgres_store import PostgresStore

logger = logging.getLogger(__name__)


class HealthCheckResult:
    """Result of a health check."""

    def __init__(
        self,
        service: str,
        healthy: bool,
        latency_ms: float | None = None,
        message: str = "",
        details: dict[str, Any] | None = None,
    ):
        self.service = service
        self.healthy = healthy
        self.latency_ms = latency_ms
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "status": "ok" if self.healthy else "unhealthy",
            "latency_ms": self.latency_ms,
            "message": self.message,
            **self.details,
        }


async def check_database(store: PostgresStore) -> HealthCheckResult:
    start = time.time()
    try:
        ok = await asyncio.wait_for(store.health_check(), timeout=2.0)
    except asyncio.TimeoutError:
        return HealthCheckResult(service="postgres", healthy=False, message="Timed out")
    return HealthCheckResult(
        service="postgres",
        healthy=ok,
        latency_ms=(time.time() - start) * 1000,
        message="Connected" if ok else "Unreachable",
    )


async def check_recall(recall: RecallClient) -> HealthCheckResult:
    if not recall.api_key:
        return HealthCheckResult(service="recall", healthy=False, message="API key not configured")
    start = time.time()
    ok = await recall.health_check()
    return HealthCheckResult(
        service="recall",
        healthy=ok,
        latency_ms=(time.time() - start) * 1000,
        message="API responding" if ok else "API unreachable or key rejected",
    )


async def get_deep_health_status(
    store: PostgresStore, recall: RecallClient, scheduler_running: bool
) -> dict[str, Any]:
    """Get health status of the database, Recall.ai and the sweep scheduler.

    Returns:
        Dict with overall status and per-component health
    """
    checks = {
        "postgres": check_database(store),
        "recall": check_recall(recall),
    }
    tasks = {name: asyncio.create_task(coro) for name, coro in checks.items()}

    components = {}
    for name, task in tasks.items():
        try:
            result = await task
        except Exception as e:
            result = HealthCheckResult(service=name, healthy=False, message=f"Check failed: {str(e)[:100]}")
        components[name] = result.to_dict()

    components["reconciler"] = {"status": "ok" if scheduler_running else "stopped"}

    if not components["postgres"]["status"] == "ok":
        overall = "unhealthy"
    elif components["recall"]["status"] != "ok" or not scheduler_running:
        overall = "degraded"
    else:
        overall = "healthy"

    return {"status": overall, "components": components}
