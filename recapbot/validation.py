"""Configuration validation for startup.

Validates that required API keys and configuration are present
before the application starts. Fails fast with clear error messages.
"""

from __future__ import annotations

import logging
import sys

from recapbot.config import settings

logger = logging.getLogger(__name__)


# ── Validation Rules ──

VALIDATION_RULES = {
    "development": [
        "postgres_url",
    ],
    "staging": [
        "postgres_url",
        "recall_api_key",
        "reconcile_interval",
    ],
    "production": [
        "postgres_url",
        "recall_api_key",
        "reconcile_interval",
    ],
}


# ── Validation Functions ──


def validate_config() -> list[str]:
    """Validate configuration for the current environment.

    Returns:
        List of error messages (empty if valid)
    """
    rules = VALIDATION_RULES.get(settings.environment, VALIDATION_RULES["development"])
    return [error for error in map(_run_validation, rules) if error]


def _run_validation(rule: str) -> str | None:
    if rule == "postgres_url":
        if not settings.postgres_url:
            return "POSTGRES_URL is required"

    elif rule == "recall_api_key":
        if not settings.has_recall:
            return "RECALL_API_KEY is required"

    elif rule == "reconcile_interval":
        if settings.reconcile_interval_seconds < 10:
            return "RECONCILE_INTERVAL_SECONDS must be at least 10"

    return None


def validate_and_exit() -> None:
    """Validate configuration on startup and exit if invalid.

    Call this in the lifespan function before connecting to services.
    """
    logger.info("Validating configuration for environment: %s", settings.environment)

    errors = validate_config()

    if errors:
        logger.error("=" * 60)
        logger.error("Configuration validation FAILED:")
        for i, error in enumerate(errors, 1):
            logger.error("  %d. %s", i, error)
        logger.error("=" * 60)
        logger.error("Please set the required environment variables and restart.")
        sys.exit(1)

    logger.info("Configuration validation PASSED")

    if settings.has_recall:
        logger.info("  ✓ Recall.ai configured")
    else:
        logger.warning("  ✗ Recall.ai not configured; bots cannot be scheduled")
    if settings.has_llm:
        logger.info("  ✓ LLM configured for content generation")
    else:
        logger.warning("  ✗ No LLM configured; content generation disabled")
    if settings.reconcile_enabled:
        logger.info("  ✓ Reconciliation every %ds", settings.reconcile_interval_seconds)
