"""
Structured Logging & Observability
Production-grade logging that's both human-readable and machine-parseable.
"""
import sys
from loguru import logger
from typing import Any, Dict
from src.config import get_settings


def configure_logging():
    """
    Configure loguru for production observability.

    In development: Human-readable colorized output
    In production: Structured JSON logs for ingestion (ELK, Datadog, etc.)
    """
    settings = get_settings()

    # Remove default handler
    logger.remove()

    if not settings.enable_structured_logging:
        logger.add(
            sys.stderr,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "{message}"
            ),
            level=settings.log_level,
            colorize=True,
        )
    else:
        logger.add(
            sys.stderr,
            format="{message}",
            level=settings.log_level,
            serialize=True,  # Output as JSON
        )

    logger.info(f"Logging configured: level={settings.log_level}, structured={settings.enable_structured_logging}")


def log_rule_evaluation(
    rule_name: str,
    lead_id: str,
    fired: bool,
    success: bool,
    duration_ms: float | None = None,
    **context
):
    """
    Structured logging for a single (lead, rule) evaluation.

    Args:
        rule_name: Name of the progression rule
        lead_id: The lead being evaluated
        fired: Whether the weighted trigger consensus was reached
        success: Whether at least one action succeeded
        duration_ms: Evaluation time in milliseconds
        **context: Additional context (trigger ratio, actions, impact...)

    Example:
        >>> log_rule_evaluation(
        ...     rule_name="High Sentiment Progression",
        ...     lead_id="65f1c0...",
        ...     fired=True,
        ...     success=True,
        ...     duration_ms=12.4,
        ...     trigger_ratio=0.67
        ... )
    """
    log_data = {
        "event_type": "rule_evaluation",
        "rule": rule_name,
        "lead_id": lead_id,
        "fired": fired,
        "success": success,
    }

    if duration_ms is not None:
        log_data["duration_ms"] = round(duration_ms, 2)

    log_data.update(context)

    logger.bind(**log_data).debug(f"Rule '{rule_name}' evaluated for lead {lead_id}")


def log_business_event(
    event_type: str,
    lead_id: str,
    **details: Dict[str, Any]
):
    """
    Log business-critical events for analytics.

    Examples:
        - Lead status transitions
        - Follow-up meeting auto-scheduled
        - Lead reassigned

    Args:
        event_type: Type of event (e.g., "status_change", "meeting_scheduled")
        lead_id: The lead involved
        **details: Event-specific data
    """
    log_data = {
        "event_type": event_type,
        "lead_id": lead_id,
        **details
    }

    logger.bind(**log_data).success(f"Business Event: {event_type}")
