"""
Structured logging setup for the unified inbox.
Provides JSON-formatted logs with consistent fields for breaker and inbox telemetry.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_channel_context,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _add_channel_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Normalise channel enums to their plain string value."""
    channel = event_dict.get("channel")
    if channel is not None and hasattr(channel, "value"):
        event_dict["channel"] = channel.value
    return event_dict


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


# Convenience functions for common log patterns
def log_breaker_event(breaker: str, event: str, state: str, **details: Any) -> None:
    """Log circuit breaker transitions and call outcomes with consistent fields."""
    logger = get_logger("circuit_breaker")

    log_data = {"breaker": breaker, "breaker_event": event, "state": state, **details}

    if event in ("open", "reject", "timeout", "failure"):
        logger.warning("Circuit breaker event", **log_data)
    elif event == "success":
        logger.debug("Circuit breaker event", **log_data)
    else:
        logger.info("Circuit breaker event", **log_data)


def log_aggregation_cycle(
    channel_count: int,
    failed_channels: list[str],
    total_messages: int,
    resolved_count: int,
    duration_ms: float,
) -> None:
    """Log one unified inbox fetch cycle."""
    logger = get_logger("inbox")

    log_data = {
        "channel_count": channel_count,
        "failed_channels": failed_channels,
        "total_messages": total_messages,
        "resolved_count": resolved_count,
        "duration_ms": duration_ms,
        "event_type": "inbox_fetch",
    }

    if failed_channels:
        logger.warning("Inbox fetch completed with channel failures", **log_data)
    else:
        logger.info("Inbox fetch completed", **log_data)
