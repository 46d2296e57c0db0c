"""Structlog configuration for the API and the lifecycle CLI.

Colored console output for interactive use, JSON lines otherwise so that
audit-relevant events (cross-tenant violations, admin access) can be shipped
to log storage unchanged.
"""

import logging
import os
import sys

import structlog


def _resolve_level(level: str | None) -> int:
    """Translate a level name (e.g. "debug") into a stdlib logging level."""
    name = (level or os.environ.get("MERENDA_LOG_LEVEL", "info")).upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: str | None = None, force_json: bool = False) -> None:
    """Configure structlog with appropriate processors.

    Args:
        level: Minimum level name. Falls back to MERENDA_LOG_LEVEL, then "info".
        force_json: Always emit JSON, even in a TTY (used by the CLI's --json).
    """
    # FORCE_COLOR=1 enables colors even in non-TTY environments (like Docker)
    force_color = os.environ.get("FORCE_COLOR", "").lower() in ("1", "true", "yes")
    use_colors = not force_json and (force_color or sys.stdout.isatty())

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if use_colors:
        processors: list[structlog.types.Processor] = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_resolve_level(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
