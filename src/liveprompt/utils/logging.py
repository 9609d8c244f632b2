"""Structured logging setup for liveprompt."""

import os
from pathlib import Path
from typing import Any, Optional

import structlog


VALID_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def configure_logging(log_file: Optional[Path] = None) -> None:
    """
    Route structlog output to a JSON lines file.

    Without ``log_file`` the log goes to ~/.cache/liveprompt/logs/liveprompt.log,
    keeping stdout free for ``liveprompt inspect --json`` and ``liveprompt hash``.
    LIVEPROMPT_LOG_LEVEL selects DEBUG, INFO (default), WARNING or ERROR; an
    unknown value falls back to INFO.

    Events worth filtering on: ``mode_transition``, ``turn_paused``,
    ``override_captured``, ``override_entries_skipped``, ``request_parity_mismatch``.

    Example:
        LIVEPROMPT_LOG_LEVEL=DEBUG liveprompt --log-file /tmp/lp.log inspect payload.json --edit 1="Be brief."
        jq 'select(.event == "mode_transition")' /tmp/lp.log
    """
    if log_file is None:
        log_dir = Path.home() / ".cache" / "liveprompt" / "logs"
        log_file = log_dir / "liveprompt.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)

    log_level = os.environ.get("LIVEPROMPT_LOG_LEVEL", "INFO").upper()
    if log_level not in VALID_LEVELS:
        log_level = "INFO"

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=open(log_file, "a")),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of calling module)

    Returns:
        Structured logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("mode_transition", key="conv-1::panel", current="auto_capturing")
    """
    return structlog.get_logger(name)
