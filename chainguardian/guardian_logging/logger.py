"""
Structured logging for the swarm: one JSON line per event, tagged with the thread.

The coordinator loop, the heartbeat pump and every execution unit run on their
own threads ("swarm-coordinator", "swarm-heartbeat", "swarm-exec_N"), so each
record carries thread_name next to the task_id / worker_id context.

Modules call get_logger(__name__) and log a snake_case event name plus keyword
context. This module imports nothing from chainguardian.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog
from structlog.processors import CallsiteParameter

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL_VALUE = getattr(logging, LOG_LEVEL, logging.INFO)

# json for production; "console" for local development
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()


def _event_type(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Expose structlog's 'event' as event_type, the key dashboards group on."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


def build_processors(log_format: str = LOG_FORMAT) -> list[Any]:
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.processors.CallsiteParameterAdder({CallsiteParameter.THREAD_NAME}),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if log_format == "json":
        processors.append(_event_type)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return processors


def configure_structlog(level: int = LOG_LEVEL_VALUE, log_format: str = LOG_FORMAT) -> None:
    structlog.configure(
        processors=build_processors(log_format),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Return a structured logger for the given module name.

        logger = get_logger(__name__)
        logger.info("swarm_task_assigned", task_id=tid, worker_id=wid)

    Output (JSON): {"task_id": "...", "worker_id": "...", "logger": "chainguardian.swarm.coordinator",
    "level": "info", "timestamp": "...", "thread_name": "swarm-coordinator",
    "event_type": "swarm_task_assigned"}
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_task(task_id: str, worker_id: str | None = None) -> structlog.BoundLogger:
    """Logger for one execution unit: task_id (and worker_id) on every call."""
    log = get_logger("chainguardian.swarm.execution").bind(task_id=task_id)
    if worker_id is not None:
        log = log.bind(worker_id=worker_id)
    return log
