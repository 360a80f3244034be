"""
Test that guardian_logging can be imported without circular import and logger works.
"""

from __future__ import annotations

import json
import threading


def test_logging_import():
    """Import get_logger from guardian_logging and use the logger."""
    from chainguardian.guardian_logging import get_logger

    logger = get_logger("test")
    assert logger is not None
    assert hasattr(logger, "info")
    assert hasattr(logger, "debug")
    assert hasattr(logger, "warning")
    assert hasattr(logger, "error")
    # Smoke test: call info (should not raise)
    logger.info("test_message", key="value")


def test_bind_task_logger():
    """bind_task returns a logger carrying task and worker ids."""
    from chainguardian.guardian_logging import bind_task

    log = bind_task("token_analysis_abc_1_1", "token_scanner_1")
    log.info("swarm_task_running", wallet="abc")


def test_json_record_shape():
    from chainguardian.guardian_logging.logger import build_processors

    event: object = {"event": "swarm_task_assigned", "task_id": "t1"}
    for processor in build_processors("json"):
        event = processor(None, "info", event)
    record = json.loads(event)

    assert record["event_type"] == "swarm_task_assigned"
    assert record["task_id"] == "t1"
    assert record["level"] == "info"
    assert record["timestamp"].endswith("Z")
    assert record["thread_name"] == threading.current_thread().name
