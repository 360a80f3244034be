"""
Structured logging for ChainGuardian.

JSON logs with timestamp, event_type, task_id / worker_id / wallet where relevant.
Use get_logger() in all modules for aggregation-friendly output.
"""

from chainguardian.guardian_logging.logger import bind_task, get_logger

__all__ = ["bind_task", "get_logger"]
