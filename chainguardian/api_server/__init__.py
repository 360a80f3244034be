"""
ChainGuardian API server package.

FastAPI app over the swarm coordinator: task submission, task and swarm status,
and blocking risk-analysis endpoints.
"""

from chainguardian.api_server.server import app, create_app

__all__ = ["app", "create_app"]
