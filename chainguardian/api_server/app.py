"""
FastAPI/ASGI application entrypoint.

Run with: uvicorn chainguardian.api_server.app:app --host 0.0.0.0 --port 8080
"""

from chainguardian.api_server.server import app

__all__ = ["app"]
