"""
Main entrypoint: FastAPI server with the swarm coordinator running in background threads.

The coordinator loop and heartbeat pump start in the app lifespan, so the API
stays responsive while tasks execute. On SIGINT/SIGTERM uvicorn shuts down the
app and the lifespan stops the coordinator.

Env: SOLANA_RPC_URL or HELIUS_API_KEY, BIRDEYE_API_KEY, API_HOST, API_PORT,
THREADS, LOG_LEVEL, LOG_FORMAT (see .env.example).
"""

import os

# Configure structured logging before other imports that may log
from chainguardian.guardian_logging import get_logger

logger = get_logger("main")


def main() -> None:
    """Run the API server (and with it the swarm coordinator) in the main thread."""
    from chainguardian.config import get_settings
    from chainguardian.config.env import mask_rpc_url

    settings = get_settings()
    logger.info(
        "main_config_loaded",
        rpc_url=mask_rpc_url(settings.solana_rpc_url),
        max_concurrency=settings.max_concurrency,
        birdeye_enabled=bool(settings.birdeye_api_key),
    )

    from chainguardian.api_server.app import app
    import uvicorn

    logger.info("main_server_starting", host=settings.api_host, port=settings.api_port)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=os.getenv("LOG_LEVEL", "info").lower())


if __name__ == "__main__":
    main()
