"""
FastAPI server — HTTP front end over the swarm coordinator.

Submits analysis tasks, exposes task and swarm status, and offers blocking
risk endpoints that wait (bounded) for a result and fall back to 202 with the
task id for polling. The coordinator is started in the lifespan and stored on
app.state; routes never touch a module global.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from solders.pubkey import Pubkey

from chainguardian import __version__
from chainguardian.config import get_settings
from chainguardian.config.env import mask_rpc_url
from chainguardian.core.exceptions import SubmissionError
from chainguardian.guardian_logging import get_logger
from chainguardian.swarm import SwarmCoordinator, get_coordinator

logger = get_logger(__name__)

AGENT_METADATA: dict[str, Any] = {
    "name": "ChainGuardian",
    "version": __version__,
    "description": "Solana wallet risk analysis with swarm task coordination",
    "capabilities": [
        "token_risk_analysis",
        "transaction_risk_analysis",
        "rugpull_detection",
        "comprehensive_risk_assessment",
        "swarm_orchestration",
    ],
}

RISK_ENDPOINT_PRIORITY = 2


# -----------------------------------------------------------------------------
# Request / response models
# -----------------------------------------------------------------------------


class SubmitTaskRequest(BaseModel):
    """POST /swarm/submit body."""

    task_type: str = Field(..., description="token_analysis | transaction_analysis | comprehensive_analysis")
    wallet_address: str = Field(..., min_length=1, max_length=64, description="Solana wallet (base58)")
    priority: int = Field(1, description="Higher runs first")


class SubmitTaskResponse(BaseModel):
    status: str = Field("submitted")
    task_id: str
    task_type: str
    wallet_address: str
    priority: int


class AnalyzeRequest(BaseModel):
    """POST /risk/analyze body. async=true returns the task id without waiting."""

    model_config = ConfigDict(populate_by_name=True)

    wallet_address: str = Field(..., min_length=1, max_length=64, description="Solana wallet (base58)")
    analysis_type: str = Field("comprehensive", description="tokens | transactions | comprehensive")
    priority: int = Field(1)
    async_mode: bool = Field(False, alias="async")


class PendingTaskResponse(BaseModel):
    """202 body while a task is still executing."""

    status: str
    task_id: str
    message: str


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def get_swarm(request: Request) -> SwarmCoordinator:
    """Dependency: the coordinator owned by this app."""
    return request.app.state.coordinator


def _validate_address(address: str) -> str:
    address = (address or "").strip()
    if not address:
        raise HTTPException(status_code=400, detail="wallet_address must be non-empty")
    try:
        Pubkey.from_string(address)
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid Solana wallet address") from None
    return address


def _submit(submit: Callable[[str, int], str], address: str, priority: int) -> str:
    try:
        return submit(address, priority)
    except SubmissionError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


def _pending_response(task_id: str, status: str, message: str) -> JSONResponse:
    body = PendingTaskResponse(status=status, task_id=task_id, message=message)
    return JSONResponse(status_code=202, content=body.model_dump())


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------


def create_app(coordinator_factory: Callable[[], SwarmCoordinator] | None = None) -> FastAPI:
    """
    Build the API app. coordinator_factory defaults to the process-wide
    coordinator; tests pass their own.
    """
    factory = coordinator_factory or get_coordinator

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the swarm coordinator threads; stop them on shutdown."""
        coordinator = factory()
        app.state.coordinator = coordinator
        coordinator.start()
        logger.info("api_swarm_started", workers=coordinator.get_swarm_status()["workers"])
        yield
        coordinator.stop()
        logger.info("api_swarm_stopped")

    app = FastAPI(
        title="ChainGuardian API",
        description="Solana wallet risk analysis over a coordinated worker swarm.",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/health")
    def health(swarm: SwarmCoordinator = Depends(get_swarm)) -> dict[str, Any]:
        """Liveness probe plus whether the coordinator loop is running."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
            "swarm_healthy": swarm.is_running,
        }

    @app.get("/status")
    def status(swarm: SwarmCoordinator = Depends(get_swarm)) -> dict[str, Any]:
        settings = get_settings()
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "agent": AGENT_METADATA,
            "swarm": swarm.get_swarm_status(),
            "config": {
                "solana_rpc_url": mask_rpc_url(settings.solana_rpc_url),
                "api_port": settings.api_port,
                "threads": swarm.config.max_concurrency,
            },
        }

    @app.get("/swarm/status")
    def swarm_status(swarm: SwarmCoordinator = Depends(get_swarm)) -> dict[str, Any]:
        return swarm.get_swarm_status()

    @app.get("/swarm/workers")
    def swarm_workers(swarm: SwarmCoordinator = Depends(get_swarm)) -> list[dict[str, Any]]:
        return swarm.list_workers()

    @app.post("/swarm/submit", response_model=SubmitTaskResponse)
    def swarm_submit(body: SubmitTaskRequest, swarm: SwarmCoordinator = Depends(get_swarm)) -> SubmitTaskResponse:
        """Queue a task and return its id immediately."""
        submitters = {
            "token_analysis": swarm.submit_token_analysis_task,
            "transaction_analysis": swarm.submit_transaction_analysis_task,
            "comprehensive_analysis": swarm.submit_wallet_analysis_task,
        }
        submit = submitters.get(body.task_type)
        if submit is None:
            raise HTTPException(status_code=400, detail=f"Invalid task_type: {body.task_type}")
        address = _validate_address(body.wallet_address)
        task_id = _submit(submit, address, body.priority)
        logger.info("api_task_submitted", task_id=task_id, task_type=body.task_type, priority=body.priority)
        return SubmitTaskResponse(
            task_id=task_id,
            task_type=body.task_type,
            wallet_address=address,
            priority=body.priority,
        )

    @app.get("/task/{task_id}")
    def task_status(task_id: str, swarm: SwarmCoordinator = Depends(get_swarm)) -> dict[str, Any]:
        """Task record from the completed store, failed store or live queue."""
        info = swarm.get_task_status(task_id)
        if info is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return info

    @app.get("/risk/{address}")
    def risk(address: str, swarm: SwarmCoordinator = Depends(get_swarm)):
        """
        Comprehensive analysis at elevated priority. Waits for the result up
        to RISK_WAIT_TIMEOUT_SEC; otherwise 202 with the task id for polling.
        """
        address = _validate_address(address)
        task_id = _submit(swarm.submit_wallet_analysis_task, address, RISK_ENDPOINT_PRIORITY)
        result = swarm.wait_for_completion(task_id, get_settings().risk_wait_timeout_sec)
        if result is None or result.get("still_running"):
            return _pending_response(task_id, "processing", "Analysis in progress. Use task_id to check status.")
        return result

    @app.post("/risk/analyze")
    def risk_analyze(body: AnalyzeRequest, swarm: SwarmCoordinator = Depends(get_swarm)):
        """Typed analysis; async=true returns 202 immediately, otherwise waits up to ANALYZE_WAIT_TIMEOUT_SEC."""
        address = _validate_address(body.wallet_address)
        if body.analysis_type == "tokens":
            submit = swarm.submit_token_analysis_task
        elif body.analysis_type == "transactions":
            submit = swarm.submit_transaction_analysis_task
        else:
            submit = swarm.submit_wallet_analysis_task
        task_id = _submit(submit, address, body.priority)
        if body.async_mode:
            return _pending_response(task_id, "submitted", "Analysis submitted. Use task_id to check status.")
        result = swarm.wait_for_completion(task_id, get_settings().analyze_wait_timeout_sec)
        if result is None or result.get("still_running"):
            return _pending_response(task_id, "timeout", "Analysis timed out. Use task_id to check status.")
        return result

    @app.exception_handler(HTTPException)
    def http_exception_handler(request: Any, exc: HTTPException) -> JSONResponse:
        """Consistent JSON error response for HTTPException."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    return app


app = create_app()
