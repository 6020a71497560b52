"""
Health check and metrics endpoints.
"""

from fastapi import APIRouter, Request
from pydantic import BaseModel
from datetime import datetime, timezone
from typing import Dict, Any
import time

from config.settings import settings
from honeytrack.core.logging import get_logger
from honeytrack.core.metrics import get_metrics_response

logger = get_logger(__name__)

router = APIRouter()

# Application start time for uptime calculation
app_start_time = time.time()


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str  # "healthy", "degraded"
    timestamp: datetime
    version: str
    components: Dict[str, str]
    metrics: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """
    Report engine status, advisory configuration and tracker counts.

    Returns:
        HealthResponse: System health information
    """
    engine = getattr(request.app.state, "engine", None)
    counts = engine.registry.counts() if engine is not None else {"active": 0, "completed": 0, "total": 0}

    health_data = {
        "status": "healthy" if engine is not None else "degraded",
        "timestamp": datetime.now(timezone.utc),
        "version": settings.app_version,
        "components": {
            "engine": "healthy" if engine is not None else "unavailable",
            "advisory": "enabled" if engine is not None and engine.consultant is not None else "disabled",
        },
        "metrics": {
            "uptime": int(time.time() - app_start_time),
            "activeConversations": counts["active"],
            "completedConversations": counts["completed"],
        },
    }

    logger.debug(
        "Health check performed",
        extra={"status": health_data["status"], "uptime": health_data["metrics"]["uptime"]},
    )
    return HealthResponse(**health_data)


@router.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return get_metrics_response()
