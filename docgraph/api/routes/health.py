"""
Health check endpoints.

GET /api/v1/health - Health check
GET /metrics - Prometheus metrics endpoint
"""
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from docgraph import __version__
from docgraph.utils.metrics import get_all_metrics

router = APIRouter(prefix="/health", tags=["health"])
metrics_router = APIRouter(tags=["metrics"])

REQUIRED_SERVICES = ("status_tracker", "task_registry", "ingestion_pipeline", "answer_streamer")


@router.get("", response_model=Dict[str, Any])
async def health_check() -> Dict[str, Any]:
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "service": "docgraph-api",
        "version": __version__,
    }


@router.get("/ready")
async def readiness_check(request: Request) -> Dict[str, Any]:
    """
    Readiness check endpoint.

    Reports which services were built at startup; ``ready`` only when all are.
    """
    services = {name: getattr(request.app.state, name, None) is not None for name in REQUIRED_SERVICES}
    tracker = getattr(request.app.state, "status_tracker", None)
    return {
        "status": "ready" if all(services.values()) else "degraded",
        "services": services,
        "processing": tracker.has_active() if tracker is not None else False,
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/live")
async def liveness_check() -> Dict[str, Any]:
    return {
        "status": "alive",
        "timestamp": datetime.utcnow().isoformat(),
    }


@metrics_router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics in text exposition format."""
    return Response(content=generate_latest(get_all_metrics()), media_type=CONTENT_TYPE_LATEST)
