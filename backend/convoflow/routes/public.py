# backend/convoflow/routes/public.py

from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from prometheus_client import generate_latest

from convoflow.config.settings import settings
from convoflow.models.api import APIResponse
from convoflow.utils.dependencies import Container, get_container

# This file defines public-facing endpoints that do not require
# authentication: the root endpoint, health checks and Prometheus metrics.

router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": settings.service_name,
        "version": "1.0.0",
        "status": "operational",
        "environment": settings.environment,
    }


@router.get("/health", response_model=APIResponse, summary="Health Check")
async def health_check(container: Container = Depends(get_container)):
    """Reports liveness and the workflows this instance can run."""
    return APIResponse(
        success=True,
        message="healthy",
        data={
            "status": "healthy",
            "session_backend": settings.session_backend,
            "ai": "configured" if container.ai and container.ai.is_configured else "not_configured",
            "channel_connected": container.channel.is_connected(),
            "workflows": [
                definition.id
                for definition in container.workflows.all()
                if container.workflows.is_enabled(definition.id)
            ],
        },
        timestamp=datetime.utcnow(),
        version=settings.api_version,
    )


@router.get("/health/live", summary="Liveness Probe")
async def liveness_check():
    """Kubernetes/Docker liveness probe."""
    return {"status": "alive"}


@router.get("/metrics", tags=["Monitoring"])
async def metrics():
    """Prometheus metrics endpoint."""
    return PlainTextResponse(generate_latest(), media_type="text/plain")
