"""Health check and service index endpoints.

/health is a liveness check with no upstream dependency: the gateway holds
no state worth probing, and readiness against PipeRun would need a caller
credential.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from src.gateway.api.v1.resources import ROUTES
from src.gateway.config import VERSION

router = APIRouter(tags=["health"])


@router.get("/")
async def index(request: Request):
    """Describe the gateway: name, version, endpoints and how to authenticate."""
    settings = request.app.state.settings
    return {
        "name": "PipeRun CRM Gateway",
        "version": VERSION,
        "upstream": settings.PIPERUN_API_BASE_URL,
        "authentication": {
            "header": "X-Token",
            "query": "token",
            "default_configured": bool(settings.PIPERUN_API_TOKEN.strip()),
        },
        "endpoints": [f"{route.method} {route.path}" for route in ROUTES],
    }


@router.get("/health")
async def health_check(request: Request):
    """Basic liveness check."""
    settings = request.app.state.settings
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT.value,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
