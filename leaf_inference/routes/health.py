"""
Health Check Routes
===================
Provides ``/health``, ``/health/ready``, and ``/health/live`` endpoints
for container orchestrators (Docker, K8s) and monitoring.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from leaf_inference.dependencies import get_service
from leaf_inference.engine.buffers import memory_info
from leaf_inference.engine.service import LeafInferenceService
from leaf_inference.schemas import HealthResponse, LiveResponse, ReadyResponse


router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=HealthResponse)
async def health(service: LeafInferenceService = Depends(get_service)) -> HealthResponse:
    """
    Basic health probe.

    Always ``healthy``: without a model the server still answers from the
    fallback predictor.
    """
    return HealthResponse(
        status="healthy",
        model_loaded=service.lifecycle.is_ready(),
        memory=memory_info(),
    )


@router.get("/ready", response_model=ReadyResponse)
async def readiness(service: LeafInferenceService = Depends(get_service)) -> ReadyResponse:
    """
    Readiness probe.

    Returns ``ready: true`` only when the model has been loaded
    successfully.
    """
    info = service.lifecycle.info()
    return ReadyResponse(
        ready=info["loaded"],
        state=info["state"],
        num_classes=info["num_classes"],
        device=info["device"],
    )


@router.get("/live", response_model=LiveResponse)
async def liveness() -> LiveResponse:
    """Liveness probe — confirms the process is running."""
    return LiveResponse(live=True)
