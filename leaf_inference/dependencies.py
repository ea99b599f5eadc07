"""
Request Dependencies
====================
FastAPI dependency providers.  The service and knowledge base live on
``app.state`` (set up by the lifespan hook) and are handed to route
handlers through ``Depends``; tests swap them with
``app.dependency_overrides``.
"""
from __future__ import annotations

from fastapi import HTTPException, Request

from leaf_inference.engine.service import LeafInferenceService
from leaf_inference.knowledge import DiseaseKnowledgeBase


def get_service(request: Request) -> LeafInferenceService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Inference service not initialised")
    return service


def get_knowledge(request: Request) -> DiseaseKnowledgeBase:
    knowledge = getattr(request.app.state, "knowledge", None)
    if knowledge is None:
        raise HTTPException(status_code=503, detail="Disease knowledge base not loaded")
    return knowledge
