"""
Detection Routes
================
Image analysis, model status and disease lookup endpoints under
``/api/detection``.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from starlette.concurrency import run_in_threadpool

from leaf_inference import config
from leaf_inference.dependencies import get_knowledge, get_service
from leaf_inference.engine.aggregator import InferenceResult, RankedPrediction
from leaf_inference.engine.buffers import memory_info
from leaf_inference.engine.service import LeafInferenceService
from leaf_inference.errors import ClassCountMismatch, InvalidImageFormat
from leaf_inference.knowledge import DiseaseKnowledgeBase
from leaf_inference.schemas import (
    AnalyzeResponse,
    ClassesListResponse,
    ClassInfo,
    DetectionResult,
    DiseaseInfoResponse,
    ErrorResponse,
    ModelStatusResponse,
    ModelSummary,
    RankedPredictionSchema,
    ResetResponse,
)


logger = logging.getLogger("leaf_inference.routes.detection")

router = APIRouter(prefix="/api/detection", tags=["detection"])


def _ranked(predictions: tuple[RankedPrediction, ...]) -> list[RankedPredictionSchema]:
    return [RankedPredictionSchema(**p.to_dict()) for p in predictions]


def _to_detection(result: InferenceResult, knowledge: DiseaseKnowledgeBase) -> DetectionResult:
    """Merge the core result with the detected class's disease record."""
    record = knowledge.lookup(result.detected_class)
    return DetectionResult(
        detected_class=result.detected_class,
        confidence=result.confidence,
        predictions=_ranked(result.top_predictions),
        all_predictions=_ranked(result.all_predictions),
        is_high_confidence=result.is_high_confidence,
        is_fallback=result.is_fallback,
        warning=result.warning,
        **record.model_dump(),
    )


def _check_upload(image: UploadFile, contents: bytes) -> None:
    if image.content_type not in config.ALLOWED_MIME_TYPES:
        raise HTTPException(
            status_code=400,
            detail=(
                f"Unsupported file type ({image.content_type}). "
                "Only JPEG, PNG, and WebP are allowed."
            ),
        )
    if len(contents) > config.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=(
                f"File too large ({len(contents) / (1024 * 1024):.2f}MB). "
                f"Max allowed size is {config.MAX_UPLOAD_BYTES // (1024 * 1024)}MB."
            ),
        )
    if len(contents) < config.MIN_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="File too small. Minimum size is 1KB.")


# =============================================================================
# Analysis
# =============================================================================

@router.post(
    "/analyze",
    response_model=AnalyzeResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Unsupported, too small or undecodable image"},
        413: {"model": ErrorResponse, "description": "Upload too large"},
        500: {"model": ErrorResponse, "description": "Model and class list out of sync"},
    },
)
async def analyze(
    image: UploadFile = File(...),
    service: LeafInferenceService = Depends(get_service),
    knowledge: DiseaseKnowledgeBase = Depends(get_knowledge),
) -> AnalyzeResponse:
    """
    Classify an uploaded leaf photo.

    Accepts a multipart-form upload named ``image``.  When the model is
    unavailable the answer comes from the fallback predictor and
    ``is_fallback`` is set.
    """
    contents = await image.read()
    _check_upload(image, contents)
    logger.info(
        "Processing %s (%.2f KB, %s)",
        image.filename,
        len(contents) / 1024,
        image.content_type,
    )

    try:
        result = await run_in_threadpool(service.predict, contents)
    except InvalidImageFormat as exc:
        logger.warning("Bad image: %s", exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ClassCountMismatch as exc:
        logger.critical("Configuration error during inference: %s", exc)
        raise HTTPException(status_code=500, detail="Model and class list are out of sync") from exc

    info = service.lifecycle.info()
    return AnalyzeResponse(
        result=_to_detection(result, knowledge),
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        filename=image.filename,
        size=len(contents),
        model_info=ModelSummary(
            is_loaded=info["loaded"],
            state=info["state"],
            classes=len(service.class_names),
            confidence_threshold=service.threshold,
        ),
    )


# =============================================================================
# Model & Class Information
# =============================================================================

@router.get("/model-status", response_model=ModelStatusResponse)
async def model_status(
    service: LeafInferenceService = Depends(get_service),
    knowledge: DiseaseKnowledgeBase = Depends(get_knowledge),
) -> ModelStatusResponse:
    """Lifecycle state, live buffer counts and class configuration."""
    info = service.lifecycle.info()
    return ModelStatusResponse(
        is_loaded=info["loaded"],
        model_info=info,
        memory_info=memory_info(),
        supported_classes=list(service.class_names),
        total_classes=len(service.class_names),
        confidence_threshold=service.threshold,
        input_shape=list(service.input_shape),
        disease_database=knowledge.keys(),
        healthy_classes=knowledge.by_status("healthy"),
        diseased_classes=knowledge.by_status("diseased"),
    )


@router.get("/classes", response_model=ClassesListResponse)
async def list_classes(service: LeafInferenceService = Depends(get_service)) -> ClassesListResponse:
    """List the classes in model-output order."""
    class_list = [ClassInfo(index=i, name=name) for i, name in enumerate(service.class_names)]
    return ClassesListResponse(classes=class_list, total=len(class_list))


@router.get(
    "/disease/{class_name}",
    response_model=DiseaseInfoResponse,
    responses={404: {"model": ErrorResponse, "description": "No record for this class"}},
)
async def disease_info(
    class_name: str,
    knowledge: DiseaseKnowledgeBase = Depends(get_knowledge),
) -> DiseaseInfoResponse:
    """Knowledge-base record for one class."""
    record = knowledge.get(class_name)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Disease not found for class: {class_name}")
    return DiseaseInfoResponse(
        class_name=class_name,
        disease_info=record.model_dump(exclude_none=True),
        is_healthy=knowledge.is_healthy(class_name),
        class_index=knowledge.class_index(class_name),
    )


@router.post("/model/reset", response_model=ResetResponse)
async def reset_model(service: LeafInferenceService = Depends(get_service)) -> ResetResponse:
    """
    Clear a FAILED load cycle and schedule a fresh background load.

    A no-op unless the model is in the FAILED state.
    """
    was_reset = service.lifecycle.reset()
    if was_reset:
        service.lifecycle.request_load()
    return ResetResponse(reset=was_reset, state=service.lifecycle.state.value)
