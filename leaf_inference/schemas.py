"""
Pydantic Schemas
================
Request / response models for the inference server API.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Health Check Schemas
# =============================================================================

class HealthResponse(BaseModel):
    """Basic health check response."""
    model_config = ConfigDict(protected_namespaces=())

    status: str = Field(default="healthy", examples=["healthy"])
    model_loaded: bool = Field(..., examples=[True])
    memory: dict[str, int] = Field(default_factory=dict)


class ReadyResponse(BaseModel):
    """Readiness probe response — indicates model is loaded."""
    ready: bool = Field(..., examples=[True])
    state: str = Field(..., examples=["ready"])
    num_classes: int = Field(..., examples=[10])
    device: str = Field(..., examples=["cpu"])


class LiveResponse(BaseModel):
    """Liveness probe response — indicates process is running."""
    live: bool = Field(default=True, examples=[True])


# =============================================================================
# Inference Schemas
# =============================================================================

class RankedPredictionSchema(BaseModel):
    """One entry in a ranked prediction list."""
    class_name: str = Field(..., examples=["Healthy"])
    confidence: float = Field(..., examples=[0.8])
    percentage: str = Field(..., examples=["80.0"])


class DetectionResult(BaseModel):
    """Classification plus the disease record of the detected class."""
    detected_class: str = Field(..., examples=["Healthy"])
    disease: str = Field(..., examples=["Healthy Plant"])
    confidence: float = Field(..., ge=0.0, le=100.0, examples=[80.0])
    status: str = Field(..., examples=["healthy"])
    description: str
    treatment: list[str]
    scientific_name: str | None = None
    symptoms: list[str] = Field(default_factory=list)
    prevention: list[str] = Field(default_factory=list)
    maintenance: list[str] = Field(default_factory=list)
    care_instructions: list[str] = Field(default_factory=list)
    biological_control: list[str] | None = None
    fungicides: list[str] | None = None
    resistant_varieties: list[str] | None = None
    vector: str | None = None
    transmission: str | None = None
    emergency: str | None = None
    predictions: list[RankedPredictionSchema]
    all_predictions: list[RankedPredictionSchema]
    is_high_confidence: bool
    is_fallback: bool = Field(..., description="True when answered by the brightness heuristic")
    warning: str | None = None


class ModelSummary(BaseModel):
    """Model facts attached to each analysis response."""
    is_loaded: bool
    state: str
    classes: int
    confidence_threshold: float


class AnalyzeResponse(BaseModel):
    """Response of ``POST /api/detection/analyze``."""
    model_config = ConfigDict(protected_namespaces=())

    success: bool = True
    message: str = "Image analysis complete"
    result: DetectionResult
    timestamp: str = Field(..., examples=["2025-02-06T12:34:56.789Z"])
    filename: str | None = None
    size: int
    model_info: ModelSummary


class ErrorResponse(BaseModel):
    """Body of every error raised through ``HTTPException``."""
    detail: str = Field(..., examples=["Cannot decode image: cannot identify image file"])


# =============================================================================
# Model & Class Schemas
# =============================================================================

class ModelStatusResponse(BaseModel):
    """Lifecycle state, memory and class configuration."""
    model_config = ConfigDict(protected_namespaces=())

    is_loaded: bool
    model_info: dict
    memory_info: dict[str, int]
    supported_classes: list[str]
    total_classes: int
    confidence_threshold: float
    input_shape: list[int]
    disease_database: list[str]
    healthy_classes: list[str]
    diseased_classes: list[str]


class DiseaseInfoResponse(BaseModel):
    """Knowledge-base entry for one class."""
    class_name: str
    disease_info: dict
    is_healthy: bool
    class_index: int


class ClassInfo(BaseModel):
    """Information about a disease class."""
    index: int = Field(..., examples=[0])
    name: str = Field(..., examples=["Healthy"])


class ClassesListResponse(BaseModel):
    """List of all classification classes."""
    classes: list[ClassInfo]
    total: int = Field(..., examples=[10])


class ResetResponse(BaseModel):
    """Outcome of a manual lifecycle reset."""
    reset: bool
    state: str
