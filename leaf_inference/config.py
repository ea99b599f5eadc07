"""
Server Configuration
====================
Centralized configuration for the leaf inference server.
All settings are read from environment variables with sensible defaults.
"""
from __future__ import annotations

import os
from pathlib import Path


# =============================================================================
# Path Configuration
# =============================================================================
BASE_DIR = Path(os.environ.get("LEAF_BASE_DIR", Path(__file__).parent.parent))
MODEL_CACHE_DIR = Path(os.environ.get("LEAF_MODEL_CACHE_DIR", BASE_DIR / "model_cache"))
KNOWLEDGE_PATH = Path(
    os.environ.get("LEAF_KNOWLEDGE_PATH", Path(__file__).parent / "data" / "diseases.json")
)

# =============================================================================
# Model Configuration
# =============================================================================
# TorchScript artifact; http(s) URL, file:// URL or plain local path
MODEL_URL: str = os.environ.get(
    "INFERENCE_MODEL_URL",
    "https://huggingface.co/leaf-inference/tomato-leaf-torchscript/resolve/main/model.pt",
)
DEVICE: str = os.environ.get("INFERENCE_DEVICE", "cpu")

# (height, width, channels) expected by the artifact
INPUT_SHAPE: tuple[int, int, int] = (
    int(os.environ.get("INFERENCE_IMG_HEIGHT", "224")),
    int(os.environ.get("INFERENCE_IMG_WIDTH", "224")),
    3,
)

CONFIDENCE_THRESHOLD: float = float(os.environ.get("INFERENCE_CONFIDENCE_THRESHOLD", "0.7"))
APPLY_SOFTMAX: bool = os.environ.get("INFERENCE_APPLY_SOFTMAX", "false").lower() in ("1", "true", "yes")

# =============================================================================
# Lifecycle Configuration
# =============================================================================
MAX_LOAD_ATTEMPTS: int = int(os.environ.get("INFERENCE_MAX_LOAD_ATTEMPTS", "3"))
LOAD_BACKOFF_S: float = float(os.environ.get("INFERENCE_LOAD_BACKOFF_S", "5"))
LOAD_TIMEOUT_S: float = float(os.environ.get("INFERENCE_LOAD_TIMEOUT_S", "45"))
PREDICT_TIMEOUT_S: float = float(os.environ.get("INFERENCE_PREDICT_TIMEOUT_S", "30"))
# Seconds after a FAILED load cycle before a request may schedule another one
RETRY_COOLDOWN_S: float = float(os.environ.get("INFERENCE_RETRY_COOLDOWN_S", "300"))

# =============================================================================
# Server Configuration
# =============================================================================
HOST: str = os.environ.get("INFERENCE_HOST", "0.0.0.0")
PORT: int = int(os.environ.get("INFERENCE_PORT", "5001"))
LOG_LEVEL: str = os.environ.get("INFERENCE_LOG_LEVEL", "INFO")

# Upload limits enforced by the HTTP layer, before the core sees any bytes
ALLOWED_MIME_TYPES: tuple[str, ...] = ("image/jpeg", "image/jpg", "image/png", "image/webp")
MIN_UPLOAD_BYTES: int = 1024
MAX_UPLOAD_BYTES: int = int(os.environ.get("INFERENCE_MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
# Decoded canvas cap; a small compressed file can declare a huge image
MAX_IMAGE_PIXELS: int = int(os.environ.get("INFERENCE_MAX_IMAGE_PIXELS", str(40_000_000)))

# =============================================================================
# Class Names (order must match the model output)
# =============================================================================
HEALTHY_CLASS: str = os.environ.get("INFERENCE_HEALTHY_CLASS", "Healthy")

_DEFAULT_CLASS_NAMES: tuple[str, ...] = (
    "Bacterial_spot",
    "Early_blight",
    "Healthy",
    "Late_blight",
    "Leaf_Mold",
    "Septoria_leaf_spot",
    "Target_Spot",
    "Two-spotted_spider_mite",
    "Yellow_Leaf_Curl_Virus",
    "mosaic_virus",
)


def get_class_names() -> tuple[str, ...]:
    """
    Return the ordered class list.

    ``INFERENCE_CLASS_NAMES`` (comma-separated) overrides the built-in
    10-class tomato list.
    """
    raw = os.environ.get("INFERENCE_CLASS_NAMES", "")
    names = tuple(name.strip() for name in raw.split(",") if name.strip())
    return names or _DEFAULT_CLASS_NAMES
