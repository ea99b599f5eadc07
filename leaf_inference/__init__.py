"""
Leaf Inference Package
======================
FastAPI inference server for tomato leaf disease classification.

Provides:
- Model lifecycle with bounded retries (load / retry / unload)
- Deterministic image preprocessing and forward-pass execution
- Brightness-based fallback when the model is unavailable
- Ranked, thresholded results enriched from a disease knowledge base
"""
from __future__ import annotations


__version__ = "0.1.0"
