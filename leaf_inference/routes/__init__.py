"""Routes package."""
from __future__ import annotations

from leaf_inference.routes import (  # noqa: I001
    detection,
    health,
)


__all__ = ["detection", "health"]
