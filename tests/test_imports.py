# ============================================================================
# Leaf Inference Server - Import Validation Tests
# ============================================================================
# Purpose: Verify all critical modules import successfully
# ============================================================================


class TestCoreImports:
    """Test that core dependencies import without errors."""

    def test_import_torch(self):
        """Test PyTorch import."""
        import torch
        assert hasattr(torch, "__version__")

    def test_import_numpy(self):
        """Test NumPy import."""
        import numpy as np
        assert hasattr(np, "__version__")

    def test_import_pillow(self):
        """Test Pillow import."""
        from PIL import Image, ImageStat
        assert hasattr(Image, "open")
        assert hasattr(ImageStat, "Stat")

    def test_import_fastapi(self):
        """Test FastAPI and Pydantic import."""
        import fastapi
        import pydantic
        assert hasattr(fastapi, "FastAPI")
        assert pydantic.VERSION.startswith("2")


class TestProjectImports:
    """Test that project modules import without errors."""

    def test_import_engine(self):
        from leaf_inference.engine import (
            aggregator,
            buffers,
            executor,
            fallback,
            lifecycle,
            preprocess,
            service,
            source,
        )
        assert callable(preprocess.preprocess)
        assert callable(aggregator.aggregate)
        assert hasattr(lifecycle, "ModelLifecycleManager")
        assert hasattr(executor, "InferenceExecutor")
        assert hasattr(fallback, "FallbackPredictor")
        assert hasattr(service, "LeafInferenceService")
        assert callable(source.fetch_and_load)
        assert callable(buffers.memory_info)

    def test_import_config(self):
        from leaf_inference import config
        assert config.INPUT_SHAPE[2] == 3
        assert config.MAX_LOAD_ATTEMPTS >= 1
        assert len(config.get_class_names()) == 10

    def test_import_app(self):
        from leaf_inference.app import app
        paths = {route.path for route in app.routes}
        assert "/api/detection/analyze" in paths
        assert "/health/ready" in paths

    def test_model_states(self):
        from leaf_inference.engine.lifecycle import ModelState
        assert [s.value for s in ModelState] == ["unloaded", "loading", "ready", "failed"]
