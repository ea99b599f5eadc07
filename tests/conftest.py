# ============================================================================
# Leaf Inference Server - Pytest Configuration
# ============================================================================
# Purpose: Shared fixtures, fake models and image factories for all tests
# ============================================================================

import os
import sys
from io import BytesIO
from pathlib import Path

import numpy as np
import pytest
import torch
from PIL import Image
from torch import nn


# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Keep model downloads out of the source tree during tests
os.environ.setdefault("LEAF_MODEL_CACHE_DIR", str(PROJECT_ROOT / ".pytest_model_cache"))


# =============================================================================
# Fake Models
# =============================================================================

class ConstantModel(nn.Module):
    """Returns the same vector for every item in the batch."""

    def __init__(self, values: list[float]):
        super().__init__()
        self.register_buffer("values", torch.tensor(values, dtype=torch.float32))

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.values.unsqueeze(0).expand(x.shape[0], -1)


class FailingModel(nn.Module):
    """Raises on every forward pass."""

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        raise RuntimeError("forward exploded")


class ShapeCheckingModel(nn.Module):
    """Fails unless it receives an NHWC batch of the expected size."""

    def __init__(self, input_shape: tuple[int, int, int], num_classes: int):
        super().__init__()
        self.input_shape = tuple(input_shape)
        self.num_classes = num_classes

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        if tuple(x.shape[1:]) != self.input_shape:
            raise ValueError(f"unexpected input shape {tuple(x.shape)}")
        out = torch.zeros(x.shape[0], self.num_classes)
        out[:, 0] = 1.0
        return out


# =============================================================================
# Class & Shape Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def class_names():
    """The 10 tomato classes, in model-output order."""
    from leaf_inference.config import get_class_names
    return get_class_names()


@pytest.fixture(scope="session")
def num_classes(class_names):
    return len(class_names)


@pytest.fixture(scope="session")
def input_shape():
    """Small input resolution to keep tests fast."""
    return (32, 32, 3)


@pytest.fixture
def scenario_vector():
    """Healthy (index 2) at 0.80."""
    return [0.05, 0.05, 0.80, 0.03, 0.02, 0.02, 0.01, 0.01, 0.01, 0.00]


# =============================================================================
# Image Fixtures
# =============================================================================

def encode_image(image: Image.Image, fmt: str = "PNG") -> bytes:
    buf = BytesIO()
    image.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def solid_image_bytes():
    """Factory: PNG bytes of a single-colour image."""
    def _make(color=(128, 128, 128), size=(48, 40), mode="RGB"):
        return encode_image(Image.new(mode, size, color))
    return _make


@pytest.fixture
def noise_image_bytes():
    """PNG bytes of a seeded random RGB image (well above 1 KB)."""
    rng = np.random.default_rng(0)
    pixels = rng.integers(0, 256, size=(64, 64, 3), dtype=np.uint8)
    return encode_image(Image.fromarray(pixels))


# =============================================================================
# Lifecycle Fixtures
# =============================================================================

class Recorder:
    """Collects calls made to injected sleep/fetch functions."""

    def __init__(self):
        self.calls = []

    def __call__(self, *args):
        self.calls.append(args)


@pytest.fixture
def no_sleep():
    return Recorder()


@pytest.fixture
def make_lifecycle(class_names, input_shape, no_sleep):
    """Factory for a lifecycle manager with an injected fetcher and sleep."""
    from leaf_inference.engine.lifecycle import ModelLifecycleManager

    def _make(fetcher, **kwargs):
        kwargs.setdefault("class_names", class_names)
        kwargs.setdefault("input_shape", input_shape)
        kwargs.setdefault("device", "cpu")
        kwargs.setdefault("model_url", "https://example.invalid/model.pt")
        kwargs.setdefault("sleep", no_sleep)
        return ModelLifecycleManager(fetcher=fetcher, **kwargs)

    return _make


@pytest.fixture
def failing_fetcher():
    """Fetcher that always raises, recording each call."""
    calls = []

    def _fetch(url, device):
        calls.append(url)
        raise ConnectionError("network unreachable")

    _fetch.calls = calls
    return _fetch


# =============================================================================
# Pytest Hooks
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "integration: mark as integration test")


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless explicitly requested."""
    if not config.getoption("--runslow", default=False):
        skip_slow = pytest.mark.skip(reason="need --runslow option to run")
        for item in items:
            if "slow" in item.keywords:
                item.add_marker(skip_slow)


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--runslow",
        action="store_true",
        default=False,
        help="run slow tests"
    )
