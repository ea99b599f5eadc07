# ============================================================================
# Leaf Inference Server - Fallback Predictor Tests
# ============================================================================
# Purpose: Brightness banding, determinism and the never-raise guarantee
# ============================================================================

import pytest

from leaf_inference.engine.fallback import (
    BRIGHT,
    DARK,
    DEFAULT,
    MODERATE,
    FallbackPredictor,
    mean_brightness,
    select_band,
)


@pytest.fixture
def predictor(class_names):
    return FallbackPredictor(class_names, healthy_class="Healthy")


class TestBrightness:
    """Brightness statistic and band selection."""

    def test_mean_brightness_of_solid_grey(self, solid_image_bytes):
        assert mean_brightness(solid_image_bytes(color=(51, 51, 51))) == pytest.approx(0.2)

    def test_mean_brightness_averages_channels(self, solid_image_bytes):
        value = mean_brightness(solid_image_bytes(color=(255, 0, 0)))
        assert value == pytest.approx(1 / 3)

    @pytest.mark.parametrize("brightness,band", [
        (0.95, BRIGHT),
        (0.71, BRIGHT),
        (0.70, MODERATE),
        (0.50, MODERATE),
        (0.30, MODERATE),
        (0.29, DARK),
        (0.0, DARK),
    ])
    def test_band_edges(self, brightness, band):
        assert select_band(brightness) is band


class TestFallbackDistribution:
    """Constant distributions returned for each band."""

    def test_bright_images_share_distribution(self, predictor, solid_image_bytes):
        """Brightness 0.90 and 0.95 both land in the bright band."""
        a = predictor.fallback(solid_image_bytes(color=(230, 230, 230)))
        b = predictor.fallback(solid_image_bytes(color=(242, 242, 242)))
        assert a == b
        assert a[2] == pytest.approx(0.80)
        assert max(a) == a[2]

    def test_mid_brightness_is_moderate(self, predictor, solid_image_bytes):
        vector = predictor.fallback(solid_image_bytes(color=(128, 128, 128)))
        assert vector == predictor.distribution(MODERATE)
        assert vector[2] == pytest.approx(0.65)

    def test_dark_images_are_diffuse(self, predictor, solid_image_bytes):
        vector = predictor.fallback(solid_image_bytes(color=(20, 20, 20)))
        assert vector == predictor.distribution(DARK)
        assert max(vector) <= 0.25
        assert vector[2] < max(vector)

    def test_unreadable_image_returns_default(self, predictor):
        """Garbage bytes never raise."""
        vector = predictor.fallback(b"not an image at all")
        assert vector == predictor.distribution(DEFAULT)
        assert vector[2] == pytest.approx(0.70)

    def test_deterministic(self, predictor, noise_image_bytes):
        assert predictor.fallback(noise_image_bytes) == predictor.fallback(noise_image_bytes)

    @pytest.mark.parametrize("band", [BRIGHT, DARK, MODERATE, DEFAULT])
    def test_length_and_mass(self, predictor, class_names, band):
        vector = predictor.distribution(band)
        assert len(vector) == len(class_names)
        assert sum(vector) == pytest.approx(1.0)

    def test_peak_follows_healthy_index(self):
        """The healthy weight sits at the healthy class's position."""
        names = ("Healthy", "Blight", "Mold")
        vector = FallbackPredictor(names, healthy_class="Healthy").distribution(BRIGHT)
        assert vector[0] == pytest.approx(0.80)
        assert vector[1] == pytest.approx(0.10)

    def test_uniform_without_healthy_class(self):
        vector = FallbackPredictor(("A", "B", "C", "D"), healthy_class="Healthy").distribution(BRIGHT)
        assert vector == [0.25, 0.25, 0.25, 0.25]

    def test_returns_fresh_lists(self, predictor):
        a = predictor.distribution(BRIGHT)
        a[0] = 99.0
        assert predictor.distribution(BRIGHT)[0] != 99.0
