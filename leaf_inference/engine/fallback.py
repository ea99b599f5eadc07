"""
Fallback Predictor
==================
Heuristic stand-in used when the model is not READY or a forward pass
fails.  It is not a classifier: it reads one statistic, the mean
brightness of the image, and returns one of a few constant distributions
biased toward the healthy class.

    brightness > 0.7   -> healthy peak 0.80
    brightness < 0.3   -> diffuse, disease-leaning (healthy 0.05)
    otherwise          -> healthy peak 0.65
    unreadable image   -> healthy peak 0.70

Results built from these vectors carry ``is_fallback=True``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO

from PIL import Image, ImageStat

from leaf_inference import config


logger = logging.getLogger("leaf_inference.fallback")

BRIGHT_THRESHOLD = 0.7
DARK_THRESHOLD = 0.3


@dataclass(frozen=True)
class BrightnessBand:
    """One constant distribution, described by the healthy-class weight."""

    name: str
    healthy_weight: float


BRIGHT = BrightnessBand("bright", 0.80)
DARK = BrightnessBand("dark", 0.05)
MODERATE = BrightnessBand("moderate", 0.65)
DEFAULT = BrightnessBand("default", 0.70)


def mean_brightness(image_bytes: bytes) -> float:
    """Mean pixel intensity over all RGB channels, scaled to [0, 1]."""
    with Image.open(BytesIO(image_bytes)) as image:
        stat = ImageStat.Stat(image.convert("RGB"))
    return sum(stat.mean) / len(stat.mean) / 255.0


def select_band(brightness: float) -> BrightnessBand:
    if brightness > BRIGHT_THRESHOLD:
        return BRIGHT
    if brightness < DARK_THRESHOLD:
        return DARK
    return MODERATE


class FallbackPredictor:
    """Brightness-banded constant distributions over a fixed class list."""

    def __init__(
        self,
        class_names: tuple[str, ...] | list[str] | None = None,
        healthy_class: str | None = None,
    ) -> None:
        self.class_names = tuple(class_names or config.get_class_names())
        self.healthy_class = healthy_class or config.HEALTHY_CLASS
        try:
            self.healthy_index: int | None = self.class_names.index(self.healthy_class)
        except ValueError:
            logger.warning(
                "Healthy class %r not in class list; fallback will be uniform",
                self.healthy_class,
            )
            self.healthy_index = None
        self._vectors = {
            band.name: self._build_vector(band) for band in (BRIGHT, DARK, MODERATE, DEFAULT)
        }

    def _build_vector(self, band: BrightnessBand) -> tuple[float, ...]:
        n = len(self.class_names)
        if self.healthy_index is None or n == 1:
            return tuple([1.0 / n] * n) if n > 1 else (band.healthy_weight,)
        share = (1.0 - band.healthy_weight) / (n - 1)
        return tuple(
            band.healthy_weight if i == self.healthy_index else share for i in range(n)
        )

    def distribution(self, band: BrightnessBand) -> list[float]:
        """The constant vector for ``band``, indexed like the class list."""
        return list(self._vectors[band.name])

    def fallback(self, image_bytes: bytes) -> list[float]:
        """
        Heuristic probability vector for ``image_bytes``.

        Never raises: if brightness cannot be computed the default
        distribution is returned.
        """
        try:
            brightness = mean_brightness(image_bytes)
        except Exception as exc:
            logger.warning("Brightness analysis failed (%s); using default distribution", exc)
            return self.distribution(DEFAULT)

        band = select_band(brightness)
        logger.info("Fallback prediction: brightness %.3f -> %s band", brightness, band.name)
        return self.distribution(band)
