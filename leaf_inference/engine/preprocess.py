"""
Image Preprocessor
==================
Turn raw upload bytes into the exact tensor the model was trained on.

Pipeline (in order):

1. decode to an ``[H, W, 3]`` uint8 buffer
2. reverse channels, RGB -> BGR (the artifact was trained on BGR input)
3. bilinear resize to the model's input resolution
4. scale 0-255 to [0, 1]
5. add a batch dimension -> ``[1, H, W, 3]``

No state is kept between calls; every intermediate buffer is owned by a
:class:`~leaf_inference.engine.buffers.BufferScope` and released before
returning.
"""
from __future__ import annotations

import logging
from io import BytesIO

import numpy as np
import torch
import torch.nn.functional as F
from PIL import Image, UnidentifiedImageError

from leaf_inference import config
from leaf_inference.engine.buffers import BufferScope
from leaf_inference.errors import InvalidImageFormat


logger = logging.getLogger("leaf_inference.preprocess")


def decode_image(image_bytes: bytes) -> np.ndarray:
    """
    Decode raw bytes into an ``[H, W, 3]`` uint8 array in RGB order.

    Greyscale, palette and alpha images are forced to three channels, the
    same way a 3-channel decoder would.

    Raises
    ------
    InvalidImageFormat
        If the bytes are not a decodable image or do not yield 3 channels.
    """
    if not image_bytes:
        raise InvalidImageFormat("Empty image data")
    try:
        with Image.open(BytesIO(image_bytes)) as image:
            width, height = image.size
            if width * height > config.MAX_IMAGE_PIXELS:
                raise InvalidImageFormat(
                    f"Image too large: {width}x{height} exceeds {config.MAX_IMAGE_PIXELS} pixels"
                )
            image.load()
            pixels = np.array(image.convert("RGB"), dtype=np.uint8)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise InvalidImageFormat(f"Cannot decode image: {exc}") from exc

    if pixels.ndim != 3 or pixels.shape[2] != 3:
        raise InvalidImageFormat(
            f"Expected RGB image with shape [H, W, 3], got shape: {list(pixels.shape)}"
        )
    return pixels


def preprocess(
    image_bytes: bytes,
    input_shape: tuple[int, int, int] | None = None,
) -> torch.Tensor:
    """
    Run the full preprocessing pipeline.

    Parameters
    ----------
    image_bytes : bytes
        Raw file content of a JPEG / PNG / WebP image.
    input_shape : tuple, optional
        ``(height, width, channels)``.  Defaults to ``config.INPUT_SHAPE``.

    Returns
    -------
    torch.Tensor
        float32 tensor of shape ``[1, H, W, 3]`` with values in [0, 1].
    """
    height, width, _ = input_shape or config.INPUT_SHAPE

    with BufferScope() as scope:
        pixels = scope.track(decode_image(image_bytes))
        decoded = scope.track(torch.from_numpy(pixels))

        # RGB -> BGR
        bgr = scope.track(decoded.flip(-1))

        # Bilinear resize works on NCHW float
        nchw = scope.track(bgr.permute(2, 0, 1).unsqueeze(0).to(torch.float32))
        resized = scope.track(
            F.interpolate(nchw, size=(height, width), mode="bilinear", align_corners=False)
        )
        normalized = scope.track(resized.div(255.0))

        batched = scope.track(normalized.squeeze(0).permute(1, 2, 0).unsqueeze(0).contiguous())
        result = scope.detach(batched)

    logger.debug(
        "Preprocessed image to %s (released %d buffers)", list(result.shape), scope.released
    )
    return result
