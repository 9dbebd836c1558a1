from __future__ import annotations

import io
import logging

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from fujiraw.color.transfer import linearize_srgb8

from .base import DecodeError
from .types import LinearImage


logger = logging.getLogger(__name__)


def decode_srgb8(data: bytes) -> np.ndarray:
    """Decode a JPEG/PNG byte stream into an upright HxWx3 uint8 sRGB raster."""

    try:
        with Image.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            rgb = img.convert("RGB")
            return np.asarray(rgb, dtype=np.uint8).copy()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise DecodeError(f"could not decode image stream: {exc}") from exc


def decode_jpeg(data: bytes, channels: int = 3) -> LinearImage:
    raster = decode_srgb8(data)
    logger.debug("decoded %sx%s 8-bit raster", raster.shape[1], raster.shape[0])
    image = LinearImage(linearize_srgb8(raster))
    return image.with_alpha() if channels == 4 else image
