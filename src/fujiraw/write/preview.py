from __future__ import annotations

import io
from pathlib import Path

import numpy as np
from PIL import Image

from fujiraw.color.transfer import linear_to_srgb
from fujiraw.decode.types import LinearImage


_FORMATS = {"png": "PNG", "jpeg": "JPEG", "jpg": "JPEG"}


def to_display_raster(image: LinearImage) -> np.ndarray:
    """Clamp and sRGB-encode the RGB channels into an HxWx3 uint8 raster."""
    return np.asarray(linear_to_srgb(image.rgb), dtype=np.uint8)


def encode_raster(raster: np.ndarray, fmt: str = "png", quality: int = 92) -> bytes:
    pil_format = _FORMATS.get(fmt.lower())
    if pil_format is None:
        raise ValueError(f"unsupported preview format {fmt!r}; expected one of {sorted(_FORMATS)}")
    buf = io.BytesIO()
    img = Image.fromarray(np.ascontiguousarray(raster, dtype=np.uint8))
    if pil_format == "JPEG":
        img.save(buf, format=pil_format, quality=int(quality))
    else:
        img.save(buf, format=pil_format)
    return buf.getvalue()


def encode_preview(image: LinearImage, fmt: str = "png", quality: int = 92) -> bytes:
    return encode_raster(to_display_raster(image), fmt=fmt, quality=quality)


def write_preview(path: Path, image: LinearImage, fmt: str | None = None, quality: int = 92) -> Path:
    fmt = fmt or path.suffix.lstrip(".") or "png"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(encode_preview(image, fmt=fmt, quality=quality))
    return path
