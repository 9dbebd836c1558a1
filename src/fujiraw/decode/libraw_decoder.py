from __future__ import annotations

import io
import logging

import numpy as np

from .base import EngineUnavailableError, RawRaster


logger = logging.getLogger(__name__)

try:
    import rawpy  # type: ignore
except Exception:  # pragma: no cover - dependency is optional
    rawpy = None


def libraw_available() -> bool:
    return rawpy is not None


class LibRawDecoder:
    """Native RAW engine backed by rawpy (LibRaw).

    Demosaics with camera white balance into 16-bit linear sRGB-primaries RGB.
    """

    def __init__(self, half_size: bool = False) -> None:
        if not libraw_available():
            raise EngineUnavailableError("rawpy is required for native RAW decode: pip install '.[raw]'")
        self.half_size = half_size

    def decode(self, data: bytes) -> RawRaster:
        try:
            with rawpy.imread(io.BytesIO(bytes(data))) as raw:
                rgb = raw.postprocess(
                    output_color=rawpy.ColorSpace.sRGB,
                    gamma=(1.0, 1.0),
                    no_auto_bright=True,
                    use_camera_wb=True,
                    output_bps=16,
                    demosaic_algorithm=rawpy.DemosaicAlgorithm.AHD,
                    half_size=self.half_size,
                    highlight_mode=rawpy.HighlightMode.Clip,
                )
        except Exception as exc:
            raise EngineUnavailableError(f"LibRaw decode failed: {exc}") from exc

        pixels = np.asarray(rgb)
        if pixels.ndim != 3 or pixels.shape[2] < 3:
            raise EngineUnavailableError(f"unexpected decoded shape from LibRaw: {pixels.shape}")

        height, width = pixels.shape[:2]
        logger.debug("LibRaw decoded %sx%s", width, height)
        return RawRaster(width=width, height=height, pixels=pixels[..., :3], transfer="linear")
