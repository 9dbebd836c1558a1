from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import numpy as np


class DecodeError(RuntimeError):
    pass


class UnsupportedFormatError(DecodeError):
    pass


class EngineUnavailableError(DecodeError):
    """The native RAW engine is missing or failed; callers fall back to the preview path."""


@dataclass(eq=False)
class RawRaster:
    """Interleaved RGB raster returned by a native engine.

    ``transfer`` is ``"srgb"`` for 8-bit gamma-encoded pixels or ``"linear"``
    for 16-bit linear pixels.
    """

    width: int
    height: int
    pixels: np.ndarray
    transfer: str = "srgb"


class RawDecoder(Protocol):
    def decode(self, data: bytes) -> RawRaster:
        ...
