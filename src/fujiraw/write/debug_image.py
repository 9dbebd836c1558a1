from __future__ import annotations

from pathlib import Path

import numpy as np

from fujiraw.decode.types import LinearImage


def write_linear_debug_tiff(path: Path, image: LinearImage) -> Path:
    """Dump the unclamped float32 RGB buffer for inspection in external tools."""

    try:
        import tifffile  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("tifffile is required for debug TIFF output. Install with: pip install '.[io]'") from exc

    arr = np.ascontiguousarray(image.rgb, dtype=np.float32)
    path.parent.mkdir(parents=True, exist_ok=True)
    tifffile.imwrite(str(path), arr, photometric="rgb")
    return path
