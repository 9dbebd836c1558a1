from __future__ import annotations

import numpy as np


# Rec.709 / sRGB primaries and D65 white, CIE xy.
SRGB_PRIMARIES = np.array([[0.6400, 0.3300], [0.3000, 0.6000], [0.1500, 0.0600]], dtype=np.float64)
D65_WHITE = np.array([0.3127, 0.3290], dtype=np.float64)

LUMA_WEIGHTS = np.array([0.2126, 0.7152, 0.0722], dtype=np.float32)

_SRGB_ENCODED_CUT = 0.04045
_SRGB_LINEAR_CUT = 0.0031308


def xy_to_xyz(xy: np.ndarray) -> np.ndarray:
    x, y = float(xy[0]), float(xy[1])
    return np.array([x / y, 1.0, (1.0 - x - y) / y], dtype=np.float64)


def rgb_to_xyz_matrix(primaries: np.ndarray, white_xy: np.ndarray) -> np.ndarray:
    columns = [xy_to_xyz(primaries[i]) for i in range(3)]
    m = np.column_stack(columns)
    s = np.linalg.solve(m, xy_to_xyz(white_xy))
    return m * s


SRGB_TO_XYZ = rgb_to_xyz_matrix(SRGB_PRIMARIES, D65_WHITE)
XYZ_TO_SRGB = np.linalg.inv(SRGB_TO_XYZ)


def srgb_to_linear(byte_value: np.ndarray | float) -> np.ndarray | float:
    """Decode 8-bit sRGB code values (0..255) to linear light in [0, 1].

    Accepts a scalar or an array; scalars come back as Python floats.
    """

    v = np.asarray(byte_value, dtype=np.float64) / 255.0
    low = v / 12.92
    high = np.power((np.maximum(v, 0.0) + 0.055) / 1.055, 2.4)
    out = np.where(v <= _SRGB_ENCODED_CUT, low, high)
    if out.ndim == 0:
        return float(out)
    return out.astype(np.float32)


SRGB_TO_LINEAR_LUT = np.asarray(srgb_to_linear(np.arange(256)), dtype=np.float32)


def srgb_encode(linear: np.ndarray) -> np.ndarray:
    """Encode linear light to normalized sRGB signal. Input is clamped to [0, 1]."""

    x = np.clip(np.asarray(linear, dtype=np.float32), 0.0, 1.0)
    low = x * 12.92
    high = 1.055 * np.power(x, 1.0 / 2.4) - 0.055
    return np.where(x <= _SRGB_LINEAR_CUT, low, high).astype(np.float32)


def linear_to_srgb(linear: np.ndarray | float) -> np.ndarray | int:
    """Encode linear light to 8-bit sRGB codes; values above 1.0 saturate at 255."""

    x = np.nan_to_num(np.asarray(linear, dtype=np.float32), nan=0.0, posinf=1.0, neginf=0.0)
    code = np.rint(srgb_encode(x) * 255.0).astype(np.uint8)
    if code.ndim == 0:
        return int(code)
    return code


def linearize_srgb8(raster: np.ndarray) -> np.ndarray:
    codes = np.asarray(raster)
    if codes.dtype != np.uint8:
        raise ValueError(f"expected uint8 raster, got {codes.dtype}")
    return SRGB_TO_LINEAR_LUT[codes]


def linearize_unorm16(raster: np.ndarray) -> np.ndarray:
    return np.asarray(raster, dtype=np.float32) / 65535.0


def luma(rgb: np.ndarray) -> np.ndarray:
    x = np.asarray(rgb, dtype=np.float32)
    return x[..., 0] * LUMA_WEIGHTS[0] + x[..., 1] * LUMA_WEIGHTS[1] + x[..., 2] * LUMA_WEIGHTS[2]
