"""Correlated colour temperature / tint estimation and the matching channel gains.

Temperatures follow the Planckian locus (Kim et al. cubic approximation, CIE
1960 uv). The locus is anchored so that an sRGB neutral (D65) sits exactly at
the pipeline reference of 6500 K / tint 0. Tint is the signed distance from
the locus: positive values mean a greener illuminant, which the pipeline
compensates towards magenta.
"""

from __future__ import annotations

from dataclasses import dataclass
import math

import numpy as np

from .transfer import D65_WHITE, SRGB_TO_XYZ, XYZ_TO_SRGB


REFERENCE_TEMPERATURE = 6500.0
REFERENCE_TINT = 0.0
MIN_TEMPERATURE = 2000.0
MAX_TEMPERATURE = 12000.0
MAX_TINT = 50.0
TINT_DUV_SCALE = 0.0005

_EPS = 1e-6


class EstimationError(ValueError):
    pass


@dataclass(frozen=True)
class WhiteBalanceEstimate:
    temperature: float
    tint: float


def _locus_xy(temperature: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    t = np.clip(np.asarray(temperature, dtype=np.float64), 1667.0, 25000.0)
    t2 = t * t
    t3 = t2 * t
    x = np.where(
        t <= 4000.0,
        -0.2661239e9 / t3 - 0.2343589e6 / t2 + 0.8776956e3 / t + 0.179910,
        -3.0258469e9 / t3 + 2.1070379e6 / t2 + 0.2226347e3 / t + 0.240390,
    )
    x2 = x * x
    x3 = x2 * x
    y = np.where(
        t <= 2222.0,
        -1.1063814 * x3 - 1.34811020 * x2 + 2.18555832 * x - 0.20219683,
        np.where(
            t <= 4000.0,
            -0.9549476 * x3 - 1.37418593 * x2 + 2.09137015 * x - 0.16748867,
            3.0817580 * x3 - 5.87338670 * x2 + 3.75112997 * x - 0.37001483,
        ),
    )
    return x, y


def _xy_to_uv(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    d = -2.0 * x + 12.0 * y + 3.0
    return np.stack([4.0 * x / d, 6.0 * y / d], axis=-1)


def _uv_to_xy(uv: np.ndarray) -> tuple[float, float]:
    u, v = float(uv[0]), float(uv[1])
    d = 2.0 * u - 8.0 * v + 4.0
    return 3.0 * u / d, 2.0 * v / d


def locus_uv(temperature: np.ndarray | float) -> np.ndarray:
    x, y = _locus_xy(temperature)
    return _xy_to_uv(x, y)


def _locus_normal(temperature: float) -> np.ndarray:
    # Unit normal pointing above the locus (towards green).
    step = max(1.0, temperature * 1e-3)
    tangent = locus_uv(temperature + step) - locus_uv(temperature - step)
    normal = np.array([-tangent[1], tangent[0]], dtype=np.float64)
    normal /= np.linalg.norm(normal)
    if normal[1] < 0.0:
        normal = -normal
    return normal


_D65_UV = _xy_to_uv(np.float64(D65_WHITE[0]), np.float64(D65_WHITE[1]))
_REFERENCE_UV = locus_uv(REFERENCE_TEMPERATURE)
_ANCHOR_OFFSET = _REFERENCE_UV - _D65_UV

# Dense mired grid for the nearest-point search.
_GRID_MIREDS = np.linspace(1e6 / MAX_TEMPERATURE, 1e6 / MIN_TEMPERATURE, 4001)
_GRID_UV = locus_uv(1e6 / _GRID_MIREDS)


def clamp_temperature(value: float) -> float:
    return float(min(MAX_TEMPERATURE, max(MIN_TEMPERATURE, value)))


def clamp_tint(value: float) -> float:
    return float(min(MAX_TINT, max(-MAX_TINT, value)))


def _rgb_to_anchored_uv(rgb: np.ndarray) -> np.ndarray:
    xyz = SRGB_TO_XYZ @ rgb
    total = float(np.sum(xyz))
    if total <= _EPS:
        raise EstimationError(f"sample has no defined chromaticity: {rgb.tolist()}")
    x, y = xyz[0] / total, xyz[1] / total
    return _xy_to_uv(np.float64(x), np.float64(y)) + _ANCHOR_OFFSET


def _refine_mired(target_uv: np.ndarray, lo: float, hi: float) -> float:
    # Golden-section search on squared uv distance within one grid bracket.
    ratio = (math.sqrt(5.0) - 1.0) / 2.0

    def dist(mired: float) -> float:
        d = locus_uv(1e6 / mired) - target_uv
        return float(d @ d)

    a, b = lo, hi
    c = b - ratio * (b - a)
    d = a + ratio * (b - a)
    fc, fd = dist(c), dist(d)
    for _ in range(40):
        if fc < fd:
            b, d, fd = d, c, fc
            c = b - ratio * (b - a)
            fc = dist(c)
        else:
            a, c, fc = c, d, fd
            d = a + ratio * (b - a)
            fd = dist(d)
    return (a + b) / 2.0


def estimate_temperature_tint(r: float, g: float, b: float) -> WhiteBalanceEstimate:
    """Estimate the temperature/tint that renders the linear sample neutral."""

    rgb = np.array([r, g, b], dtype=np.float64)
    if not np.all(np.isfinite(rgb)):
        raise EstimationError(f"sample contains non-finite values: {rgb.tolist()}")
    rgb = np.maximum(rgb, 0.0)
    if float(np.max(rgb)) <= _EPS:
        raise EstimationError("sample is black; no chromaticity is defined")

    target = _rgb_to_anchored_uv(rgb)

    d2 = np.sum((_GRID_UV - target) ** 2, axis=-1)
    idx = int(np.argmin(d2))
    lo = _GRID_MIREDS[max(0, idx - 1)]
    hi = _GRID_MIREDS[min(len(_GRID_MIREDS) - 1, idx + 1)]
    mired = _refine_mired(target, float(lo), float(hi))
    temperature = 1e6 / mired

    duv = float((target - locus_uv(temperature)) @ _locus_normal(temperature))
    tint = duv / TINT_DUV_SCALE

    return WhiteBalanceEstimate(temperature=clamp_temperature(temperature), tint=clamp_tint(tint))


def illuminant_rgb(temperature: float, tint: float) -> np.ndarray:
    """Linear sRGB colour of the (anchored) illuminant, normalized to G == 1."""

    temperature = clamp_temperature(temperature)
    tint = clamp_tint(tint)
    uv = locus_uv(temperature) + tint * TINT_DUV_SCALE * _locus_normal(temperature) - _ANCHOR_OFFSET
    x, y = _uv_to_xy(uv)
    xyz = np.array([x / y, 1.0, (1.0 - x - y) / y], dtype=np.float64)
    rgb = np.maximum(XYZ_TO_SRGB @ xyz, 1e-4)
    return rgb / rgb[1]


def white_balance_gains(temperature: float, tint: float) -> tuple[float, float, float]:
    """Per-channel multipliers (R, G, B) for the develop white-balance stage; G is 1."""

    if temperature == REFERENCE_TEMPERATURE and tint == REFERENCE_TINT:
        return (1.0, 1.0, 1.0)
    illum = illuminant_rgb(temperature, tint)
    return (float(1.0 / illum[0]), 1.0, float(1.0 / illum[2]))


def sample_neutral_patch(rgb: np.ndarray, x: int, y: int, radius: int = 0) -> tuple[float, float, float]:
    """Average a (2r+1)^2 patch around (x, y) of an (H, W, C) buffer, clamped to the image."""

    h, w = rgb.shape[0], rgb.shape[1]
    if not (0 <= x < w and 0 <= y < h):
        raise EstimationError(f"sample point ({x}, {y}) outside image {w}x{h}")
    radius = max(0, int(radius))
    patch = rgb[max(0, y - radius):min(h, y + radius + 1), max(0, x - radius):min(w, x + radius + 1), :3]
    mean = patch.reshape((-1, 3)).mean(axis=0)
    return (float(mean[0]), float(mean[1]), float(mean[2]))
