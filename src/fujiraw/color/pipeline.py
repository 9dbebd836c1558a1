from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Any

import numpy as np

from fujiraw.decode.types import LinearImage

from .lut_cube import LutTable
from .settings import DevelopSettings
from .transfer import luma
from .white_balance import white_balance_gains


logger = logging.getLogger(__name__)

TONE_PIVOT = 0.18
HIGHLIGHT_ROLLOFF_STOPS = 2.5
SHADOW_ROLLOFF_STOPS = 4.0
TONE_MAX_SHIFT_STOPS = 1.0
SHARPEN_RADIUS = 1
SHARPEN_GAIN = 1.5
GRAIN_MAX_AMPLITUDE = 0.12
GRAIN_SEED = 0x5EED

_LUMA_FLOOR = 1e-6


def _smoothstep(edge0: float, edge1: float, x: np.ndarray) -> np.ndarray:
    t = np.clip((x - edge0) / (edge1 - edge0), 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


def apply_white_balance(rgb: np.ndarray, temperature: float, tint: float) -> np.ndarray:
    gain_r, _, gain_b = white_balance_gains(temperature, tint)
    out = rgb.copy()
    out[..., 0] *= np.float32(gain_r)
    out[..., 2] *= np.float32(gain_b)
    return out


def apply_exposure(rgb: np.ndarray, stops: float) -> np.ndarray:
    return rgb * np.float32(2.0 ** stops)


def tone_curve(y: np.ndarray, contrast: float, highlights: float, shadows: float) -> np.ndarray:
    """Map luma through the pivoted contrast and highlight/shadow roll-offs.

    Works in log2 stops around TONE_PIVOT, so the pivot maps to itself when
    highlights and shadows are zero. Monotonic for all slider values.
    """

    s = np.log2(np.maximum(y, _LUMA_FLOOR) / TONE_PIVOT)
    s = s * (2.0 ** (contrast / 100.0))
    w_high = _smoothstep(0.0, HIGHLIGHT_ROLLOFF_STOPS, s)
    w_shadow = _smoothstep(0.0, SHADOW_ROLLOFF_STOPS, -s)
    s = s + (highlights / 100.0) * TONE_MAX_SHIFT_STOPS * w_high + (shadows / 100.0) * TONE_MAX_SHIFT_STOPS * w_shadow
    return (TONE_PIVOT * np.power(2.0, s)).astype(np.float32)


def apply_tone(rgb: np.ndarray, contrast: float, highlights: float, shadows: float) -> np.ndarray:
    y = luma(rgb)
    mapped = tone_curve(y, contrast, highlights, shadows)
    valid = y > _LUMA_FLOOR
    ratio = np.where(valid, mapped / np.where(valid, y, 1.0), 1.0).astype(np.float32)
    return rgb * ratio[..., None]


def apply_saturation(rgb: np.ndarray, saturation: float) -> np.ndarray:
    factor = 1.0 + saturation / 100.0
    y = luma(rgb)[..., None]
    chroma = rgb - y
    if factor > 1.0:
        # Stop extrapolation where the weakest channel would cross zero.
        lowest = np.min(chroma, axis=-1, keepdims=True)
        with np.errstate(divide="ignore", invalid="ignore"):
            limit = np.where((lowest < 0.0) & (y > 0.0), y / -lowest, np.inf)
        f = np.minimum(factor, np.maximum(limit, 1.0))
        f = np.where(y > 0.0, f, 1.0).astype(np.float32)
    else:
        f = np.float32(max(0.0, factor))
    return (y + chroma * f).astype(np.float32)


def apply_lut(rgb: np.ndarray, lut: LutTable) -> np.ndarray:
    return lut.apply(rgb)


def _box_blur(plane: np.ndarray, radius: int) -> np.ndarray:
    k = 2 * radius + 1
    out = plane.astype(np.float64)
    for axis in (0, 1):
        pad = [(0, 0), (0, 0)]
        pad[axis] = (radius + 1, radius)
        padded = np.pad(out, pad, mode="edge")
        c = np.cumsum(padded, axis=axis)
        if axis == 0:
            out = (c[k:, :] - c[:-k, :]) / k
        else:
            out = (c[:, k:] - c[:, :-k]) / k
    return out.astype(np.float32)


def apply_sharpness(rgb: np.ndarray, sharpness: float) -> np.ndarray:
    y = luma(rgb)
    detail = y - _box_blur(y, SHARPEN_RADIUS)
    amount = np.float32(SHARPEN_GAIN * sharpness / 100.0)
    return rgb + (detail * amount)[..., None]


def _hash_u32(x: np.ndarray, y: np.ndarray, seed: int) -> np.ndarray:
    seed_mix = np.uint32((seed * 0xCB1AB31F) & 0xFFFFFFFF)
    h = (x * np.uint32(0x8DA6B343)) ^ (y * np.uint32(0xD8163841)) ^ seed_mix
    h = h ^ (h >> 16)
    h = h * np.uint32(0x85EBCA6B)
    h = h ^ (h >> 13)
    h = h * np.uint32(0xC2B2AE35)
    h = h ^ (h >> 16)
    return h


def grain_field(height: int, width: int, seed: int = GRAIN_SEED) -> np.ndarray:
    """Triangular noise in [-1, 1] seeded only by pixel coordinates."""

    ys, xs = np.mgrid[0:height, 0:width].astype(np.uint32)
    u1 = _hash_u32(xs, ys, seed).astype(np.float64) / 4294967296.0
    u2 = _hash_u32(xs, ys, seed + 1).astype(np.float64) / 4294967296.0
    return (u1 + u2 - 1.0).astype(np.float32)


def apply_grain(rgb: np.ndarray, amount: float, seed: int = GRAIN_SEED) -> np.ndarray:
    y = np.clip(luma(rgb), 0.0, 1.0)
    noise = grain_field(rgb.shape[0], rgb.shape[1], seed=seed)
    delta = np.float32(GRAIN_MAX_AMPLITUDE * amount / 100.0) * np.sqrt(y) * noise
    return rgb + delta[..., None]


class DevelopPipeline:
    """Pure develop chain: (LinearImage, settings, LUT) -> new LinearImage."""

    def __init__(self, settings: DevelopSettings, lut: LutTable | None = None) -> None:
        self.settings = settings.clamped()
        self.lut = lut

    def process(self, image: LinearImage) -> LinearImage:
        s = self.settings
        out = image.samples.copy()
        rgb = out[..., :3].copy()

        stages: list[tuple[str, bool, Any]] = [
            (
                "white_balance",
                s.temperature != 6500.0 or s.tint != 0.0,
                lambda x: apply_white_balance(x, s.temperature, s.tint),
            ),
            ("exposure", s.exposure != 0.0, lambda x: apply_exposure(x, s.exposure)),
            (
                "tone",
                s.contrast != 0.0 or s.highlights != 0.0 or s.shadows != 0.0,
                lambda x: apply_tone(x, s.contrast, s.highlights, s.shadows),
            ),
            ("saturation", s.saturation != 0.0, lambda x: apply_saturation(x, s.saturation)),
            ("lut", self.lut is not None, lambda x: apply_lut(x, self.lut)),
            ("sharpness", s.sharpness > 0.0, lambda x: apply_sharpness(x, s.sharpness)),
            ("grain", s.grain_amount > 0.0, lambda x: apply_grain(x, s.grain_amount)),
        ]

        for name, enabled, fn in stages:
            if not enabled:
                continue
            t0 = time.perf_counter()
            rgb = fn(rgb)
            logger.debug("stage %s took %.1f ms", name, (time.perf_counter() - t0) * 1000.0)

        out[..., :3] = rgb
        return LinearImage(out)

    def version_hash(self) -> str:
        payload: dict[str, Any] = {
            "settings": self.settings.to_dict(),
            "lut": hashlib.sha256(self.lut.entries.tobytes()).hexdigest() if self.lut is not None else None,
            "lut_domain": (
                [self.lut.domain_min.tolist(), self.lut.domain_max.tolist()] if self.lut is not None else None
            ),
        }
        blob = json.dumps(payload, sort_keys=True).encode("utf-8")
        return hashlib.sha256(blob).hexdigest()[:16]


def develop(image: LinearImage, settings: DevelopSettings, lut: LutTable | None = None) -> LinearImage:
    return DevelopPipeline(settings, lut).process(image)
