from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path

import numpy as np

from .transfer import srgb_encode


logger = logging.getLogger(__name__)

_IGNORED_KEYWORDS = {"LUT_1D_SIZE", "LUT_1D_INPUT_RANGE", "LUT_3D_INPUT_RANGE", "LUT_IN_VIDEO_RANGE", "LUT_OUT_VIDEO_RANGE"}


class MalformedLutError(ValueError):
    pass


@dataclass(frozen=True, eq=False)
class LutTable:
    """Immutable 3D LUT. ``entries`` holds size**3 RGB rows, red varying fastest."""

    title: str
    size: int
    domain_min: np.ndarray
    domain_max: np.ndarray
    entries: np.ndarray

    def __post_init__(self) -> None:
        if self.size < 2:
            raise MalformedLutError(f"LUT_3D_SIZE must be >= 2, got {self.size}")
        entries = np.ascontiguousarray(self.entries, dtype=np.float32).reshape(-1)
        if entries.shape[0] != self.size ** 3 * 3:
            raise MalformedLutError(
                f"LUT entries length {entries.shape[0]} does not match size {self.size} ({self.size ** 3 * 3})"
            )
        entries.setflags(write=False)
        dom_min = np.array(self.domain_min, dtype=np.float32).reshape(3)
        dom_max = np.array(self.domain_max, dtype=np.float32).reshape(3)
        dom_min.setflags(write=False)
        dom_max.setflags(write=False)
        object.__setattr__(self, "entries", entries)
        object.__setattr__(self, "domain_min", dom_min)
        object.__setattr__(self, "domain_max", dom_max)

    @property
    def table(self) -> np.ndarray:
        """(N, N, N, 3) view indexed as ``table[r, g, b]``."""
        n = self.size
        return self.entries.reshape((n ** 3, 3)).reshape((n, n, n, 3), order="F")

    def normalize(self, rgb: np.ndarray) -> np.ndarray:
        x = np.asarray(rgb, dtype=np.float32)
        span = np.maximum(self.domain_max - self.domain_min, 1e-6)
        return (x - self.domain_min) / span

    def sample(self, rgb: np.ndarray) -> np.ndarray:
        """Trilinear lookup of domain-normalized RGB; input outside [0, 1] is clamped."""

        table = self.table
        t = np.clip(np.asarray(rgb, dtype=np.float32), 0.0, 1.0)
        t = t * (self.size - 1)

        i0 = np.clip(np.floor(t).astype(np.int32), 0, self.size - 1)
        i1 = np.clip(i0 + 1, 0, self.size - 1)
        f = t - i0

        r0, g0, b0 = i0[..., 0], i0[..., 1], i0[..., 2]
        r1, g1, b1 = i1[..., 0], i1[..., 1], i1[..., 2]
        fr, fg, fb = f[..., 0, None], f[..., 1, None], f[..., 2, None]

        c000 = table[r0, g0, b0]
        c100 = table[r1, g0, b0]
        c010 = table[r0, g1, b0]
        c110 = table[r1, g1, b0]
        c001 = table[r0, g0, b1]
        c101 = table[r1, g0, b1]
        c011 = table[r0, g1, b1]
        c111 = table[r1, g1, b1]

        c00 = c000 * (1 - fr) + c100 * fr
        c10 = c010 * (1 - fr) + c110 * fr
        c01 = c001 * (1 - fr) + c101 * fr
        c11 = c011 * (1 - fr) + c111 * fr

        c0 = c00 * (1 - fg) + c10 * fg
        c1 = c01 * (1 - fg) + c11 * fg

        out = c0 * (1 - fb) + c1 * fb
        return out.astype(np.float32)

    def apply(self, rgb: np.ndarray) -> np.ndarray:
        return self.sample(self.normalize(rgb))


def identity_lut(size: int = 17, title: str = "identity") -> LutTable:
    axis = np.linspace(0.0, 1.0, size, dtype=np.float32)
    b, g, r = np.meshgrid(axis, axis, axis, indexing="ij")
    rows = np.stack([r.reshape(-1), g.reshape(-1), b.reshape(-1)], axis=-1)
    return LutTable(
        title=title,
        size=size,
        domain_min=np.zeros(3, dtype=np.float32),
        domain_max=np.ones(3, dtype=np.float32),
        entries=rows,
    )


def _parse_triplet(parts: list[str], source: str, line_no: int) -> list[float]:
    try:
        return [float(parts[0]), float(parts[1]), float(parts[2])]
    except (IndexError, ValueError) as exc:
        raise MalformedLutError(f"{source}:{line_no}: expected three numbers, got {' '.join(parts)!r}") from exc


def parse_cube(text: str, source: str = "<string>") -> LutTable:
    size = None
    title = ""
    domain_min = [0.0, 0.0, 0.0]
    domain_max = [1.0, 1.0, 1.0]
    values: list[list[float]] = []

    for line_no, line in enumerate(text.lstrip("\ufeff").splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split()
        head = parts[0].upper()
        if head == "TITLE":
            title = line[len(parts[0]):].strip().strip('"')
            continue
        if head == "LUT_3D_SIZE":
            try:
                size = int(parts[1])
            except (IndexError, ValueError) as exc:
                raise MalformedLutError(f"{source}:{line_no}: invalid LUT_3D_SIZE line {line!r}") from exc
            continue
        if head == "DOMAIN_MIN":
            domain_min = _parse_triplet(parts[1:], source, line_no)
            continue
        if head == "DOMAIN_MAX":
            domain_max = _parse_triplet(parts[1:], source, line_no)
            continue
        if head in _IGNORED_KEYWORDS or head[0].isalpha():
            logger.debug("skipping cube keyword %s in %s", head, source)
            continue

        values.append(_parse_triplet(parts, source, line_no))

    if size is None:
        raise MalformedLutError(f"missing LUT_3D_SIZE in {source}")
    if size < 2:
        raise MalformedLutError(f"LUT_3D_SIZE must be >= 2 in {source}, got {size}")

    expected = size * size * size
    if len(values) != expected:
        raise MalformedLutError(f"invalid LUT size in {source}: expected {expected} rows, got {len(values)}")

    return LutTable(
        title=title,
        size=size,
        domain_min=np.asarray(domain_min, dtype=np.float32),
        domain_max=np.asarray(domain_max, dtype=np.float32),
        entries=np.asarray(values, dtype=np.float32),
    )


def load_cube(path: Path) -> LutTable:
    with Path(path).open("r", encoding="utf-8-sig") as f:
        return parse_cube(f.read(), source=str(path))


def write_cube(lut: LutTable) -> str:
    lines = []
    if lut.title:
        lines.append(f'TITLE "{lut.title}"')
    lines.append(f"LUT_3D_SIZE {lut.size}")
    lines.append("DOMAIN_MIN " + " ".join(f"{v:.6f}" for v in lut.domain_min))
    lines.append("DOMAIN_MAX " + " ".join(f"{v:.6f}" for v in lut.domain_max))
    for row in lut.entries.reshape((-1, 3)):
        lines.append(f"{row[0]:.6f} {row[1]:.6f} {row[2]:.6f}")
    return "\n".join(lines) + "\n"


def _hsv_to_rgb(h: np.ndarray, s: np.ndarray, v: np.ndarray) -> np.ndarray:
    h6 = (h % 1.0) * 6.0
    sector = np.floor(h6).astype(np.int32) % 6
    frac = h6 - np.floor(h6)
    p = v * (1.0 - s)
    q = v * (1.0 - s * frac)
    t = v * (1.0 - s * (1.0 - frac))
    choices_r = [v, q, p, p, t, v]
    choices_g = [t, v, v, q, p, p]
    choices_b = [p, p, t, v, v, q]
    r = np.choose(sector, choices_r)
    g = np.choose(sector, choices_g)
    b = np.choose(sector, choices_b)
    return np.stack([r, g, b], axis=-1).astype(np.float32)


def render_lut_visualization(lut: LutTable, width: int = 256, height: int = 128) -> np.ndarray:
    """Render a hue/value sweep before (top half) and after (bottom half) the LUT.

    Returns an 8-bit sRGB raster of shape (height, width, 3).
    """

    half = max(1, height // 2)
    hue = np.linspace(0.0, 1.0, width, endpoint=False, dtype=np.float32)
    value = np.linspace(1.0, 0.0, half, dtype=np.float32)
    hh, vv = np.meshgrid(hue, value)
    # Bottom rows of the sweep fade towards neutral so the LUT's gray axis is visible too.
    sat = np.clip(vv * 2.0, 0.0, 1.0)
    encoded = _hsv_to_rgb(hh, sat, vv)

    linear = np.where(encoded <= 0.04045, encoded / 12.92, np.power((encoded + 0.055) / 1.055, 2.4))
    lut_domain = lut.domain_min + linear * (lut.domain_max - lut.domain_min)
    graded = lut.apply(lut_domain)

    top = np.rint(encoded * 255.0).astype(np.uint8)
    bottom = np.rint(srgb_encode(graded) * 255.0).astype(np.uint8)
    out = np.concatenate([top, bottom], axis=0)
    if out.shape[0] < height:
        out = np.concatenate([out, out[-1:].repeat(height - out.shape[0], axis=0)], axis=0)
    return out
