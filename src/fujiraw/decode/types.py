from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any

import numpy as np


@dataclass(eq=False)
class LinearImage:
    """Linear-light float32 buffer of shape (height, width, channels).

    Channel 4, when present, is alpha and stays at 1.0. Values are not clamped.
    The image owns its samples: the constructor copies whatever it is given.
    """

    samples: np.ndarray

    def __post_init__(self) -> None:
        arr = np.array(self.samples, dtype=np.float32, order="C", copy=True)
        if arr.ndim != 3 or arr.shape[2] not in (3, 4):
            raise ValueError(f"expected HxWx3 or HxWx4 samples, got {arr.shape}")
        if arr.shape[0] < 1 or arr.shape[1] < 1:
            raise ValueError(f"image dimensions must be positive, got {arr.shape[1]}x{arr.shape[0]}")
        self.samples = arr

    @classmethod
    def from_flat(cls, width: int, height: int, channels: int, data: Any) -> LinearImage:
        flat = np.asarray(data, dtype=np.float32).reshape(-1)
        expected = int(width) * int(height) * int(channels)
        if flat.shape[0] != expected:
            raise ValueError(
                f"buffer length {flat.shape[0]} does not match {width}x{height}x{channels} = {expected}"
            )
        return cls(flat.reshape((int(height), int(width), int(channels))))

    @classmethod
    def filled(cls, width: int, height: int, rgb: tuple[float, float, float], channels: int = 3) -> LinearImage:
        arr = np.empty((height, width, channels), dtype=np.float32)
        arr[..., :3] = np.asarray(rgb, dtype=np.float32)
        if channels == 4:
            arr[..., 3] = 1.0
        return cls(arr)

    @property
    def width(self) -> int:
        return int(self.samples.shape[1])

    @property
    def height(self) -> int:
        return int(self.samples.shape[0])

    @property
    def channels(self) -> int:
        return int(self.samples.shape[2])

    @property
    def rgb(self) -> np.ndarray:
        return self.samples[..., :3]

    def copy(self) -> LinearImage:
        return LinearImage(self.samples)

    def with_alpha(self) -> LinearImage:
        if self.channels == 4:
            return self.copy()
        alpha = np.ones(self.samples.shape[:2] + (1,), dtype=np.float32)
        return LinearImage(np.concatenate([self.samples, alpha], axis=-1))

    def without_alpha(self) -> LinearImage:
        return LinearImage(self.samples[..., :3])


@dataclass
class ImageMetadata:
    make: str | None = None
    model: str | None = None
    iso: float | None = None
    exposure_time: float | None = None
    f_number: float | None = None
    focal_length: float | None = None
    date_time: str | None = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def merged(self, other: ImageMetadata) -> ImageMetadata:
        """Fill fields missing here from ``other``."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        for f in fields(other):
            if values[f.name] is None:
                values[f.name] = getattr(other, f.name)
        return ImageMetadata(**values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
