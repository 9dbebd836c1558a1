from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from pathlib import Path
import struct

import numpy as np

from fujiraw import __version__
from fujiraw.color.transfer import XYZ_TO_SRGB
from fujiraw.decode.types import ImageMetadata, LinearImage
from fujiraw.recipe.cameras import CameraModel
from fujiraw.utils.formatting import float_to_rational


logger = logging.getLogger(__name__)

# TIFF field types
BYTE = 1
ASCII = 2
SHORT = 3
LONG = 4
RATIONAL = 5
UNDEFINED = 7
SRATIONAL = 10

# Baseline TIFF / TIFF-EP
TAG_NEW_SUBFILE_TYPE = 254
TAG_IMAGE_WIDTH = 256
TAG_IMAGE_LENGTH = 257
TAG_BITS_PER_SAMPLE = 258
TAG_COMPRESSION = 259
TAG_PHOTOMETRIC = 262
TAG_IMAGE_DESCRIPTION = 270
TAG_MAKE = 271
TAG_MODEL = 272
TAG_STRIP_OFFSETS = 273
TAG_ORIENTATION = 274
TAG_SAMPLES_PER_PIXEL = 277
TAG_ROWS_PER_STRIP = 278
TAG_STRIP_BYTE_COUNTS = 279
TAG_X_RESOLUTION = 282
TAG_Y_RESOLUTION = 283
TAG_PLANAR_CONFIGURATION = 284
TAG_RESOLUTION_UNIT = 296
TAG_SOFTWARE = 305
TAG_DATE_TIME = 306
TAG_EXIF_IFD = 34665

# Exif IFD
TAG_EXPOSURE_TIME = 33434
TAG_F_NUMBER = 33437
TAG_ISO_SPEED_RATINGS = 34855
TAG_EXIF_VERSION = 36864
TAG_DATE_TIME_ORIGINAL = 36867
TAG_FOCAL_LENGTH = 37386

# DNG
TAG_DNG_VERSION = 50706
TAG_DNG_BACKWARD_VERSION = 50707
TAG_UNIQUE_CAMERA_MODEL = 50708
TAG_BLACK_LEVEL = 50714
TAG_WHITE_LEVEL = 50717
TAG_COLOR_MATRIX_1 = 50721
TAG_AS_SHOT_NEUTRAL = 50728
TAG_BASELINE_EXPOSURE = 50730
TAG_CALIBRATION_ILLUMINANT_1 = 50778
TAG_PROFILE_NAME = 50936

PHOTOMETRIC_LINEAR_RAW = 34892
ILLUMINANT_D65 = 21
WHITE_LEVEL = 65535

_TYPE_SIZES = {BYTE: 1, ASCII: 1, SHORT: 2, LONG: 4, RATIONAL: 8, UNDEFINED: 1, SRATIONAL: 8}
_MAX_FILE_SIZE = 0xFFFFFFFF


class SerializationError(RuntimeError):
    pass


@dataclass
class _Entry:
    tag: int
    type: int
    count: int
    payload: bytes


def _ascii(tag: int, text: str) -> _Entry:
    raw = text.encode("ascii", errors="replace") + b"\x00"
    return _Entry(tag, ASCII, len(raw), raw)


def _shorts(tag: int, *values: int) -> _Entry:
    return _Entry(tag, SHORT, len(values), struct.pack(f"<{len(values)}H", *values))


def _longs(tag: int, *values: int) -> _Entry:
    return _Entry(tag, LONG, len(values), struct.pack(f"<{len(values)}I", *values))


def _bytes(tag: int, *values: int) -> _Entry:
    return _Entry(tag, BYTE, len(values), bytes(values))


def _rationals(tag: int, *values: float) -> _Entry:
    packed = b"".join(struct.pack("<II", *float_to_rational(float(v))) for v in values)
    return _Entry(tag, RATIONAL, len(values), packed)


def _srationals(tag: int, *values: float, denominator: int = 10000) -> _Entry:
    packed = b"".join(struct.pack("<ii", int(round(float(v) * denominator)), denominator) for v in values)
    return _Entry(tag, SRATIONAL, len(values), packed)


def _ifd_size(entries: list[_Entry]) -> int:
    return 2 + 12 * len(entries) + 4


def _serialize_ifd(entries: list[_Entry], offset: int, next_ifd: int = 0) -> bytes:
    """IFD at ``offset`` followed by its out-of-line value area (word aligned)."""

    entries = sorted(entries, key=lambda e: e.tag)
    data_start = offset + _ifd_size(entries)
    table = bytearray(struct.pack("<H", len(entries)))
    data = bytearray()

    for e in entries:
        if len(e.payload) != e.count * _TYPE_SIZES[e.type]:
            raise SerializationError(f"tag {e.tag}: payload size does not match count {e.count}")
        if len(e.payload) <= 4:
            value = e.payload.ljust(4, b"\x00")
        else:
            value = struct.pack("<I", data_start + len(data))
            data += e.payload
            if len(data) % 2:
                data += b"\x00"
        table += struct.pack("<HHI", e.tag, e.type, e.count) + value

    table += struct.pack("<I", next_ifd)
    return bytes(table + data)


def _align(n: int) -> int:
    return n + (n % 2)


def quantize_unorm16(rgb: np.ndarray, headroom_stops: float = 0.0) -> np.ndarray:
    """Float linear RGB -> uint16 with 1.0 * 2**headroom_stops at the 16-bit ceiling."""

    x = np.nan_to_num(np.asarray(rgb, dtype=np.float64), nan=0.0, posinf=np.inf, neginf=0.0)
    x = x * (2.0 ** -float(headroom_stops))
    return np.rint(np.clip(x, 0.0, 1.0) * WHITE_LEVEL).astype("<u2")


def _exif_entries(metadata: ImageMetadata) -> list[_Entry]:
    entries: list[_Entry] = []
    if metadata.exposure_time is not None:
        entries.append(_rationals(TAG_EXPOSURE_TIME, metadata.exposure_time))
    if metadata.f_number is not None:
        entries.append(_rationals(TAG_F_NUMBER, metadata.f_number))
    if metadata.iso is not None:
        entries.append(_shorts(TAG_ISO_SPEED_RATINGS, int(min(65535, max(0, round(metadata.iso))))))
    if metadata.date_time is not None:
        entries.append(_ascii(TAG_DATE_TIME_ORIGINAL, metadata.date_time))
    if metadata.focal_length is not None:
        entries.append(_rationals(TAG_FOCAL_LENGTH, metadata.focal_length))
    if entries:
        entries.append(_Entry(TAG_EXIF_VERSION, UNDEFINED, 4, b"0230"))
    return entries


def _unique_camera_model(metadata: ImageMetadata | None, camera: CameraModel | None) -> str:
    if metadata is not None and (metadata.make or metadata.model):
        return " ".join(v for v in [metadata.make, metadata.model] if v)
    if camera is not None:
        return camera.name
    return "fujiraw Linear RGB"


def build_dng(
    image: LinearImage,
    profile_name: str,
    metadata: ImageMetadata | None = None,
    headroom_stops: float = 0.0,
    camera: CameraModel | None = None,
    timestamp: datetime | None = None,
) -> bytes:
    """Serialize a linear image as an uncompressed 16-bit LinearRaw DNG."""

    if not isinstance(image, LinearImage):
        raise SerializationError(f"expected LinearImage, got {type(image).__name__}")
    if headroom_stops < 0:
        raise SerializationError(f"headroom_stops must be >= 0, got {headroom_stops}")

    height, width, channels = image.samples.shape
    if width < 1 or height < 1 or channels not in (3, 4):
        raise SerializationError(f"cannot serialize image of shape {image.samples.shape}")

    strip_bytes = width * height * 3 * 2
    if strip_bytes > _MAX_FILE_SIZE:
        raise SerializationError(f"image {width}x{height} exceeds 32-bit TIFF offsets")

    pixels = quantize_unorm16(image.samples[..., :3], headroom_stops=headroom_stops).tobytes()
    if len(pixels) != strip_bytes:
        raise SerializationError(f"pixel payload is {len(pixels)} bytes, expected {strip_bytes}")

    md = metadata
    stamp = (timestamp or datetime.now(timezone.utc)).strftime("%Y:%m:%d %H:%M:%S")

    make = md.make if md is not None and md.make else ("FUJIFILM" if camera is not None else None)
    model = md.model if md is not None and md.model else (camera.device_id if camera is not None else None)
    exif = _exif_entries(md) if md is not None else []

    def ifd0(strip_offset: int, exif_offset: int) -> list[_Entry]:
        entries = [
            _longs(TAG_NEW_SUBFILE_TYPE, 0),
            _longs(TAG_IMAGE_WIDTH, width),
            _longs(TAG_IMAGE_LENGTH, height),
            _shorts(TAG_BITS_PER_SAMPLE, 16, 16, 16),
            _shorts(TAG_COMPRESSION, 1),
            _shorts(TAG_PHOTOMETRIC, PHOTOMETRIC_LINEAR_RAW),
            _ascii(TAG_IMAGE_DESCRIPTION, profile_name),
            _longs(TAG_STRIP_OFFSETS, strip_offset),
            _shorts(TAG_ORIENTATION, 1),
            _shorts(TAG_SAMPLES_PER_PIXEL, 3),
            _longs(TAG_ROWS_PER_STRIP, height),
            _longs(TAG_STRIP_BYTE_COUNTS, strip_bytes),
            _rationals(TAG_X_RESOLUTION, 300.0),
            _rationals(TAG_Y_RESOLUTION, 300.0),
            _shorts(TAG_PLANAR_CONFIGURATION, 1),
            _shorts(TAG_RESOLUTION_UNIT, 2),
            _ascii(TAG_SOFTWARE, f"fujiraw {__version__}"),
            _ascii(TAG_DATE_TIME, stamp),
            _bytes(TAG_DNG_VERSION, 1, 4, 0, 0),
            _bytes(TAG_DNG_BACKWARD_VERSION, 1, 1, 0, 0),
            _ascii(TAG_UNIQUE_CAMERA_MODEL, _unique_camera_model(md, camera)),
            _longs(TAG_BLACK_LEVEL, 0),
            _longs(TAG_WHITE_LEVEL, WHITE_LEVEL),
            _srationals(TAG_COLOR_MATRIX_1, *XYZ_TO_SRGB.reshape(-1).tolist()),
            _rationals(TAG_AS_SHOT_NEUTRAL, 1.0, 1.0, 1.0),
            _srationals(TAG_BASELINE_EXPOSURE, headroom_stops, denominator=100),
            _shorts(TAG_CALIBRATION_ILLUMINANT_1, ILLUMINANT_D65),
            _ascii(TAG_PROFILE_NAME, profile_name),
        ]
        if make:
            entries.append(_ascii(TAG_MAKE, make))
        if model:
            entries.append(_ascii(TAG_MODEL, model))
        if exif:
            entries.append(_longs(TAG_EXIF_IFD, exif_offset))
        return entries

    # Offsets are inline LONGs, so one sizing pass with placeholders is exact.
    ifd0_offset = 8
    ifd0_len = len(_serialize_ifd(ifd0(0, 0), ifd0_offset))
    exif_offset = _align(ifd0_offset + ifd0_len)
    exif_blob = _serialize_ifd(exif, exif_offset) if exif else b""
    strip_offset = _align(exif_offset + len(exif_blob))
    total = strip_offset + strip_bytes
    if total > _MAX_FILE_SIZE:
        raise SerializationError(f"DNG would be {total} bytes, beyond 32-bit TIFF offsets")

    ifd0_blob = _serialize_ifd(ifd0(strip_offset, exif_offset), ifd0_offset)
    if len(ifd0_blob) != ifd0_len:
        raise SerializationError("IFD0 size changed between layout passes")

    out = bytearray(b"II*\x00" + struct.pack("<I", ifd0_offset))
    out += ifd0_blob
    out += b"\x00" * (exif_offset - len(out))
    out += exif_blob
    out += b"\x00" * (strip_offset - len(out))
    out += pixels

    logger.debug("built DNG %sx%s (%s bytes, exif=%s)", width, height, len(out), bool(exif))
    return bytes(out)


def write_dng(
    path: Path,
    image: LinearImage,
    profile_name: str,
    metadata: ImageMetadata | None = None,
    headroom_stops: float = 0.0,
    camera: CameraModel | None = None,
) -> Path:
    blob = build_dng(image, profile_name, metadata=metadata, headroom_stops=headroom_stops, camera=camera)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as f:
        f.write(blob)
    return path
