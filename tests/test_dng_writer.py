from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import struct

import numpy as np
import pytest

from fujiraw.decode.types import ImageMetadata, LinearImage
from fujiraw.recipe.cameras import find_camera
from fujiraw.write.dng_writer import (
    PHOTOMETRIC_LINEAR_RAW,
    TAG_BASELINE_EXPOSURE,
    TAG_EXIF_IFD,
    TAG_F_NUMBER,
    TAG_IMAGE_LENGTH,
    TAG_IMAGE_WIDTH,
    TAG_ISO_SPEED_RATINGS,
    TAG_MAKE,
    TAG_MODEL,
    TAG_PHOTOMETRIC,
    TAG_PROFILE_NAME,
    TAG_STRIP_BYTE_COUNTS,
    TAG_STRIP_OFFSETS,
    TAG_UNIQUE_CAMERA_MODEL,
    SerializationError,
    build_dng,
    quantize_unorm16,
    write_dng,
)


def _read_ifd(data: bytes, offset: int) -> dict[int, tuple[int, int, bytes]]:
    """tag -> (type, count, raw 4-byte value field)"""

    (count,) = struct.unpack_from("<H", data, offset)
    out = {}
    for i in range(count):
        tag, typ, n = struct.unpack_from("<HHI", data, offset + 2 + 12 * i)
        out[tag] = (typ, n, data[offset + 2 + 12 * i + 8:offset + 2 + 12 * i + 12])
    return out


def _long(entry: tuple[int, int, bytes]) -> int:
    typ, _, raw = entry
    return struct.unpack("<H", raw[:2])[0] if typ == 3 else struct.unpack("<I", raw)[0]


def _ascii(data: bytes, entry: tuple[int, int, bytes]) -> str:
    _, n, raw = entry
    blob = raw[:n] if n <= 4 else data[struct.unpack("<I", raw)[0]:struct.unpack("<I", raw)[0] + n]
    return blob.rstrip(b"\x00").decode("ascii")


_STAMP = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_dng_header_and_ifd0_layout() -> None:
    img = LinearImage.filled(4, 4, (1.0, 1.0, 1.0))
    data = build_dng(img, "Classic Chrome", timestamp=_STAMP)

    assert data[:4] == b"II*\x00"
    (ifd0_offset,) = struct.unpack_from("<I", data, 4)
    assert ifd0_offset == 8

    ifd = _read_ifd(data, ifd0_offset)
    tags = list(ifd)
    assert tags == sorted(tags)
    assert _long(ifd[TAG_IMAGE_WIDTH]) == 4
    assert _long(ifd[TAG_IMAGE_LENGTH]) == 4
    assert _long(ifd[TAG_PHOTOMETRIC]) == PHOTOMETRIC_LINEAR_RAW
    assert _ascii(data, ifd[TAG_PROFILE_NAME]) == "Classic Chrome"

    strip = _long(ifd[TAG_STRIP_OFFSETS])
    size = _long(ifd[TAG_STRIP_BYTE_COUNTS])
    assert size == 4 * 4 * 3 * 2
    assert strip + size == len(data)
    pixels = np.frombuffer(data[strip:strip + size], dtype="<u2")
    assert np.all(pixels == 65535)


def test_dng_without_metadata_has_no_exif_ifd() -> None:
    data = build_dng(LinearImage.filled(2, 2, (0.5, 0.5, 0.5)), "p", timestamp=_STAMP)
    ifd = _read_ifd(data, 8)
    assert TAG_EXIF_IFD not in ifd
    assert TAG_MAKE not in ifd


def test_dng_writes_exif_subifd() -> None:
    md = ImageMetadata(make="FUJIFILM", model="X-T5", iso=400, exposure_time=1 / 250, f_number=2.8)
    data = build_dng(LinearImage.filled(3, 2, (0.2, 0.2, 0.2)), "p", metadata=md, timestamp=_STAMP)
    ifd = _read_ifd(data, 8)
    assert _ascii(data, ifd[TAG_MAKE]) == "FUJIFILM"
    assert _ascii(data, ifd[TAG_MODEL]) == "X-T5"

    exif_offset = _long(ifd[TAG_EXIF_IFD])
    assert exif_offset % 2 == 0
    exif = _read_ifd(data, exif_offset)
    assert _long(exif[TAG_ISO_SPEED_RATINGS]) == 400
    fnum_ptr = struct.unpack("<I", exif[TAG_F_NUMBER][2])[0]
    num, den = struct.unpack_from("<II", data, fnum_ptr)
    assert num / den == pytest.approx(2.8)


def test_camera_fills_make_and_model() -> None:
    data = build_dng(LinearImage.filled(2, 2, (0.1, 0.1, 0.1)), "p", camera=find_camera("X100V"), timestamp=_STAMP)
    ifd = _read_ifd(data, 8)
    assert _ascii(data, ifd[TAG_MAKE]) == "FUJIFILM"
    assert _ascii(data, ifd[TAG_MODEL]) == "X100V"
    assert _ascii(data, ifd[TAG_UNIQUE_CAMERA_MODEL]) == find_camera("X100V").name


def test_capture_metadata_wins_over_export_camera() -> None:
    md = ImageMetadata(make="FUJIFILM", model="X-T4")
    data = build_dng(
        LinearImage.filled(2, 2, (0.1, 0.1, 0.1)), "p", metadata=md, camera=find_camera("X-T5"), timestamp=_STAMP
    )
    ifd = _read_ifd(data, 8)
    assert _ascii(data, ifd[TAG_MAKE]) == "FUJIFILM"
    assert _ascii(data, ifd[TAG_MODEL]) == "X-T4"
    assert _ascii(data, ifd[TAG_UNIQUE_CAMERA_MODEL]) == "FUJIFILM X-T4"


def test_headroom_scales_pixels_and_sets_baseline_exposure() -> None:
    data = build_dng(LinearImage.filled(1, 1, (1.0, 2.0, 0.0)), "p", headroom_stops=1.0, timestamp=_STAMP)
    ifd = _read_ifd(data, 8)
    strip = _long(ifd[TAG_STRIP_OFFSETS])
    assert np.frombuffer(data[strip:strip + 6], dtype="<u2").tolist() == [32768, 65535, 0]
    ptr = struct.unpack("<I", ifd[TAG_BASELINE_EXPOSURE][2])[0]
    num, den = struct.unpack_from("<ii", data, ptr)
    assert num / den == 1.0


def test_alpha_is_dropped() -> None:
    data = build_dng(LinearImage.filled(2, 1, (0.5, 0.5, 0.5), channels=4), "p", timestamp=_STAMP)
    ifd = _read_ifd(data, 8)
    assert _long(ifd[TAG_STRIP_BYTE_COUNTS]) == 2 * 1 * 3 * 2


def test_quantize_clamps_and_handles_nan() -> None:
    q = quantize_unorm16(np.array([-1.0, 0.5, 7.0, np.nan], dtype=np.float32))
    assert q.tolist() == [0, 32768, 65535, 0]


def test_negative_headroom_raises() -> None:
    with pytest.raises(SerializationError):
        build_dng(LinearImage.filled(1, 1, (0.1, 0.1, 0.1)), "p", headroom_stops=-1.0)


def test_write_dng_creates_file(tmp_path: Path) -> None:
    out = write_dng(tmp_path / "nested" / "frame.dng", LinearImage.filled(2, 2, (0.3, 0.3, 0.3)), "p")
    assert out.exists()
    assert out.read_bytes()[:4] == b"II*\x00"
