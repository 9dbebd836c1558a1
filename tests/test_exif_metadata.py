from __future__ import annotations

import io
import struct

from PIL import Image

from fujiraw.decode.exif_metadata import _ratio_like_to_float, extract_metadata
from fujiraw.decode.preview_extract import RAF_MAGIC


class _Ratio:
    def __init__(self, num: int, den: int) -> None:
        self.num = num
        self.den = den


def test_ratio_like_to_float_ratio_object() -> None:
    assert _ratio_like_to_float(_Ratio(1, 50)) == 0.02


def test_ratio_like_to_float_list_wrapper() -> None:
    assert _ratio_like_to_float([_Ratio(4, 1)]) == 4.0


def test_ratio_like_to_float_plain_value() -> None:
    assert _ratio_like_to_float("200") == 200.0


def test_ratio_like_to_float_zero_denominator() -> None:
    assert _ratio_like_to_float(_Ratio(1, 0)) is None


def _jpeg_with_exif() -> bytes:
    img = Image.new("RGB", (8, 8), (128, 128, 128))
    exif = Image.Exif()
    exif[0x010F] = "FUJIFILM"
    exif[0x0110] = "X-T5"
    buf = io.BytesIO()
    img.save(buf, format="JPEG", exif=exif.tobytes())
    return buf.getvalue()


def test_extract_metadata_reads_make_and_model_from_jpeg() -> None:
    md = extract_metadata(_jpeg_with_exif())
    assert md.make == "FUJIFILM"
    assert md.model == "X-T5"


def test_extract_metadata_reads_raf_embedded_jpeg() -> None:
    jpeg = _jpeg_with_exif()
    header = bytearray(RAF_MAGIC + b"0201FF129502" + b"\x00" * 100)
    offset = len(header)
    struct.pack_into(">II", header, 84, offset, len(jpeg))
    md = extract_metadata(bytes(header) + jpeg)
    assert md.make == "FUJIFILM"


def test_extract_metadata_never_raises_on_garbage() -> None:
    md = extract_metadata(b"\x00\x01garbage")
    assert md.iso is None
    assert md.exposure_time is None
