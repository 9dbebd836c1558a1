from __future__ import annotations

import enum
import logging
import struct


logger = logging.getLogger(__name__)

RAF_MAGIC = b"FUJIFILMCCD-RAW "
_RAF_JPEG_OFFSET_POS = 84
_JPEG_SOI = b"\xff\xd8\xff"
_JPEG_EOI = b"\xff\xd9"


class SourceFormat(str, enum.Enum):
    JPEG = "jpeg"
    PNG = "png"
    RAF = "raf"
    TIFF_RAW = "tiff_raw"
    UNKNOWN = "unknown"


def sniff_format(data: bytes) -> SourceFormat:
    head = bytes(data[:16])
    if head.startswith(RAF_MAGIC):
        return SourceFormat.RAF
    if head.startswith(_JPEG_SOI):
        return SourceFormat.JPEG
    if head.startswith(b"\x89PNG\r\n\x1a\n"):
        return SourceFormat.PNG
    # TIFF-based RAW families (DNG, NEF, ARW, CR2, ORF, RW2) share the TIFF header.
    if head[:4] in (b"II*\x00", b"MM\x00*", b"IIRO", b"IIU\x00"):
        return SourceFormat.TIFF_RAW
    return SourceFormat.UNKNOWN


def _raf_preview(data: bytes) -> bytes | None:
    if len(data) < _RAF_JPEG_OFFSET_POS + 8:
        return None
    offset, length = struct.unpack_from(">II", data, _RAF_JPEG_OFFSET_POS)
    if offset <= 0 or length <= 0 or offset + length > len(data):
        return None
    blob = bytes(data[offset:offset + length])
    if not blob.startswith(_JPEG_SOI):
        return None
    return blob


def _largest_embedded_jpeg(data: bytes) -> bytes | None:
    best: tuple[int, int] | None = None
    pos = data.find(_JPEG_SOI, 1)
    while pos != -1:
        end = data.find(_JPEG_EOI, pos + 3)
        if end == -1:
            break
        end += len(_JPEG_EOI)
        # Nested thumbnails end earlier; extend to the last EOI before the next SOI.
        next_soi = data.find(_JPEG_SOI, end)
        limit = next_soi if next_soi != -1 else len(data)
        last_eoi = data.rfind(_JPEG_EOI, end, limit)
        if last_eoi != -1:
            end = last_eoi + len(_JPEG_EOI)
        if best is None or (end - pos) > (best[1] - best[0]):
            best = (pos, end)
        pos = next_soi
    if best is None:
        return None
    return bytes(data[best[0]:best[1]])


def extract_embedded_preview(data: bytes) -> bytes | None:
    """Return the embedded JPEG preview of a RAW container, or None. Never raises."""

    try:
        fmt = sniff_format(data)
        if fmt == SourceFormat.JPEG:
            return bytes(data)
        if fmt == SourceFormat.RAF:
            blob = _raf_preview(data)
            if blob is not None:
                return blob
        return _largest_embedded_jpeg(bytes(data))
    except Exception:
        logger.warning("embedded preview extraction failed", exc_info=True)
        return None
