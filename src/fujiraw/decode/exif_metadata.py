from __future__ import annotations

import io
import json
import logging
import shutil
import subprocess
from typing import Any

from .preview_extract import SourceFormat, extract_embedded_preview, sniff_format
from .types import ImageMetadata


logger = logging.getLogger(__name__)


def _ratio_like_to_float(value: Any) -> float | None:
    if value is None:
        return None

    # exifread often stores values as a list-like container.
    if isinstance(value, (list, tuple)) and len(value) > 0:
        value = value[0]

    if hasattr(value, "num") and hasattr(value, "den"):
        den = float(getattr(value, "den", 0) or 0)
        if den == 0.0:
            return None
        return float(getattr(value, "num", 0)) / den

    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _positive(value: float | None) -> float | None:
    if value is None or value <= 0:
        return None
    return value


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip().strip("\x00").strip()
    return text or None


def _tag_value(tag: Any) -> Any:
    if tag is None:
        return None
    values = getattr(tag, "values", None)
    return values if values is not None else tag


def _extract_with_exifread(data: bytes) -> ImageMetadata:
    try:
        import exifread  # type: ignore
    except ImportError:
        logger.debug("exifread not installed; skipping in-process EXIF read")
        return ImageMetadata()

    try:
        tags = exifread.process_file(io.BytesIO(data), details=False)
    except Exception:
        logger.debug("exifread failed to parse metadata", exc_info=True)
        return ImageMetadata()

    return ImageMetadata(
        make=_text(tags.get("Image Make")),
        model=_text(tags.get("Image Model")),
        iso=_positive(
            _ratio_like_to_float(_tag_value(tags.get("EXIF ISOSpeedRatings") or tags.get("EXIF PhotographicSensitivity")))
        ),
        exposure_time=_positive(_ratio_like_to_float(_tag_value(tags.get("EXIF ExposureTime")))),
        f_number=_positive(_ratio_like_to_float(_tag_value(tags.get("EXIF FNumber")))),
        focal_length=_positive(_ratio_like_to_float(_tag_value(tags.get("EXIF FocalLength")))),
        date_time=_text(tags.get("EXIF DateTimeOriginal") or tags.get("Image DateTime")),
    )


def _extract_with_exiftool(data: bytes) -> ImageMetadata:
    exiftool = shutil.which("exiftool")
    if exiftool is None:
        return ImageMetadata()

    try:
        proc = subprocess.run(
            [
                exiftool,
                "-j",
                "-n",
                "-Make",
                "-Model",
                "-ISO",
                "-ExposureTime",
                "-FNumber",
                "-FocalLength",
                "-DateTimeOriginal",
                "-",
            ],
            input=data,
            capture_output=True,
            check=False,
            timeout=30,
        )
        if proc.returncode != 0:
            return ImageMetadata()
        rows = json.loads(proc.stdout.decode("utf-8", errors="replace"))
    except (OSError, subprocess.SubprocessError, ValueError):
        logger.debug("exiftool metadata read failed", exc_info=True)
        return ImageMetadata()

    if not rows:
        return ImageMetadata()
    row = rows[0]
    return ImageMetadata(
        make=_text(row.get("Make")),
        model=_text(row.get("Model")),
        iso=_positive(_ratio_like_to_float(row.get("ISO"))),
        exposure_time=_positive(_ratio_like_to_float(row.get("ExposureTime"))),
        f_number=_positive(_ratio_like_to_float(row.get("FNumber"))),
        focal_length=_positive(_ratio_like_to_float(row.get("FocalLength"))),
        date_time=_text(row.get("DateTimeOriginal")),
    )


def extract_metadata(data: bytes, preview: bytes | None = None) -> ImageMetadata:
    """Read capture metadata from a RAW container or JPEG.

    Preference order:
    1) exifread on the source (or its embedded JPEG for RAF, whose EXIF lives there)
    2) exiftool CLI over stdin (if installed)

    Failures are not errors: an empty ImageMetadata is returned.
    """

    try:
        source = bytes(data)
        fmt = sniff_format(source)
        candidates: list[bytes] = []
        if fmt == SourceFormat.RAF:
            embedded = preview if preview is not None else extract_embedded_preview(source)
            if embedded is not None:
                candidates.append(embedded)
        candidates.append(source)

        md = ImageMetadata()
        for blob in candidates:
            md = md.merged(_extract_with_exifread(blob))
            if md.make is not None and md.iso is not None:
                return md

        return md.merged(_extract_with_exiftool(source))
    except Exception:
        logger.warning("metadata extraction failed; continuing without metadata", exc_info=True)
        return ImageMetadata()
