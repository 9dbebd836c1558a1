from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable

from .base import EngineUnavailableError, RawDecoder, UnsupportedFormatError
from .exif_metadata import extract_metadata
from .jpeg_decoder import decode_jpeg
from .libraw_decoder import LibRawDecoder
from .native import NativeRawAdapter
from .preview_extract import SourceFormat, extract_embedded_preview, sniff_format
from .types import ImageMetadata, LinearImage


logger = logging.getLogger(__name__)

ENGINE_NATIVE = "native"
ENGINE_PREVIEW = "preview"


@dataclass(eq=False)
class IngestResult:
    image: LinearImage
    metadata: ImageMetadata
    preview_jpeg: bytes | None
    engine: str
    source_format: SourceFormat


class Ingestor:
    """Select the decode path for a source and fall back to the embedded preview."""

    def __init__(
        self,
        decoder_factory: Callable[[], RawDecoder] | None = LibRawDecoder,
        prefer_native: bool = True,
        use_worker: bool = False,
        worker_timeout_seconds: float | None = None,
        channels: int = 3,
    ) -> None:
        self.native = NativeRawAdapter(decoder_factory, channels=channels) if decoder_factory is not None else None
        self.prefer_native = prefer_native
        self.use_worker = use_worker
        self.worker_timeout_seconds = worker_timeout_seconds
        self.channels = channels

    def _decode_native(self, data: bytes) -> LinearImage:
        if self.native is None or not self.prefer_native:
            raise EngineUnavailableError("native RAW engine disabled")
        if self.use_worker:
            return self.native.decode_in_worker(bytearray(data), timeout=self.worker_timeout_seconds)
        return self.native.decode(data)

    def ingest(self, data: bytes) -> IngestResult:
        fmt = sniff_format(data)
        logger.info("ingesting %s source (%s bytes)", fmt.value, len(data))

        if fmt in (SourceFormat.JPEG, SourceFormat.PNG):
            image = decode_jpeg(data, channels=self.channels)
            metadata = extract_metadata(data) if fmt == SourceFormat.JPEG else ImageMetadata()
            return IngestResult(image, metadata, None, ENGINE_PREVIEW, fmt)

        if fmt == SourceFormat.UNKNOWN:
            raise UnsupportedFormatError("unrecognized source format (not JPEG, PNG, RAF or TIFF-based RAW)")

        preview = extract_embedded_preview(data)
        metadata = extract_metadata(data, preview=preview)
        if metadata.is_empty():
            logger.warning("no capture metadata found in %s source", fmt.value)

        try:
            image = self._decode_native(data)
            return IngestResult(image, metadata, preview, ENGINE_NATIVE, fmt)
        except EngineUnavailableError as exc:
            if preview is None:
                raise
            logger.warning("native engine unavailable (%s); falling back to embedded preview", exc)

        image = decode_jpeg(preview, channels=self.channels)
        return IngestResult(image, metadata, preview, ENGINE_PREVIEW, fmt)
