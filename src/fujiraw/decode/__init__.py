from .types import ImageMetadata, LinearImage
from .base import DecodeError, EngineUnavailableError, RawDecoder, RawRaster, UnsupportedFormatError
from .exif_metadata import extract_metadata
from .jpeg_decoder import decode_jpeg
from .native import NativeRawAdapter, raster_to_linear
from .preview_extract import SourceFormat, extract_embedded_preview, sniff_format
from .registry import Ingestor, IngestResult

__all__ = [
    "DecodeError",
    "EngineUnavailableError",
    "RawDecoder",
    "RawRaster",
    "UnsupportedFormatError",
    "extract_metadata",
    "decode_jpeg",
    "NativeRawAdapter",
    "raster_to_linear",
    "SourceFormat",
    "extract_embedded_preview",
    "sniff_format",
    "Ingestor",
    "IngestResult",
    "ImageMetadata",
    "LinearImage",
]
