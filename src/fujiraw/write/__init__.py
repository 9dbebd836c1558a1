from .debug_image import write_linear_debug_tiff
from .dng_writer import SerializationError, build_dng, write_dng
from .preview import encode_preview, write_preview

__all__ = [
    "write_linear_debug_tiff",
    "SerializationError",
    "build_dng",
    "write_dng",
    "encode_preview",
    "write_preview",
]
