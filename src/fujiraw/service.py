from __future__ import annotations

from dataclasses import dataclass, field
import io
import logging
from pathlib import Path
from typing import Any, Callable

import numpy as np

from fujiraw.color.lut_cube import LutTable, load_cube
from fujiraw.color.pipeline import DevelopPipeline
from fujiraw.color.settings import DevelopSettings
from fujiraw.color.white_balance import WhiteBalanceEstimate, estimate_temperature_tint, sample_neutral_patch
from fujiraw.config import AppConfig
from fujiraw.decode.base import RawDecoder
from fujiraw.decode.libraw_decoder import LibRawDecoder
from fujiraw.decode.registry import Ingestor, IngestResult
from fujiraw.recipe.cameras import find_camera
from fujiraw.recipe.fp1 import load_recipe_file, parse_fp1_file, recipe_to_overlay
from fujiraw.utils.formatting import format_exposure_summary
from fujiraw.write.debug_image import write_linear_debug_tiff
from fujiraw.write.dng_writer import write_dng
from fujiraw.write.preview import write_preview


logger = logging.getLogger(__name__)

_PREVIEW_SUFFIX = {"png": ".png", "jpeg": ".jpg"}


@dataclass
class ExportResult:
    dng_path: Path
    engine: str
    source_format: str
    settings_hash: str
    pipeline_hash: str
    width: int
    height: int
    preview_path: Path | None = None
    debug_tiff_path: Path | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "dng_path": str(self.dng_path),
            "engine": self.engine,
            "source_format": self.source_format,
            "settings_hash": self.settings_hash,
            "pipeline_hash": self.pipeline_hash,
            "width": self.width,
            "height": self.height,
            "preview_path": str(self.preview_path) if self.preview_path else None,
            "debug_tiff_path": str(self.debug_tiff_path) if self.debug_tiff_path else None,
            "metadata": self.metadata,
        }


def load_recipe_overlay(path: Path) -> dict[str, float]:
    """Read a recipe file: ``.fp1`` conversion profiles or YAML/JSON catalog recipes."""

    if path.suffix.lower() == ".fp1":
        return parse_fp1_file(path)
    return recipe_to_overlay(load_recipe_file(path))


def resolve_settings(
    config: AppConfig,
    settings: DevelopSettings | None = None,
    recipe_path: Path | None = None,
) -> DevelopSettings:
    base = settings if settings is not None else config.develop
    recipe = recipe_path or config.recipe_path
    if recipe is not None:
        overlay = load_recipe_overlay(recipe)
        logger.info("applying recipe %s: %s", recipe.name, overlay)
        base = base.with_overlay(overlay)
    return base.clamped()


def resolve_lut(config: AppConfig, lut: LutTable | None = None, lut_path: Path | None = None) -> LutTable | None:
    if lut is not None:
        return lut
    path = lut_path or config.lut_path
    if path is None:
        return None
    return load_cube(path)


def _ingestor(config: AppConfig, decoder_factory: Callable[[], RawDecoder] | None) -> Ingestor:
    return Ingestor(
        decoder_factory=decoder_factory,
        prefer_native=config.engine.prefer_native,
        use_worker=config.engine.use_worker_process,
        worker_timeout_seconds=config.engine.worker_timeout_seconds,
    )


def develop_bytes(
    data: bytes,
    output_path: Path,
    config: AppConfig | None = None,
    settings: DevelopSettings | None = None,
    lut: LutTable | None = None,
    decoder_factory: Callable[[], RawDecoder] | None = LibRawDecoder,
) -> ExportResult:
    """Ingest, develop and write one source buffer as DNG (plus optional side outputs)."""

    config = config or AppConfig()
    settings = resolve_settings(config, settings)
    lut = resolve_lut(config, lut)

    ingest: IngestResult = _ingestor(config, decoder_factory).ingest(data)
    md = ingest.metadata
    logger.info(
        "decoded %dx%d via %s engine (%s)",
        ingest.image.width,
        ingest.image.height,
        ingest.engine,
        format_exposure_summary(md.iso, md.exposure_time, md.f_number),
    )

    pipeline = DevelopPipeline(settings, lut)
    developed = pipeline.process(ingest.image)

    export = config.export
    camera = find_camera(export.camera)
    output_path = output_path.expanduser().resolve()
    write_dng(
        output_path,
        developed,
        profile_name=export.profile_name,
        metadata=md,
        headroom_stops=export.headroom_stops,
        camera=camera,
    )
    logger.info("wrote %s", output_path)

    result = ExportResult(
        dng_path=output_path,
        engine=ingest.engine,
        source_format=ingest.source_format.value,
        settings_hash=settings.version_hash(),
        pipeline_hash=pipeline.version_hash(),
        width=developed.width,
        height=developed.height,
        metadata=md.to_dict(),
    )

    if export.write_preview:
        preview_path = output_path.with_suffix(_PREVIEW_SUFFIX[export.preview_format])
        result.preview_path = write_preview(preview_path, developed, fmt=export.preview_format)
    if export.write_debug_tiff:
        result.debug_tiff_path = write_linear_debug_tiff(output_path.with_suffix(".linear.tiff"), developed)
    return result


def develop_file(
    config: AppConfig,
    input_path: Path,
    output_path: Path | None = None,
    settings: DevelopSettings | None = None,
    decoder_factory: Callable[[], RawDecoder] | None = LibRawDecoder,
) -> ExportResult:
    input_path = input_path.expanduser().resolve()
    out = output_path or input_path.with_name(f"{input_path.stem}_developed.dng")
    return develop_bytes(
        input_path.read_bytes(),
        out,
        config=config,
        settings=settings,
        decoder_factory=decoder_factory,
    )


def estimate_white_balance_file(
    input_path: Path,
    x: int,
    y: int,
    radius: int = 2,
    config: AppConfig | None = None,
    decoder_factory: Callable[[], RawDecoder] | None = LibRawDecoder,
) -> WhiteBalanceEstimate:
    """Decode a source and estimate the temperature/tint that neutralizes the patch at (x, y)."""

    config = config or AppConfig()
    ingest = _ingestor(config, decoder_factory).ingest(input_path.expanduser().read_bytes())
    r, g, b = sample_neutral_patch(ingest.image.samples, x, y, radius=radius)
    estimate = estimate_temperature_tint(r, g, b)
    logger.info("neutral patch (%.4f, %.4f, %.4f) -> %.0fK tint %.1f", r, g, b, estimate.temperature, estimate.tint)
    return estimate


_STRIPE_COLORS = ((0x00, 0x96, 0x39), (0xFC, 0xD8, 0x00), (0xD5, 0x00, 0x1C))


def create_sample_chart(size: int = 1200, seed: int = 7) -> bytes:
    """Retro racing-stripe test chart as JPEG bytes, for trying recipes without a source image."""

    from PIL import Image, ImageDraw, ImageFont

    rng = np.random.default_rng(seed)
    base = np.full((size, size, 3), 240.0, dtype=np.float32)
    # Fabric-like speckle
    base += rng.uniform(-30.0, 10.0, size=(size, size, 1)).astype(np.float32) * (rng.random((size, size, 1)) < 0.15)

    yy, xx = np.mgrid[0:size, 0:size]
    # Distance along the 45 degree diagonal, in pixels.
    diag = (xx + yy) / np.sqrt(2.0)
    stripe = max(1, size // 10)
    period = size // 2
    phase = np.mod(diag - size * 0.4, period)
    for idx, color in enumerate(_STRIPE_COLORS):
        mask = (phase >= idx * stripe) & (phase < (idx + 1) * stripe)
        base[mask] = color

    img = Image.fromarray(np.clip(base, 0, 255).astype(np.uint8))

    label = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(label)
    title_font = ImageFont.load_default(size=max(12, size // 8))
    sub_font = ImageFont.load_default(size=max(8, size // 30))
    center = (size / 2, size / 2)
    draw.text(center, "FUJIRAW", fill=(26, 26, 26, 255), font=title_font, anchor="mm")
    draw.text((center[0], center[1] + size // 15), "LABORATORY TEST CHART", fill=(26, 26, 26, 255), font=sub_font, anchor="mm")
    label = label.rotate(45, resample=Image.Resampling.BICUBIC)
    img.paste(label, (0, 0), label)

    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=92)
    return buf.getvalue()
