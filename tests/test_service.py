from __future__ import annotations

import io
from pathlib import Path
import struct

import numpy as np
from PIL import Image

from fujiraw.color.settings import DevelopSettings
from fujiraw.config import AppConfig
from fujiraw.decode.base import RawRaster
from fujiraw.decode.preview_extract import RAF_MAGIC, SourceFormat, sniff_format
from fujiraw.service import (
    create_sample_chart,
    develop_bytes,
    develop_file,
    estimate_white_balance_file,
    load_recipe_overlay,
    resolve_settings,
)


class WarmDecoder:
    def decode(self, data: bytes) -> RawRaster:
        pixels = np.zeros((3, 5, 3), dtype=np.uint16)
        pixels[...] = (30000, 20000, 10000)
        return RawRaster(width=5, height=3, pixels=pixels, transfer="linear")


def _png(color: tuple[int, int, int], size: tuple[int, int] = (8, 6)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def _raf() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), (90, 90, 90)).save(buf, format="JPEG")
    preview = buf.getvalue()
    header = bytearray(RAF_MAGIC + b"\x00" * 112)
    struct.pack_into(">II", header, 84, len(header), len(preview))
    return bytes(header) + preview


def test_develop_bytes_writes_dng_and_preview(tmp_path: Path) -> None:
    cfg = AppConfig()
    cfg.export.write_preview = True
    cfg.export.preview_format = "png"
    out = tmp_path / "out" / "frame.dng"

    result = develop_bytes(_png((200, 120, 60)), out, config=cfg, settings=DevelopSettings(exposure=0.5))

    assert result.dng_path == out.resolve()
    assert out.read_bytes()[:4] == b"II*\x00"
    assert result.engine == "preview"
    assert result.source_format == "png"
    assert (result.width, result.height) == (8, 6)
    assert result.preview_path is not None and result.preview_path.suffix == ".png"
    assert result.settings_hash == DevelopSettings(exposure=0.5).version_hash()
    payload = result.to_json_dict()
    assert payload["dng_path"] == str(out.resolve())


def test_develop_file_uses_native_engine(tmp_path: Path) -> None:
    src = tmp_path / "DSCF0001.RAF"
    src.write_bytes(_raf())
    result = develop_file(AppConfig(), src, decoder_factory=WarmDecoder)
    assert result.engine == "native"
    assert result.dng_path == (tmp_path / "DSCF0001_developed.dng").resolve()
    assert (result.width, result.height) == (5, 3)


def test_develop_file_falls_back_without_engine(tmp_path: Path) -> None:
    src = tmp_path / "DSCF0002.RAF"
    src.write_bytes(_raf())
    result = develop_file(AppConfig(), src, output_path=tmp_path / "x.dng", decoder_factory=None)
    assert result.engine == "preview"
    assert (result.width, result.height) == (4, 4)


def test_recipe_path_is_applied(tmp_path: Path) -> None:
    recipe = tmp_path / "look.yaml"
    recipe.write_text("name: Mono\nsettings:\n  filmSimulation: Monochrome\n", encoding="utf-8")
    cfg = AppConfig(recipe_path=recipe)
    settings = resolve_settings(cfg, DevelopSettings(exposure=1.0))
    assert settings.saturation == -100.0
    assert settings.exposure == 1.0
    assert load_recipe_overlay(recipe)["saturation"] == -100.0


def test_lut_path_is_applied(tmp_path: Path) -> None:
    lut = tmp_path / "invert.cube"
    lut.write_text("LUT_3D_SIZE 2\n1 1 1\n0 1 1\n1 0 1\n0 0 1\n1 1 0\n0 1 0\n1 0 0\n0 0 0\n", encoding="utf-8")
    cfg = AppConfig(lut_path=lut)
    a = develop_bytes(_png((0, 0, 0)), tmp_path / "a.dng", config=cfg)
    b = develop_bytes(_png((0, 0, 0)), tmp_path / "b.dng", config=AppConfig())
    assert a.pipeline_hash != b.pipeline_hash


def test_estimate_white_balance_file(tmp_path: Path) -> None:
    src = tmp_path / "gray.png"
    src.write_bytes(_png((128, 128, 128)))
    est = estimate_white_balance_file(src, x=2, y=2, radius=1)
    assert abs(est.temperature - 6500.0) < 10.0
    assert abs(est.tint) < 1.0


def test_create_sample_chart() -> None:
    data = create_sample_chart(size=160)
    assert sniff_format(data) == SourceFormat.JPEG
    with Image.open(io.BytesIO(data)) as img:
        assert img.size == (160, 160)
