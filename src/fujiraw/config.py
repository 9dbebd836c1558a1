from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fujiraw.color.settings import DEFAULT_SETTINGS, DevelopSettings, settings_from_mapping
from fujiraw.recipe.cameras import find_camera


_PREVIEW_FORMATS = ("png", "jpeg")


@dataclass
class EngineConfig:
    prefer_native: bool = True
    use_worker_process: bool = False
    worker_timeout_seconds: float | None = 120.0


@dataclass
class ExportConfig:
    camera: str = "X-T5"
    profile_name: str = "fujiraw"
    headroom_stops: float = 0.0
    write_preview: bool = False
    preview_format: str = "jpeg"
    write_debug_tiff: bool = False


@dataclass
class AppConfig:
    develop: DevelopSettings = DEFAULT_SETTINGS
    engine: EngineConfig = field(default_factory=EngineConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    lut_path: Path | None = None
    recipe_path: Path | None = None
    log_level: str = "INFO"
    log_file: Path | None = None


def _expand_path(value: str | None, base: Path) -> Path | None:
    if value in (None, ""):
        return None
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base / path).resolve()
    return path


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"config section {key!r} must be a mapping")
    return value


def load_config(path: str | Path) -> AppConfig:
    try:
        import yaml  # type: ignore
    except Exception as exc:
        raise RuntimeError("PyYAML is required for config loading. Install with: pip install PyYAML") from exc

    cfg_path = Path(path).expanduser().resolve()
    with cfg_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"config file {cfg_path} must contain a mapping")

    base = cfg_path.parent
    develop_raw = _section(raw, "develop")
    engine_raw = _section(raw, "engine")
    export_raw = _section(raw, "export")

    timeout = engine_raw.get("worker_timeout_seconds", 120.0)
    engine = EngineConfig(
        prefer_native=bool(engine_raw.get("prefer_native", True)),
        use_worker_process=bool(engine_raw.get("use_worker_process", False)),
        worker_timeout_seconds=float(timeout) if timeout is not None else None,
    )

    preview_format = str(export_raw.get("preview_format", "jpeg")).lower()
    if preview_format == "jpg":
        preview_format = "jpeg"
    if preview_format not in _PREVIEW_FORMATS:
        raise ValueError(f"export.preview_format must be one of {_PREVIEW_FORMATS}, got {preview_format!r}")

    headroom = float(export_raw.get("headroom_stops", 0.0))
    if headroom < 0.0:
        raise ValueError("export.headroom_stops must be >= 0")

    camera = str(export_raw.get("camera", "X-T5"))
    try:
        find_camera(camera)
    except KeyError as exc:
        raise ValueError(f"export.camera: {exc.args[0]}") from exc

    export = ExportConfig(
        camera=camera,
        profile_name=str(export_raw.get("profile_name", "fujiraw")),
        headroom_stops=headroom,
        write_preview=bool(export_raw.get("write_preview", False)),
        preview_format=preview_format,
        write_debug_tiff=bool(export_raw.get("write_debug_tiff", False)),
    )

    app = AppConfig(
        develop=settings_from_mapping(develop_raw),
        engine=engine,
        export=export,
        lut_path=_expand_path(raw.get("lut_path"), base),
        recipe_path=_expand_path(raw.get("recipe_path"), base),
        log_level=str(raw.get("log_level", "INFO")),
        log_file=_expand_path(raw.get("log_file"), base),
    )

    ensure_dirs(app)
    return app


def ensure_dirs(config: AppConfig) -> None:
    if config.log_file is not None:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
