from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys

from fujiraw.config import AppConfig, load_config
from fujiraw.utils.logging_utils import configure_logging


logger = logging.getLogger(__name__)


def _add_config_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", default=None, help="Optional path to YAML config")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fujiraw")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity (-vv for debug)")
    sub = parser.add_subparsers(dest="command", required=True)

    develop = sub.add_parser("develop", help="Develop one RAW/JPEG source to a linear DNG")
    develop.add_argument("input", help="Input RAF/DNG/JPEG/PNG path")
    _add_config_arg(develop)
    develop.add_argument("--out", default=None, help="Output DNG path (default: <input>_developed.dng)")
    develop.add_argument("--lut", default=None, help="Optional .cube LUT applied after tone and saturation")
    develop.add_argument("--recipe", default=None, help="Optional .fp1 or YAML recipe applied over the settings")
    develop.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a develop setting, e.g. --set exposure=0.5 (repeatable)",
    )
    develop.add_argument("--preview", action="store_true", help="Also write an sRGB preview next to the DNG")
    develop.add_argument("--no-native", action="store_true", help="Skip LibRaw and use the embedded preview")
    develop.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    wb = sub.add_parser("estimate-wb", help="Estimate temperature/tint from a neutral patch")
    wb.add_argument("input", help="Input RAF/DNG/JPEG/PNG path")
    wb.add_argument("--x", type=int, required=True, help="Patch center x (pixels)")
    wb.add_argument("--y", type=int, required=True, help="Patch center y (pixels)")
    wb.add_argument("--radius", type=int, default=2, help="Patch radius in pixels")
    _add_config_arg(wb)
    wb.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    lut_preview = sub.add_parser("lut-preview", help="Render a .cube LUT as a before/after strip image")
    lut_preview.add_argument("lut", help="Input .cube path")
    lut_preview.add_argument("--out", required=True, help="Output PNG path")
    lut_preview.add_argument("--width", type=int, default=256)
    lut_preview.add_argument("--height", type=int, default=128)

    parse_recipe = sub.add_parser("parse-recipe", help="Show the develop overlay produced by a recipe file")
    parse_recipe.add_argument("recipe", help="Input .fp1 or YAML recipe")
    parse_recipe.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    export_recipe = sub.add_parser("export-recipe", help="Write a YAML recipe as an FP1 conversion profile")
    export_recipe.add_argument("recipe", help="Input YAML/JSON recipe")
    export_recipe.add_argument("--camera", default="X-T5", help="Target camera device id or name")
    export_recipe.add_argument("--label", default=None, help="Profile label shown in the camera menu")
    export_recipe.add_argument("--serial", default=None, help="Camera serial number to embed")
    export_recipe.add_argument("--out", default=None, help="Output .fp1 path (default: stdout)")

    cameras = sub.add_parser("cameras", help="List supported FP1 export cameras")
    cameras.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    sample = sub.add_parser("sample", help="Write the synthetic test chart JPEG")
    sample.add_argument("--out", required=True, help="Output JPEG path")
    sample.add_argument("--size", type=int, default=1200)

    return parser


def _load_config(args: argparse.Namespace) -> AppConfig:
    config = load_config(args.config) if getattr(args, "config", None) else AppConfig()
    configure_logging(config.log_level, config.log_file, verbosity=args.verbose)
    return config


def _parse_overrides(items: list[str]) -> dict[str, float]:
    out: dict[str, float] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep:
            raise ValueError(f"expected KEY=VALUE, got {item!r}")
        try:
            out[key.strip()] = float(value)
        except ValueError as exc:
            raise ValueError(f"setting {key.strip()!r} needs a number, got {value!r}") from exc
    return out


def _cmd_develop(args: argparse.Namespace) -> int:
    from fujiraw.service import develop_file

    config = _load_config(args)
    if args.lut:
        config.lut_path = Path(args.lut).expanduser().resolve()
    if args.recipe:
        config.recipe_path = Path(args.recipe).expanduser().resolve()
    if args.overrides:
        config.develop = config.develop.with_overlay(_parse_overrides(args.overrides))
    if args.preview:
        config.export.write_preview = True
    if args.no_native:
        config.engine.prefer_native = False

    input_path = Path(args.input).expanduser().resolve()
    out_path = Path(args.out).expanduser().resolve() if args.out else None
    result = develop_file(config, input_path=input_path, output_path=out_path)

    if args.json:
        print(json.dumps(result.to_json_dict(), indent=2))
        return 0

    print(str(result.dng_path))
    if result.engine != "native":
        print(f"note: developed from the {result.engine} path (native engine not used)", file=sys.stderr)
    if result.preview_path:
        print(str(result.preview_path))
    return 0


def _cmd_estimate_wb(args: argparse.Namespace) -> int:
    from fujiraw.service import estimate_white_balance_file

    config = _load_config(args)
    estimate = estimate_white_balance_file(
        Path(args.input),
        x=args.x,
        y=args.y,
        radius=args.radius,
        config=config,
    )
    payload = {"temperature": round(estimate.temperature, 1), "tint": round(estimate.tint, 2)}
    if args.json:
        print(json.dumps(payload, indent=2))
        return 0
    print(f"Temperature: {payload['temperature']:.0f}K")
    print(f"Tint: {payload['tint']:+.1f}")
    return 0


def _cmd_lut_preview(args: argparse.Namespace) -> int:
    from fujiraw.color.lut_cube import load_cube, render_lut_visualization
    from fujiraw.write.preview import encode_raster

    configure_logging("INFO", verbosity=args.verbose)
    lut = load_cube(Path(args.lut).expanduser())
    raster = render_lut_visualization(lut, width=args.width, height=args.height)
    out = Path(args.out).expanduser().resolve()
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(encode_raster(raster, fmt="png"))
    print(f"{lut.title or out.stem}: size {lut.size} -> {out}")
    return 0


def _cmd_parse_recipe(args: argparse.Namespace) -> int:
    from fujiraw.color.settings import DEFAULT_SETTINGS
    from fujiraw.service import load_recipe_overlay

    configure_logging("WARNING", verbosity=args.verbose)
    overlay = load_recipe_overlay(Path(args.recipe).expanduser())
    if args.json:
        print(json.dumps(overlay, indent=2, sort_keys=True))
        return 0
    settings = DEFAULT_SETTINGS.with_overlay(overlay)
    for key, value in settings.to_dict().items():
        marker = "*" if key in overlay else " "
        print(f" {marker} {key:>13}: {value:g}")
    return 0


def _cmd_export_recipe(args: argparse.Namespace) -> int:
    from fujiraw.recipe import find_camera, load_recipe_file, recipe_to_fp1

    configure_logging("WARNING", verbosity=args.verbose)
    recipe = load_recipe_file(Path(args.recipe).expanduser())
    text = recipe_to_fp1(recipe, find_camera(args.camera), label=args.label, serial=args.serial)
    if args.out is None:
        sys.stdout.write(text)
        return 0
    out = Path(args.out).expanduser().resolve()
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(text, encoding="utf-8")
    print(str(out))
    return 0


def _cmd_cameras(args: argparse.Namespace) -> int:
    from fujiraw.recipe import SUPPORTED_CAMERAS

    if args.json:
        payload = [
            {"name": c.name, "device_id": c.device_id, "version_code": c.version_code} for c in SUPPORTED_CAMERAS
        ]
        print(json.dumps(payload, indent=2))
        return 0
    for c in SUPPORTED_CAMERAS:
        print(f"{c.device_id:<10} {c.version_code:<14} {c.name}")
    return 0


def _cmd_sample(args: argparse.Namespace) -> int:
    from fujiraw.service import create_sample_chart

    out = Path(args.out).expanduser().resolve()
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(create_sample_chart(size=int(args.size)))
    print(str(out))
    return 0


_COMMANDS = {
    "develop": _cmd_develop,
    "estimate-wb": _cmd_estimate_wb,
    "lut-preview": _cmd_lut_preview,
    "parse-recipe": _cmd_parse_recipe,
    "export-recipe": _cmd_export_recipe,
    "cameras": _cmd_cameras,
    "sample": _cmd_sample,
}


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        handler = _COMMANDS.get(args.command)
        if handler is None:
            parser.error(f"unknown command: {args.command}")
            return 2
        return handler(args)
    except Exception as exc:
        logger.exception("fatal error")
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
