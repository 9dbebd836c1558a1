from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
import re
from typing import Any, Mapping
import xml.etree.ElementTree as ET

from fujiraw.color.settings import SETTING_RANGES, clamp_setting
from fujiraw.recipe.cameras import DEFAULT_CAMERA, CameraModel
from fujiraw.utils.tables import load_table


logger = logging.getLogger(__name__)

FP1_APPLICATION = "XRFC"
FP1_APPLICATION_VERSION = "1.12.0.0"

_CODE_RE = re.compile(r"^([PM+-]?)(\d+(?:\.\d+)?)(?:_(\d+))?$", re.IGNORECASE)


class MalformedRecipeError(ValueError):
    def __init__(self, message: str, partial: Mapping[str, float] | None = None) -> None:
        super().__init__(message)
        self.partial: dict[str, float] = dict(partial or {})


def _mapping() -> Mapping[str, Any]:
    return load_table("recipe_mapping.yaml")


def _normalize_name(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", value.lower())


def parse_code(value: str | None) -> float | None:
    """Decode camera step codes: ``P1`` -> 1, ``M0.5`` -> -0.5, ``M1_3`` -> -1/3, ``-2`` -> -2."""

    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    m = _CODE_RE.match(text)
    if m is None:
        return None
    sign, whole, denom = m.groups()
    number = float(whole)
    if denom:
        number = number / float(denom)
    if sign.upper() in ("M", "-"):
        number = -number
    return number


def format_code(value: float) -> str:
    if value == 0:
        return "0"
    prefix = "P" if value > 0 else "M"
    return f"{prefix}{abs(value):g}"


def resolve_film_simulation(name: str) -> str | None:
    """Return the FP1 code for a film simulation code, display name or alias."""

    wanted = _normalize_name(name)
    sims = _mapping()["film_simulations"]
    for code, entry in sims.items():
        candidates = {_normalize_name(code), _normalize_name(entry["display"]), *entry.get("aliases", ())}
        if wanted in candidates:
            return code
    return None


def _grain_amount(strength: str | None, size: str | None) -> float:
    table = _mapping()["grain"]
    strength_key = (strength or "OFF").strip().upper()
    size_key = (size or "").strip().upper()
    if "/" in strength_key:
        # Catalog style "Strong/Large"
        strength_key, _, size_key = strength_key.partition("/")
    amount = table.get(strength_key)
    if amount is None:
        logger.warning("unknown grain effect %r, treating as OFF", strength)
        return 0.0
    if amount and size_key == "LARGE":
        amount += table["large_size_bonus"]
    return float(amount)


def _add(overlay: dict[str, float], key: str, delta: float) -> None:
    overlay[key] = overlay.get(key, SETTING_RANGES[key][2]) + delta


def _overlay_from_properties(props: Mapping[str, str]) -> dict[str, float]:
    """Map FP1 property values onto develop slider values.

    Keys of ``props`` are matched case-insensitively. The film simulation is not
    required here; callers decide whether its absence is an error.
    """

    m = _mapping()
    p = {k.lower(): v for k, v in props.items() if v is not None}
    overlay: dict[str, float] = {}

    sim_name = p.get("filmsimulation")
    if sim_name:
        code = resolve_film_simulation(sim_name)
        if code is None:
            logger.warning("unknown film simulation %r, no base look applied", sim_name)
        else:
            entry = m["film_simulations"][code]
            _add(overlay, "saturation", float(entry["saturation"]))
            _add(overlay, "contrast", float(entry["contrast"]))

    tone = m["tone"]
    highlight = parse_code(p.get("highlighttone"))
    if highlight is not None:
        _add(overlay, "highlights", tone["highlight_per_step"] * highlight)
    shadow = parse_code(p.get("shadowtone"))
    if shadow is not None:
        _add(overlay, "shadows", tone["shadow_per_step"] * shadow)

    dr = p.get("dynamicrange")
    if dr:
        dr_key = dr.strip().upper().removeprefix("DR")
        delta = m["dynamic_range"].get(dr_key)
        if delta is None:
            logger.warning("unknown dynamic range %r ignored", dr)
        elif delta:
            _add(overlay, "highlights", float(delta))

    color = parse_code(p.get("color"))
    if color is not None:
        _add(overlay, "saturation", m["color_per_step"] * color)

    clarity = parse_code(p.get("clarity"))
    if clarity is not None:
        _add(overlay, "contrast", m["clarity_per_step"] * clarity)

    if (p.get("whitebalance") or "").strip().lower() == "temperature":
        kelvin = parse_code(p.get("wbcolortemp"))
        if kelvin is not None:
            overlay["temperature"] = kelvin
    shift_r = parse_code(p.get("wbshiftr"))
    shift_b = parse_code(p.get("wbshiftb"))
    if shift_r or shift_b:
        wb = m["white_balance"]
        r, b = shift_r or 0.0, shift_b or 0.0
        _add(overlay, "temperature", wb["kelvin_per_red_blue_step"] * (r - b))
        _add(overlay, "tint", wb["tint_per_red_blue_step"] * (r + b))

    sharpness = parse_code(p.get("sharpness"))
    if sharpness is not None:
        overlay["sharpness"] = m["sharpness_per_step"] * sharpness

    if "graineffect" in p:
        overlay["grain_amount"] = _grain_amount(p.get("graineffect"), p.get("graineffectsize"))

    exposure = parse_code(p.get("exposurebias"))
    if exposure:
        overlay["exposure"] = exposure

    return {key: clamp_setting(key, value) for key, value in overlay.items()}


def _property_group(text: str) -> ET.Element:
    try:
        root = ET.fromstring(text.lstrip("\ufeff"))
    except ET.ParseError as exc:
        raise MalformedRecipeError(f"recipe is not valid XML: {exc}") from exc
    if root.tag == "PropertyGroup":
        return root
    group = root.find(".//PropertyGroup")
    if group is None:
        raise MalformedRecipeError("recipe has no PropertyGroup element")
    return group


def parse_fp1(text: str) -> dict[str, float]:
    """Parse an FP1 conversion profile into a develop settings overlay."""

    group = _property_group(text)
    props = {child.tag: (child.text or "").strip() for child in group}
    overlay = _overlay_from_properties(props)
    if not any(k.lower() == "filmsimulation" and v for k, v in props.items()):
        raise MalformedRecipeError("recipe has no FilmSimulation", partial=overlay)
    logger.debug("parsed FP1 recipe for device %s: %s", group.get("device"), overlay)
    return overlay


def parse_fp1_file(path: str | Path) -> dict[str, float]:
    return parse_fp1(Path(path).read_text(encoding="utf-8-sig"))


@dataclass
class FilmRecipe:
    name: str
    film_simulation: str = "Provia"
    dynamic_range: str = "DR100"
    white_balance: int | str = "Auto"
    wb_shift_r: float = 0.0
    wb_shift_b: float = 0.0
    tint_shift: float = 0.0
    highlights: float = 0.0
    shadows: float = 0.0
    color: float = 0.0
    sharpness: float = 0.0
    noise_reduction: float = 0.0
    clarity: float = 0.0
    grain_effect: str = "Off"
    color_chrome: str = "Off"
    color_chrome_blue: str = "Off"
    tags: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> FilmRecipe:
        """Build from catalog data. The catalog nests Fuji-side values under ``settings``."""

        settings = raw.get("settings", raw)

        def pick(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if key in settings:
                    return settings[key]
            return default

        wb = pick("whiteBalance", "white_balance", default="Auto")
        if isinstance(wb, str) and wb.strip().rstrip("Kk").isdigit():
            wb = int(wb.strip().rstrip("Kk"))
        return cls(
            name=str(raw.get("name", "Custom")),
            film_simulation=str(pick("filmSimulation", "film_simulation", default="Provia")),
            dynamic_range=str(pick("dynamicRange", "dynamic_range", default="DR100")),
            white_balance=wb,
            wb_shift_r=float(pick("wbShiftR", "wb_shift_r", default=0)),
            wb_shift_b=float(pick("wbShiftB", "wb_shift_b", default=0)),
            tint_shift=float(pick("tintShift", "tint_shift", default=0)),
            highlights=float(pick("highlights", default=0)),
            shadows=float(pick("shadows", default=0)),
            color=float(pick("colorSaturation", "color", default=0)),
            sharpness=float(pick("sharpness", default=0)),
            noise_reduction=float(pick("noiseReduction", "noise_reduction", default=0)),
            clarity=float(pick("clarity", default=0) or 0),
            grain_effect=str(pick("grainEffect", "grain_effect", default="Off")),
            color_chrome=str(pick("colorChrome", "color_chrome", default="Off")),
            color_chrome_blue=str(pick("colorChromeBlue", "color_chrome_blue", default="Off")),
            tags=tuple(raw.get("tags", ())),
        )


def load_recipe_file(path: str | Path) -> FilmRecipe:
    import yaml

    with Path(path).open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise MalformedRecipeError(f"recipe file {path} must contain a mapping")
    return FilmRecipe.from_mapping(raw)


def recipe_properties(recipe: FilmRecipe) -> dict[str, str]:
    """Fuji-side recipe values as FP1 property strings, in FP1 tag order."""

    sim_code = resolve_film_simulation(recipe.film_simulation)
    if sim_code is None:
        logger.warning("unknown film simulation %r, exporting as Provia", recipe.film_simulation)
        sim_code = "Provia"

    strength, _, size = recipe.grain_effect.upper().partition("/")
    strength = strength.strip() or "OFF"

    if isinstance(recipe.white_balance, (int, float)):
        wb_mode, wb_temp = "Temperature", str(int(recipe.white_balance))
    else:
        wb_mode, wb_temp = str(recipe.white_balance), "6500"

    return {
        "ExposureBias": "P0",
        "DynamicRange": recipe.dynamic_range.upper().removeprefix("DR") or "100",
        "FilmSimulation": sim_code,
        "GrainEffect": strength,
        "GrainEffectSize": (size.strip() or "SMALL"),
        "ChromeEffect": recipe.color_chrome.upper(),
        "ColorChromeBlue": recipe.color_chrome_blue.upper(),
        "WhiteBalance": wb_mode,
        "WBShiftR": f"{recipe.wb_shift_r:g}",
        "WBShiftB": f"{recipe.wb_shift_b:g}",
        "WBColorTemp": wb_temp,
        "HighlightTone": format_code(recipe.highlights),
        "ShadowTone": format_code(recipe.shadows),
        "Color": format_code(recipe.color),
        "Sharpness": format_code(recipe.sharpness),
        "NoisReduction": format_code(recipe.noise_reduction),
        "Clarity": format_code(recipe.clarity),
    }


def recipe_to_overlay(recipe: FilmRecipe) -> dict[str, float]:
    overlay = _overlay_from_properties(recipe_properties(recipe))
    if recipe.tint_shift:
        overlay["tint"] = clamp_setting("tint", overlay.get("tint", 0.0) + recipe.tint_shift)
    return overlay


def recipe_to_fp1(
    recipe: FilmRecipe,
    camera: CameraModel = DEFAULT_CAMERA,
    label: str | None = None,
    serial: str | None = None,
) -> str:
    root = ET.Element("ConversionProfile", application=FP1_APPLICATION, version=FP1_APPLICATION_VERSION)
    group = ET.SubElement(
        root,
        "PropertyGroup",
        device=camera.device_id,
        version=camera.version_code,
        label=(label or recipe.name)[:25],
    )
    header = {
        "SerialNumber": serial or camera.serial,
        "Editable": "TRUE",
        "SourceFileName": "",
        "Fileerror": "SUCCESS",
        "RotationAngle": "0",
        "StructVer": "65536",
        "ShootingCondition": "OFF",
        "FileType": "JPG",
        "ImageSize": "L3x2",
        "ImageQuality": "Fine",
    }
    for tag, value in {**header, **recipe_properties(recipe)}.items():
        ET.SubElement(group, tag).text = value

    ET.indent(root, space="  ")
    body = ET.tostring(root, encoding="unicode")
    logger.info("generated FP1 profile %r for %s", recipe.name, camera.device_id)
    return '<?xml version="1.0" encoding="utf-8"?>\n' + body + "\n"
