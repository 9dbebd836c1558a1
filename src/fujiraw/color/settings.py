from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
import hashlib
import json
import logging
from typing import Any, Mapping


logger = logging.getLogger(__name__)


# field -> (min, max, neutral)
SETTING_RANGES: dict[str, tuple[float, float, float]] = {
    "exposure": (-3.0, 3.0, 0.0),
    "contrast": (-100.0, 100.0, 0.0),
    "temperature": (2000.0, 12000.0, 6500.0),
    "tint": (-50.0, 50.0, 0.0),
    "highlights": (-100.0, 100.0, 0.0),
    "shadows": (-100.0, 100.0, 0.0),
    "saturation": (-100.0, 100.0, 0.0),
    "grain_amount": (0.0, 100.0, 0.0),
    "sharpness": (0.0, 100.0, 0.0),
}

_ALIASES = {
    "grainAmount": "grain_amount",
    "grain": "grain_amount",
    "wb_temperature": "temperature",
    "wb_tint": "tint",
}


def canonical_setting_name(key: str) -> str | None:
    name = _ALIASES.get(key, key)
    return name if name in SETTING_RANGES else None


def clamp_setting(name: str, value: float) -> float:
    lo, hi, neutral = SETTING_RANGES[name]
    v = float(value)
    if v != v:  # NaN
        return neutral
    return min(hi, max(lo, v))


@dataclass(frozen=True)
class DevelopSettings:
    exposure: float = 0.0
    contrast: float = 0.0
    temperature: float = 6500.0
    tint: float = 0.0
    highlights: float = 0.0
    shadows: float = 0.0
    saturation: float = 0.0
    grain_amount: float = 0.0
    sharpness: float = 0.0

    def clamped(self) -> DevelopSettings:
        return DevelopSettings(**{f.name: clamp_setting(f.name, getattr(self, f.name)) for f in fields(self)})

    def with_overlay(self, overlay: Mapping[str, Any]) -> DevelopSettings:
        """Return a copy with the overlay's known keys applied (and clamped)."""

        updates: dict[str, float] = {}
        for key, value in overlay.items():
            name = canonical_setting_name(key)
            if name is None:
                logger.debug("ignoring unknown develop setting %r", key)
                continue
            if value is None:
                continue
            updates[name] = clamp_setting(name, float(value))
        return replace(self, **updates)

    def is_neutral(self) -> bool:
        return all(getattr(self, name) == SETTING_RANGES[name][2] for name in SETTING_RANGES)

    def to_dict(self) -> dict[str, float]:
        return {k: float(v) for k, v in asdict(self).items()}

    def version_hash(self) -> str:
        blob = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":")).encode("utf-8")
        return hashlib.sha256(blob).hexdigest()[:16]


DEFAULT_SETTINGS = DevelopSettings()


def settings_from_mapping(raw: Mapping[str, Any] | None, base: DevelopSettings = DEFAULT_SETTINGS) -> DevelopSettings:
    if not raw:
        return base
    return base.with_overlay(raw)
