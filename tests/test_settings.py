from __future__ import annotations

import pytest

from fujiraw.color.settings import DEFAULT_SETTINGS, DevelopSettings, clamp_setting, settings_from_mapping


def test_defaults_are_neutral() -> None:
    assert DEFAULT_SETTINGS.is_neutral()
    assert DEFAULT_SETTINGS.temperature == 6500.0


def test_clamped_limits_every_field() -> None:
    s = DevelopSettings(exposure=9.0, temperature=100.0, tint=-80.0, grain_amount=-5.0, sharpness=300.0).clamped()
    assert s.exposure == 3.0
    assert s.temperature == 2000.0
    assert s.tint == -50.0
    assert s.grain_amount == 0.0
    assert s.sharpness == 100.0


def test_nan_clamps_to_neutral() -> None:
    assert clamp_setting("contrast", float("nan")) == 0.0
    assert clamp_setting("temperature", float("nan")) == 6500.0


def test_overlay_accepts_camel_case_and_ignores_unknown() -> None:
    s = DEFAULT_SETTINGS.with_overlay({"grainAmount": 40, "exposure": 0.5, "vignette": 12})
    assert s.grain_amount == 40.0
    assert s.exposure == 0.5
    assert not hasattr(s, "vignette")


def test_overlay_clamps_values() -> None:
    s = DEFAULT_SETTINGS.with_overlay({"saturation": 250})
    assert s.saturation == 100.0


def test_settings_are_frozen() -> None:
    with pytest.raises(AttributeError):
        DEFAULT_SETTINGS.exposure = 1.0  # type: ignore[misc]


def test_version_hash_tracks_values() -> None:
    a = DevelopSettings(contrast=10.0)
    b = DevelopSettings(contrast=10.0)
    c = DevelopSettings(contrast=11.0)
    assert a.version_hash() == b.version_hash()
    assert a.version_hash() != c.version_hash()
    assert len(a.version_hash()) == 16


def test_settings_from_mapping() -> None:
    assert settings_from_mapping(None) is DEFAULT_SETTINGS
    s = settings_from_mapping({"temperature": 5200, "tint": 4})
    assert s.temperature == 5200.0
    assert s.tint == 4.0
