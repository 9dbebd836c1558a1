from __future__ import annotations

import numpy as np

from fujiraw.color.lut_cube import identity_lut, parse_cube
from fujiraw.color.pipeline import (
    DevelopPipeline,
    apply_saturation,
    develop,
    grain_field,
    tone_curve,
)
from fujiraw.color.settings import DEFAULT_SETTINGS, DevelopSettings
from fujiraw.decode.types import LinearImage


def _ramp(h: int = 8, w: int = 8) -> LinearImage:
    rng = np.random.default_rng(11)
    return LinearImage(rng.uniform(0.01, 0.9, size=(h, w, 3)).astype(np.float32))


def test_default_settings_are_identity() -> None:
    img = _ramp()
    out = develop(img, DEFAULT_SETTINGS)
    assert np.array_equal(out.samples, img.samples)


def test_identity_lut_keeps_image() -> None:
    img = _ramp()
    out = develop(img, DEFAULT_SETTINGS, lut=identity_lut(33))
    assert np.allclose(out.samples, img.samples, atol=1e-5)


def test_exposure_doubles_and_halves() -> None:
    img = LinearImage.filled(2, 2, (0.2, 0.2, 0.2))
    up = develop(img, DevelopSettings(exposure=1.0))
    down = develop(img, DevelopSettings(exposure=-1.0))
    assert np.allclose(up.samples, 0.4)
    assert np.allclose(down.samples, 0.1)


def test_exposure_round_trip_across_sequential_runs() -> None:
    rng = np.random.default_rng(5)
    img = LinearImage(rng.uniform(0.0, 4.0, size=(6, 5, 3)).astype(np.float32))
    brighter = develop(img, DevelopSettings(exposure=1.0))
    restored = develop(brighter, DevelopSettings(exposure=-1.0))
    assert float(img.samples.max()) > 1.0
    assert np.allclose(restored.samples, img.samples, rtol=1e-6, atol=1e-7)


def test_pipeline_does_not_mutate_input() -> None:
    img = _ramp()
    before = img.samples.copy()
    develop(img, DevelopSettings(exposure=0.7, contrast=30, saturation=20, grain_amount=50, sharpness=40))
    assert np.array_equal(img.samples, before)


def test_alpha_channel_is_untouched() -> None:
    img = _ramp().with_alpha()
    out = develop(img, DevelopSettings(exposure=1.0, grain_amount=80, temperature=4000))
    assert out.channels == 4
    assert np.all(out.samples[..., 3] == 1.0)


def test_output_is_not_clamped() -> None:
    img = LinearImage.filled(1, 1, (0.8, 0.8, 0.8))
    out = develop(img, DevelopSettings(exposure=2.0))
    assert float(out.samples[0, 0, 0]) > 3.0


def test_contrast_keeps_pivot() -> None:
    y = np.array([0.18], dtype=np.float32)
    assert np.allclose(tone_curve(y, 60.0, 0.0, 0.0), 0.18, atol=1e-6)
    assert np.allclose(tone_curve(y, -60.0, 0.0, 0.0), 0.18, atol=1e-6)


def test_contrast_increases_distance_from_pivot() -> None:
    y = np.array([0.09, 0.36], dtype=np.float32)
    flat = tone_curve(y, 0.0, 0.0, 0.0)
    boosted = tone_curve(y, 50.0, 0.0, 0.0)
    assert boosted[0] < flat[0]
    assert boosted[1] > flat[1]


def test_tone_curve_is_monotonic() -> None:
    y = np.geomspace(1e-4, 8.0, 400).astype(np.float32)
    for contrast, highlights, shadows in [(100, -100, 100), (-100, 100, -100), (40, 60, 60), (0, -100, -100)]:
        mapped = tone_curve(y, contrast, highlights, shadows)
        assert np.all(np.diff(mapped) >= 0.0)


def test_highlights_and_shadows_target_their_ranges() -> None:
    y = np.array([0.02, 0.18, 1.5], dtype=np.float32)
    lifted_shadows = tone_curve(y, 0.0, 0.0, 80.0)
    pulled_highlights = tone_curve(y, 0.0, -80.0, 0.0)
    assert lifted_shadows[0] > y[0]
    assert np.isclose(lifted_shadows[2], y[2])
    assert pulled_highlights[2] < y[2]
    assert np.isclose(pulled_highlights[0], y[0])


def test_saturation_minus_100_is_gray() -> None:
    rgb = np.array([[[0.6, 0.3, 0.1]]], dtype=np.float32)
    out = apply_saturation(rgb, -100.0)
    assert np.allclose(out[0, 0], out[0, 0, 0])


def test_saturation_boost_never_goes_negative() -> None:
    rgb = np.array([[[0.9, 0.05, 0.01]]], dtype=np.float32)
    out = apply_saturation(rgb, 100.0)
    assert float(out.min()) >= -1e-6


def test_warm_white_balance_setting() -> None:
    img = LinearImage.filled(2, 2, (0.5, 0.5, 0.5))
    out = develop(img, DevelopSettings(temperature=9000.0))
    r, g, b = out.samples[0, 0]
    assert r > g > b


def test_grain_is_deterministic_and_position_seeded() -> None:
    img = LinearImage.filled(16, 16, (0.3, 0.3, 0.3))
    a = develop(img, DevelopSettings(grain_amount=60))
    b = develop(img, DevelopSettings(grain_amount=60))
    assert np.array_equal(a.samples, b.samples)
    assert not np.allclose(a.samples, img.samples)
    field = grain_field(16, 16)
    assert float(field.min()) >= -1.0
    assert float(field.max()) <= 1.0
    assert np.array_equal(grain_field(8, 8), field[:8, :8])


def test_sharpness_leaves_flat_field_alone() -> None:
    img = LinearImage.filled(6, 6, (0.4, 0.4, 0.4))
    out = develop(img, DevelopSettings(sharpness=100))
    assert np.allclose(out.samples, 0.4, atol=1e-6)


def test_sharpness_increases_edge_contrast() -> None:
    arr = np.full((6, 6, 3), 0.2, dtype=np.float32)
    arr[:, 3:] = 0.6
    out = develop(LinearImage(arr), DevelopSettings(sharpness=80))
    assert float(out.samples[0, 2, 0]) < 0.2
    assert float(out.samples[0, 3, 0]) > 0.6


def test_lut_applies_after_exposure() -> None:
    invert = parse_cube(
        "LUT_3D_SIZE 2\n1 1 1\n0 1 1\n1 0 1\n0 0 1\n1 1 0\n0 1 0\n1 0 0\n0 0 0\n"
    )
    img = LinearImage.filled(1, 1, (0.25, 0.25, 0.25))
    out = develop(img, DevelopSettings(exposure=1.0), lut=invert)
    assert np.allclose(out.samples, 0.5, atol=1e-6)
    out2 = develop(LinearImage.filled(1, 1, (0.1, 0.1, 0.1)), DevelopSettings(exposure=1.0), lut=invert)
    assert np.allclose(out2.samples, 0.8, atol=1e-6)


def test_pipeline_hash_is_stable_and_lut_aware() -> None:
    s = DevelopSettings(contrast=10)
    a = DevelopPipeline(s).version_hash()
    b = DevelopPipeline(s).version_hash()
    c = DevelopPipeline(s, lut=identity_lut(5)).version_hash()
    assert a == b
    assert a != c
