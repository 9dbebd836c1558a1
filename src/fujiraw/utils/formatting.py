from __future__ import annotations

from fractions import Fraction


def shutter_seconds_to_fraction(value: float | None, max_denominator: int = 1000000) -> str | None:
    if value is None:
        return None
    if value <= 0:
        return None

    frac = Fraction(value).limit_denominator(max_denominator)
    return f"{frac.numerator}/{frac.denominator}"


def float_to_rational(value: float, max_denominator: int = 1000000) -> tuple[int, int]:
    """Nearest unsigned 32-bit rational for a non-negative float."""

    if value <= 0:
        return (0, 1)
    frac = Fraction(value).limit_denominator(max_denominator)
    num, den = frac.numerator, frac.denominator
    if num > 0xFFFFFFFF:
        # Saturate; keeps the ratio when the denominator can absorb the scale.
        scale = num / 0xFFFFFFFF
        num, den = 0xFFFFFFFF, max(1, round(den / scale))
    return (num, den)


def format_exposure_summary(iso: float | None, exposure_time: float | None, f_number: float | None) -> str:
    parts = []
    if iso is not None:
        parts.append(f"ISO {iso:g}")
    shutter = shutter_seconds_to_fraction(exposure_time)
    if shutter is not None:
        parts.append(f"{shutter}s")
    if f_number is not None:
        parts.append(f"f/{f_number:g}")
    return " ".join(parts) if parts else "-"
