from .lut_cube import LutTable, MalformedLutError, load_cube, parse_cube, render_lut_visualization
from .pipeline import DevelopPipeline, develop
from .settings import DEFAULT_SETTINGS, DevelopSettings
from .transfer import linear_to_srgb, srgb_to_linear
from .white_balance import EstimationError, WhiteBalanceEstimate, estimate_temperature_tint, white_balance_gains

__all__ = [
    "LutTable",
    "MalformedLutError",
    "load_cube",
    "parse_cube",
    "render_lut_visualization",
    "DevelopPipeline",
    "develop",
    "DEFAULT_SETTINGS",
    "DevelopSettings",
    "linear_to_srgb",
    "srgb_to_linear",
    "EstimationError",
    "WhiteBalanceEstimate",
    "estimate_temperature_tint",
    "white_balance_gains",
]
