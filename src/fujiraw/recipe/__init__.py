from .cameras import DEFAULT_CAMERA, SUPPORTED_CAMERAS, CameraModel, find_camera
from .fp1 import (
    FilmRecipe,
    MalformedRecipeError,
    load_recipe_file,
    parse_fp1,
    parse_fp1_file,
    recipe_to_fp1,
    recipe_to_overlay,
)

__all__ = [
    "DEFAULT_CAMERA",
    "SUPPORTED_CAMERAS",
    "CameraModel",
    "find_camera",
    "FilmRecipe",
    "MalformedRecipeError",
    "load_recipe_file",
    "parse_fp1",
    "parse_fp1_file",
    "recipe_to_fp1",
    "recipe_to_overlay",
]
