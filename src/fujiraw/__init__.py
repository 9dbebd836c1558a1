"""Develop engine for Fujifilm RAW captures: linear pipeline, LUTs, recipes and DNG export."""

__version__ = "0.1.0"
