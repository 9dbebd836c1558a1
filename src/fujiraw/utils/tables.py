from __future__ import annotations

from functools import lru_cache
from importlib import resources
import logging
from types import MappingProxyType
from typing import Any, Mapping

import yaml


logger = logging.getLogger(__name__)


def _freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


@lru_cache(maxsize=None)
def load_table(name: str) -> Mapping[str, Any]:
    """Load a packaged YAML table from ``fujiraw/data`` as a read-only mapping."""

    resource = resources.files("fujiraw.data").joinpath(name)
    text = resource.read_text(encoding="utf-8")
    raw = yaml.safe_load(text) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"data table {name} must be a mapping at the top level")
    logger.debug("loaded data table %s (%d keys)", name, len(raw))
    return _freeze(raw)
