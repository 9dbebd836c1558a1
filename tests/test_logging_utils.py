from __future__ import annotations

import logging
from pathlib import Path

import pytest

from fujiraw.utils.logging_utils import configure_logging, resolve_level
from fujiraw.utils.tables import load_table


def test_resolve_level() -> None:
    assert resolve_level("warning") == logging.WARNING
    assert resolve_level("nonsense") == logging.INFO
    assert resolve_level("WARNING", verbosity=1) == logging.INFO
    assert resolve_level("WARNING", verbosity=2) == logging.DEBUG
    assert resolve_level("DEBUG", verbosity=1) == logging.DEBUG


def test_configure_logging_writes_file(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "run.log"
    configure_logging("INFO", log_file)
    logging.getLogger("fujiraw.test").info("hello")
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "hello" in log_file.read_text(encoding="utf-8")
    assert logging.getLogger("PIL").level == logging.WARNING
    configure_logging("WARNING")


def test_data_tables_are_read_only() -> None:
    table = load_table("recipe_mapping.yaml")
    assert table["dynamic_range"]["400"] == -30
    with pytest.raises(TypeError):
        table["color_per_step"] = 99  # type: ignore[index]
