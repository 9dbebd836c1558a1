from __future__ import annotations

import logging
from pathlib import Path


# Third-party loggers that are chatty at DEBUG and irrelevant to develop output.
_NOISY_LOGGERS = ("PIL", "exifread", "tifffile")


def resolve_level(level: str | int, verbosity: int = 0) -> int:
    """Map a config level name plus ``-v`` count to a logging level."""

    if isinstance(level, int):
        resolved = level
    else:
        resolved = getattr(logging, level.upper(), logging.INFO)
    if verbosity > 0:
        resolved = min(resolved, logging.DEBUG if verbosity > 1 else logging.INFO)
    return resolved


def configure_logging(level: str | int, log_file: Path | None = None, verbosity: int = 0) -> None:
    resolved_level = resolve_level(level, verbosity)
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=resolved_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=handlers,
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved_level, logging.WARNING))
