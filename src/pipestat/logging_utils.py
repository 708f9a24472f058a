"""Shared logging helpers."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

# stdout carries the statistics report, so log records go to stderr
_CONSOLE = Console(stderr=True, width=120)
_LOGGER_CACHE: dict[str, logging.Logger] = {}


def get_logger(name: str, level: int = logging.WARNING) -> logging.Logger:
    if name in _LOGGER_CACHE:
        return _LOGGER_CACHE[name]

    handler = RichHandler(console=_CONSOLE, show_path=False)
    formatter = logging.Formatter("%(message)s")
    handler.setFormatter(formatter)

    logger = logging.getLogger(f"pipestat.{name}")
    logger.setLevel(level)
    logger.addHandler(handler)
    logger.propagate = False

    _LOGGER_CACHE[name] = logger
    return logger


def set_global_log_level(level: int | str) -> None:
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        level = resolved
    for logger in _LOGGER_CACHE.values():
        logger.setLevel(level)
