"""Logging setup for runnerstack.

Library modules only bind context (``logger.bind(component=...)``); the
CLI installs sinks once per process with ``setup_logging``.

Inside a GitHub Actions job, warnings and errors are additionally echoed
as workflow commands (``::warning::`` / ``::error::``) so they show up as
annotations on the run.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, TypeAlias

from loguru import logger

LogLevel: TypeAlias = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"]

CONTEXT_KEYS = ("component", "stack", "label", "instance_id", "instance_type")

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> <level>{level: <7}</level>"
    "<cyan>{extra[context]}</cyan> {message}"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} {level: <7} {name}:{line}{extra[context]} {message}"


def _context(record: Any) -> None:
    extra = record["extra"]
    bound = " ".join(f"{key}={extra[key]}" for key in CONTEXT_KEYS if key in extra)
    extra["context"] = f" [{bound}]" if bound else ""


def _annotation(message: Any) -> None:
    record = message.record
    command = "error" if record["level"].no >= logger.level("ERROR").no else "warning"
    text = str(record["message"]).replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")
    sys.stdout.write(f"::{command}::{text}\n")


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Sinks to install.

    Attributes:
        level: Console level.
        file: Optional log file, always written at DEBUG.
        console: Log to stderr.
        annotations: Echo warnings/errors as workflow commands. None means
            "only when ``GITHUB_ACTIONS`` is set".
        rotation: File rotation policy.
        retention: Rotated files to keep.
    """

    level: LogLevel = "INFO"
    file: str | None = None
    console: bool = True
    annotations: bool | None = None
    rotation: str = "50 MB"
    retention: int = 10

    @property
    def wants_annotations(self) -> bool:
        if self.annotations is None:
            return os.environ.get("GITHUB_ACTIONS") == "true"
        return self.annotations


def setup_logging(config: LogConfig) -> list[int]:
    """Replace all loguru sinks with the configured ones; return their ids."""
    logger.remove()
    logger.configure(patcher=_context)
    ids: list[int] = []

    if config.console:
        ids.append(logger.add(sys.stderr, level=config.level, format=CONSOLE_FORMAT, colorize=True))

    if config.wants_annotations:
        ids.append(logger.add(_annotation, level="WARNING", format="{message}"))

    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        ids.append(logger.add(
            config.file,
            level="DEBUG",
            format=FILE_FORMAT,
            rotation=config.rotation,
            retention=config.retention,
            diagnose=False,
        ))

    return ids


def teardown_logging(handler_ids: list[int]) -> None:
    for handler_id in handler_ids:
        logger.remove(handler_id)
