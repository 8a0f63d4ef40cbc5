"""
Logging utilities for the snapshot doctor.

Everything goes to stderr so that the CLI can keep stdout for JSON results.
Messages are filtered by the DoctorContext log level; with `log_rich_format`
each line gets a timestamp and a level tag.
"""

#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

import sys
import time
from typing import Iterable, Optional

from sd_context import DoctorContext, LogLevel


_LEVEL_TAGS = {
    LogLevel.ERROR: "ERROR",
    LogLevel.WARNING: "WARNING",
    LogLevel.INFO: "INFO",
    LogLevel.DEBUG: "DEBUG",
}

# Sets of module keys longer than this are abbreviated in log lines.
MAX_KEYS_IN_LOG = 8


def log(context: DoctorContext, log_level: LogLevel, message: str) -> None:
    """
    Log a message if the context's logging level admits it.

    Args:
        context:    The doctor context containing logging level.
        log_level:  The level of the message to log.
        message:    The message to log.
    """
    if context is None:
        print("No context provided for logging.", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        return
    if context.log_level < log_level:
        return
    prefix = ""
    if context.log_rich_format:
        timestamp = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime())
        tag = _LEVEL_TAGS.get(log_level)
        if tag is not None:
            prefix = f"{timestamp} [{tag}] "
    print(f"{prefix}{message}", file=sys.stderr)


def log_error(context: DoctorContext, message: str) -> None:
    log(context, LogLevel.ERROR, message)


def log_warning(context: DoctorContext, message: str) -> None:
    log(context, LogLevel.WARNING, message)


def log_info(context: DoctorContext, message: str) -> None:
    log(context, LogLevel.INFO, message)


def log_debug(context: DoctorContext, message: str) -> None:
    log(context, LogLevel.DEBUG, message)


def log_stage(context: DoctorContext, stage: str, module: Optional[str] = None) -> None:
    """
    Log the start of a healing stage.

    Args:
        context: The doctor context containing logging flags.
        stage:   The name of the stage (e.g., "Bundling", "Optimizing").
        module:  Optional module key being processed.
    """
    if module:
        log(context, LogLevel.INFO, f"{stage} module '{module}'")
    else:
        log(context, LogLevel.INFO, f"{stage}...")


def log_output(context: DoctorContext, log_level: LogLevel, label: str, output: Optional[str]) -> None:
    """
    Log captured process output line by line, indented under a label.
    Empty output is skipped.
    """
    if not output or not output.strip():
        return
    log(context, log_level, f"{label}:")
    for line in output.rstrip().splitlines():
        log(context, log_level, f"    {line}")


def format_keys(keys: Iterable[str]) -> str:
    """Render module keys for a log line, abbreviating long sets."""
    items = list(keys)
    if not items:
        return "<none>"
    shown = ", ".join(items[:MAX_KEYS_IN_LOG])
    if len(items) > MAX_KEYS_IN_LOG:
        shown += f", ... ({len(items) - MAX_KEYS_IN_LOG} more)"
    return shown
