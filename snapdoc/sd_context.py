"""
Doctor context for cross-cutting snapshot doctor options.

This module defines the DoctorContext dataclass which holds options that
affect multiple stages of a healing run (bundling, probing, caching,
diagnostics).
"""

#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Optional


class LogLevel(IntEnum):
    """Hierarchical logging levels for the snapshot doctor."""
    SILENT = 0      # No logging
    ERROR = 3       # Error messages only
    WARNING = 6     # Warning messages (default)
    INFO = 10       # General progress messages (-v)
    DEBUG = 30      # Every probe and bundler command (-vvv)


@dataclass
class DoctorContext:
    """
    Holds options shared by the bundler adapter, the oracle and the healer.

    Attributes:
        base_dir:           Project root; module keys are relative to it.
        entry_file:         Application entry file handed to the bundler.
        bundler_path:       Snapshot bundler executable.
        node_path:          Node executable used by the oracle.
        cache_dir:          Directory holding snapshot-meta.json (None = base_dir).
        oracle_timeout:     Seconds a single probe may run before it counts as failed.
        log_rich_format:    If True, emit logs in rich format: timestamps and levels.
        log_level:          Current logging level.
    """
    base_dir: Path = Path(".")
    entry_file: Optional[Path] = None
    bundler_path: Optional[str] = None
    node_path: str = "node"
    cache_dir: Optional[Path] = None
    oracle_timeout: float = 60.0
    log_rich_format: bool = False
    log_level: LogLevel = LogLevel.WARNING

    @staticmethod
    def default() -> 'DoctorContext':
        """Create a DoctorContext with default settings."""
        return DoctorContext(log_level=LogLevel.WARNING)

    def resolved_cache_dir(self) -> Path:
        return Path(self.cache_dir) if self.cache_dir is not None else Path(self.base_dir)
