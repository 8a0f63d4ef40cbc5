#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

# sd_errors.py
from __future__ import annotations

from typing import Optional


class DoctorError(Exception):
    """
    Fatal, user-facing failure of a healing run (bad input, broken toolchain).
    The message carries a stable "[XXX-NNNN]" code; see sd_diagnostics.
    """

    def __init__(self, message: str, *, stderr: Optional[str] = None, stdout: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stderr = stderr
        self.stdout = stdout

    def format(self) -> str:
        lines = [f"error: {self.message}"]
        for label, output in (("stderr", self.stderr), ("stdout", self.stdout)):
            if output and output.strip():
                lines.append(f"--- {label} ---")
                lines.append(output.rstrip())
        return "\n".join(lines)


class BundlerError(DoctorError):
    """The external bundler failed or produced unreadable output."""
    pass


class MalformedMetadataError(DoctorError, ValueError):
    """Bundler metadata has no entry point or references an unknown module."""
    pass


class OracleUnavailableError(DoctorError):
    """The execution oracle cannot run at all (e.g. node is missing)."""
    pass


class CacheError(DoctorError):
    """The deferred cache cannot be used (e.g. no manifest to hash)."""
    pass


class InternalDoctorError(RuntimeError):
    """
    IDE = doctor bug / violated heal-state invariant.
    Not for user mistakes (those are DoctorErrors or Diagnostics).
    """

    def __init__(self, message: str, module_key: str | None = None):
        super().__init__(message)
        self.message = message
        self.module_key = module_key

    def format(self) -> str:
        message = self.message
        if "[IDE-" not in message:
            message = f"[IDE-9999] {message}"
        if self.module_key:
            return f"./{self.module_key}: internal doctor error: {message}"
        return f"internal doctor error: {message}"
