#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

import re
from dataclasses import dataclass
from typing import List, Optional


DIAGNOSTIC_CODE_FAMILIES = {
    # Bundler adapter (fatal, raised as BundlerError)
    "BND": [
        "BND-0010",  # bundler exited non-zero
        "BND-0020",  # bundler executable not found / not configured
        "BND-0030",  # bundle or metafile missing or unreadable
    ],
    # Bundler metadata (fatal, raised as MalformedMetadataError)
    "META": [
        "META-0001",
        "META-0010",
        "META-0011",
        "META-0020",
        "META-0030",
    ],
    # Execution oracle
    "ORC": [
        "ORC-0010",  # oracle executable not found (fatal)
    ],
    # Probe outcomes recorded during healing (recoverable)
    "PRB": [
        "PRB-0010",  # module failed to load for the current deferred set
    ],
    # Optimizer policy notes
    "OPT": [
        "OPT-0010",  # unfixable by deferring imports, whole module deferred
        "OPT-0020",  # needs more than one import deferred, whole module deferred
    ],
    # Deferred cache
    "CCH": [
        "CCH-0010",  # cache file unreadable, treated as a miss
        "CCH-0020",  # no manifest to hash (fatal)
    ],
    # IDE codes are internal doctor errors raised as exceptions,
    # not user-facing diagnostics; they are excluded from this registry.
}

_CODE_RE = re.compile(r"\[([A-Z]+-\d{4})\]")


@dataclass
class Diagnostic:
    kind: str  # "error", "warning" or "note"
    message: str
    module_key: Optional[str] = None  # module the diagnostic is about
    detail: Optional[str] = None  # captured oracle/bundler output

    @property
    def code(self) -> Optional[str]:
        m = _CODE_RE.search(self.message)
        return m.group(1) if m else None

    # One-line header; the detail is printed by the caller when verbose
    def format(self) -> str:
        loc = f"./{self.module_key}: " if self.module_key is not None else ""
        return f"{loc}{self.kind}: {self.message}"


def probe_failure(module_key: str, deferred_count: int, detail: str = "") -> Diagnostic:
    return Diagnostic(
        kind="warning",
        message=f"[PRB-0010] cannot be loaded for current setup ({deferred_count} deferred)",
        module_key=module_key,
        detail=detail or None,
    )


def optimizer_note(code: str, module_key: str, message: str) -> Diagnostic:
    return Diagnostic(kind="note", message=f"[{code}] {message}", module_key=module_key)


def has_code(diagnostics: List[Diagnostic], code: str) -> bool:
    return any(d.code == code for d in diagnostics)
