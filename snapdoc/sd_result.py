#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from sd_diagnostics import Diagnostic
from sd_metadata import Metadata


def pathify(keys) -> List[str]:
    """Module keys as require paths ("./"-prefixed), preserving order."""
    return [f"./{k}" for k in keys]


@dataclass
class HealResult:
    """
    Outcome of a full healing run.

    Contains:
      - verified: modules proven loadable standalone
      - raw_deferred: the healer's deferred set in leafness order
      - deferred: the optimized deferred set as "./" paths
      - including_implicit_deferred: the optimized set before redundant
        entries were removed, as "./" paths
      - the bundle, metadata and last assembled script of the final pass
      - diagnostics from probes and optimizer decisions
    """
    verified: Set[str] = field(default_factory=set)
    raw_deferred: List[str] = field(default_factory=list)
    deferred: List[str] = field(default_factory=list)
    including_implicit_deferred: List[str] = field(default_factory=list)
    bundle: str = ""
    snapshot_script: Optional[str] = None
    meta: Optional[Metadata] = None
    passes: int = 0
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verified": sorted(self.verified),
            "deferred": list(self.deferred),
            "includingImplicitDeferred": list(self.including_implicit_deferred),
        }
