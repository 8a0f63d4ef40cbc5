#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Set

from sd_diagnostics import Diagnostic
from sd_errors import InternalDoctorError


@dataclass
class HealState:
    """
    Mutable bookkeeping of one healing run, passed by reference through
    every stage.

    - verified: modules proven loadable standalone
    - deferred: modules excluded from eager loading
    - pending_defer: modules that failed during the current pass; folded
      into `deferred` once the pass has exhausted its stages
    - diagnostics: one record per failed probe

    verified and deferred never overlap.
    """
    verified: Set[str] = field(default_factory=set)
    deferred: Set[str] = field(default_factory=set)
    pending_defer: Set[str] = field(default_factory=set)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @staticmethod
    def seeded(deferred: Iterable[str] = ()) -> 'HealState':
        return HealState(deferred=set(deferred))

    def was_handled(self, key: str) -> bool:
        return key in self.verified or key in self.deferred

    def visited_count(self) -> int:
        return len(self.verified) + len(self.deferred) + len(self.pending_defer)

    def mark_verified(self, key: str) -> None:
        if key in self.deferred:
            raise InternalDoctorError("module is deferred and cannot also be verified", module_key=key)
        self.verified.add(key)

    def mark_needs_defer(self, key: str) -> None:
        if key in self.verified:
            raise InternalDoctorError("module was verified and cannot need deferring", module_key=key)
        self.pending_defer.add(key)

    def fold_pending(self) -> FrozenSet[str]:
        """
        Move every pending module into `deferred` and clear the working set.
        Returns the modules that were moved.
        """
        moved = frozenset(self.pending_defer)
        self.pending_defer.clear()
        for key in moved:
            if key in self.verified:
                raise InternalDoctorError("module was verified and cannot be deferred", module_key=key)
            self.deferred.add(key)
        return moved
