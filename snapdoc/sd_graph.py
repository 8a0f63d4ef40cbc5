#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from typing import Dict, FrozenSet, Iterable, List, Set, Tuple

from sd_heal_state import HealState
from sd_metadata import Metadata


def unique(keys: Iterable[str]) -> List[str]:
    """Drop repeated keys, keeping first-seen order."""
    return list(dict.fromkeys(keys))


class DependencyGraph:
    """
    Read-only queries over the import graph of one Metadata.

    Circularity is only detected for direct pairs (a imports b and b
    imports a). Longer cycles are not exempted and can stall staging for
    the modules on them.
    """

    def __init__(self, meta: Metadata):
        self.meta = meta
        self.circulars: Dict[str, FrozenSet[str]] = self._compute_circular_imports()

    # --- Public API ---

    def imports_of(self, key: str) -> Tuple[str, ...]:
        return self.meta.node(key).imports

    def leaves(self) -> List[str]:
        """Modules without any imports, in metadata order."""
        return [key for key, node in self.meta.modules.items() if not node.imports]

    def circular_partners(self, key: str) -> FrozenSet[str]:
        return self.circulars.get(key, frozenset())

    def is_verifiable(self, key: str, handled) -> bool:
        """
        True when every import of `key` satisfies `handled` or is a direct
        circular partner of `key`.
        """
        partners = self.circular_partners(key)
        return all(handled(imp) or imp in partners for imp in self.imports_of(key))

    def verifiables(self, state: HealState) -> List[str]:
        """
        Modules not handled yet (nor pending) whose imports have all been
        verified, deferred or are excused by a circular partnership.
        """
        found = []
        for key in self.meta.modules:
            if key in state.pending_defer or state.was_handled(key):
                continue
            if self.is_verifiable(key, state.was_handled):
                found.append(key)
        return found

    def next_stage(self, state: HealState) -> List[str]:
        """
        The first stage is the leaves; later stages are the verifiables.
        A graph without leaves starts with its circular-only modules.
        """
        if state.visited_count() == 0:
            leaves = self.leaves()
            if leaves:
                return leaves
        return self.verifiables(state)

    def sort_by_leafness(self) -> List[str]:
        """
        Order all modules so that every module comes after its imports
        (circular partners excepted). Within one round, modules with more
        imports come first.
        """
        ordered: List[str] = []
        handled: Set[str] = set()
        total = len(self.meta)

        while len(handled) < total:
            round_keys = [
                key for key in self.meta.modules
                if key not in handled and self.is_verifiable(key, handled.__contains__)
            ]
            if not round_keys:
                # Only modules on cycles longer than two nodes remain.
                round_keys = [key for key in self.meta.modules if key not in handled]
            round_keys.sort(key=lambda k: len(self.imports_of(k)), reverse=True)
            for key in round_keys:
                ordered.append(key)
                handled.add(key)
        return ordered

    def sort_deferred_by_leafness(self, deferred: Iterable[str]) -> List[str]:
        wanted = set(deferred)
        return [key for key in self.sort_by_leafness() if key in wanted]

    # --- Internal helpers ---

    def _compute_circular_imports(self) -> Dict[str, FrozenSet[str]]:
        circulars: Dict[str, FrozenSet[str]] = {}
        for key, node in self.meta.modules.items():
            partners = [imp for imp in node.imports if key in self.meta.node(imp).imports]
            if partners:
                circulars[key] = frozenset(partners)
        return circulars
