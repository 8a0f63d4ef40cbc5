#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from typing import Callable, Dict, Iterable, List, Tuple

from sd_context import DoctorContext
from sd_diagnostics import Diagnostic, optimizer_note
from sd_graph import DependencyGraph, unique
from sd_logger import log_debug, log_info, log_stage

# prober(module_key, deferred_keys) -> True when module_key loads with deferred_keys deferred
Prober = Callable[[str, Iterable[str]], bool]


class DeferredOptimizer:
    """
    Shrinks the healer's deferred set.

    Phase 1 (push_down) prefers deferring a single import of a module over
    deferring the module itself. Phase 2 (remove_implicit) drops defers that
    are already covered by another deferred module.

    Sets are kept as insertion-ordered dicts so results follow the order in
    which decisions were made.
    """

    def __init__(
            self,
            prober: Prober,
            graph: DependencyGraph,
            context: DoctorContext | None = None,
            forced: Iterable[str] = (),
    ):
        self.prober = prober
        self.graph = graph
        self.context = context or DoctorContext.default()
        self.forced: Tuple[str, ...] = tuple(unique(forced))
        self.notes: List[Diagnostic] = []

    # --- Public API ---

    def optimize(self, deferred_by_leafness: Iterable[str], entry_key: str) -> Tuple[List[str], List[str]]:
        """
        Run both phases. Returns (optimized, including_implicit), both as
        module keys.
        """
        log_stage(self.context, "Optimizing")
        optimized = self.push_down(deferred_by_leafness)
        including_implicit = list(optimized)
        optimized = self.remove_implicit(optimized, entry_key)
        log_info(self.context, f"Optimized: {len(optimized)} deferred ({len(including_implicit)} including implicit)")
        return list(optimized), including_implicit

    def push_down(self, deferred_by_leafness: Iterable[str]) -> Dict[str, None]:
        optimized: Dict[str, None] = dict.fromkeys(self.forced)

        for key in deferred_by_leafness:
            if key in self.forced or key in optimized:
                continue

            imports = unique(self.graph.imports_of(key))
            if not imports:
                optimized[key] = None
                log_info(self.context, f"Optimize: deferred leaf '{key}'")
                continue

            # Fixed by one of the defers chosen before?
            if self.prober(key, optimized):
                log_info(self.context, f"Optimize: deferring no longer needed for '{key}'")
                continue

            # If deferring every import doesn't help, nothing below will.
            if not self.prober(key, [*optimized, *imports]):
                optimized[key] = None
                self.notes.append(optimizer_note(
                    "OPT-0010", key, "cannot be fixed by deferring its imports, deferring the module"))
                log_info(self.context, f"Optimize: deferred unfixable parent '{key}'")
                continue

            fix = self._find_single_import_fix(key, imports, optimized)
            if fix is not None:
                optimized[fix] = None
                log_info(self.context, f"Optimize: deferred import '{fix}' of '{key}'")
            else:
                optimized[key] = None
                self.notes.append(optimizer_note(
                    "OPT-0020", key, "needs more than one of its imports deferred, deferring the module"))
                log_debug(
                    self.context,
                    f"'{key}' only loads when more than one of its imports are deferred; "
                    "import combinations are not searched, deferring the entire module instead",
                )
                log_info(self.context, f"Optimize: deferred parent with >1 problematic import '{key}'")

        return optimized

    def remove_implicit(self, optimized: Dict[str, None], entry_key: str) -> Dict[str, None]:
        """
        Drop every defer the application entry point doesn't need because
        a deferred ancestor already keeps the module from loading eagerly.
        """
        remaining = dict(optimized)
        for key in list(remaining):
            if key in self.forced:
                continue
            without = [k for k in remaining if k != key]
            if self.prober(entry_key, without):
                del remaining[key]
                log_info(self.context, f"Optimize: removing defer of '{key}', already deferred implicitly")
        return remaining

    # --- Internal helpers ---

    def _find_single_import_fix(self, key: str, imports: List[str], optimized: Dict[str, None]) -> str | None:
        for imp in imports:
            # Already deferred imports were covered by the probe of `optimized` alone.
            if imp in optimized:
                continue
            if self.prober(key, [*optimized, imp]):
                return imp
        return None
