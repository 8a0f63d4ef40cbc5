#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from dataclasses import dataclass
from typing import Iterable, List, Optional

from sd_bundler import Bundler, BundleResult
from sd_context import DoctorContext, LogLevel
from sd_diagnostics import probe_failure
from sd_graph import DependencyGraph, unique
from sd_heal_state import HealState
from sd_logger import format_keys, log_debug, log_error, log_info, log_output, log_stage
from sd_optimizer import DeferredOptimizer
from sd_oracle import Oracle
from sd_result import HealResult, pathify


@dataclass
class HealerOutcome:
    """State left behind by the fixed-point loop, before optimization."""
    state: HealState
    graph: DependencyGraph
    current: BundleResult
    snapshot_script: Optional[str]
    passes: int


def strip_require_prefix(key: str) -> str:
    return key[2:] if key.startswith("./") else key


class SnapshotDoctor:
    """
    Finds the modules that must be deferred for a bundle to load inside a
    snapshot:

      - stage the graph bottom-up, probing every module in isolation
      - defer what fails, re-bundle, and repeat until a pass defers nothing
      - optimize the deferred set (push defers down, drop redundant ones)

    Entry points:
      - heal(force_deferred): full run, returns a HealResult.
      - run_healer(force_deferred): the fixed-point loop only.
      - entry_works_when_deferring(key, deferring): a single probe.
    """

    def __init__(
            self,
            bundler: Bundler,
            oracle: Oracle,
            context: DoctorContext | None = None,
    ):
        self.bundler = bundler
        self.oracle = oracle
        self.context = context or DoctorContext.default()

    # --- Public API ---

    def heal(self, force_deferred: Iterable[str] = ()) -> HealResult:
        forced = unique(strip_require_prefix(k) for k in force_deferred)
        outcome = self.run_healer(forced)
        state, graph = outcome.state, outcome.graph

        sorted_deferred = graph.sort_deferred_by_leafness(state.deferred)
        log_debug(self.context, f"All deferred ({len(sorted_deferred)}): {format_keys(sorted_deferred)}")

        optimizer = DeferredOptimizer(
            self.entry_works_when_deferring,
            graph,
            context=self.context,
            forced=forced,
        )
        optimized, including_implicit = optimizer.optimize(sorted_deferred, graph.meta.entry_key)
        log_info(self.context, f"Optimized deferred ({len(optimized)}): {format_keys(optimized)}")

        return HealResult(
            verified=set(state.verified),
            raw_deferred=sorted_deferred,
            deferred=pathify(optimized),
            including_implicit_deferred=pathify(including_implicit),
            bundle=outcome.current.bundle,
            snapshot_script=outcome.snapshot_script,
            meta=outcome.current.meta,
            passes=outcome.passes,
            diagnostics=state.diagnostics + optimizer.notes,
        )

    def run_healer(self, force_deferred: Iterable[str] = ()) -> HealerOutcome:
        """
        Grow the deferred set until a full pass over the graph finds no
        module that fails to load.
        """
        forced = unique(strip_require_prefix(k) for k in force_deferred)

        log_stage(self.context, "Creating initial bundle")
        current = self._create_script(forced)
        graph = DependencyGraph(current.meta)
        for key in forced:
            graph.meta.node(key)
        log_debug(self.context, f"Bundle contains {len(graph.meta)} module(s), entry '{graph.meta.entry_key}'")
        for key, partners in graph.circulars.items():
            log_debug(self.context, f"Circular imports of '{key}': {format_keys(sorted(partners))}")

        state = HealState.seeded(forced)
        passes = 1
        snapshot_script = self._process_current_script(current, graph, state)

        while state.pending_defer:
            moved = state.fold_pending()
            log_info(self.context, f"Deferring {len(moved)} module(s): {format_keys(sorted(moved))}")
            current = self._create_script(state.deferred)
            passes += 1
            snapshot_script = self._process_current_script(current, graph, state) or snapshot_script

        log_info(
            self.context,
            f"Healing converged after {passes} pass(es): "
            f"{len(state.verified)} verified, {len(state.deferred)} deferred",
        )
        return HealerOutcome(
            state=state,
            graph=graph,
            current=current,
            snapshot_script=snapshot_script,
            passes=passes,
        )

    def entry_works_when_deferring(self, key: str, deferring: Iterable[str]) -> bool:
        """
        Re-bundle with `deferring` deferred and check whether `key` loads as
        the entry point under strict verification.
        """
        deferring = unique(deferring)
        current = self._create_script(deferring)
        script = self.bundler.assemble_script(
            current.bundle,
            current.meta,
            entry_point=f"./{key}",
            strict_verifiers=True,
            deferred=deferring,
        )
        result = self.oracle.execute(script, f"./{key}")
        if not result.ok:
            log_debug(self.context, f"'{key}' fails with {len(deferring)} deferred: {result.message}")
        return result.ok

    # --- Internal helpers ---

    def _process_current_script(
            self,
            current: BundleResult,
            graph: DependencyGraph,
            state: HealState,
    ) -> Optional[str]:
        log_stage(self.context, "Processing current script")
        snapshot_script = None
        stage = graph.next_stage(state)
        while stage:
            # Candidates of one stage don't see each other's outcome: failures
            # only reach `deferred` once the pass is over.
            for key in stage:
                log_debug(self.context, f"Testing entry in isolation '{key}'")
                snapshot_script = self.bundler.assemble_script(
                    current.bundle,
                    current.meta,
                    entry_point=f"./{key}",
                    strict_verifiers=True,
                    deferred=state.deferred,
                )
                self._test_script(key, snapshot_script, state)
            stage = graph.next_stage(state)
        return snapshot_script

    def _test_script(self, key: str, snapshot_script: str, state: HealState) -> None:
        result = self.oracle.execute(snapshot_script, f"./{key}")
        if result.ok:
            state.mark_verified(key)
            log_debug(self.context, f"Verified '{key}'")
            return
        log_output(self.context, LogLevel.DEBUG, f"'{key}' failed", result.message)
        log_info(self.context, f"'{key}' cannot be loaded for current setup ({len(state.deferred)} deferred)")
        state.mark_needs_defer(key)
        state.diagnostics.append(probe_failure(key, len(state.deferred), result.message))

    def _create_script(self, deferred: Iterable[str]) -> BundleResult:
        try:
            return self.bundler.build_metadata_and_bundle(deferred)
        except Exception:
            log_error(self.context, "Failed creating bundle")
            raise
