#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2026 gwz

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Iterable, List, Tuple

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from sd_bundler import BundleResult
from sd_context import DoctorContext, LogLevel
from sd_doctor import SnapshotDoctor
from sd_metadata import Metadata
from sd_oracle import Oracle, ProbeResult


class FakeBundler:
    """
    Stands in for the external bundler. The "bundle" is the JSON list of
    deferred keys; the "script" is JSON naming the entry point and that list.
    Every requested deferred set is recorded in `calls`.
    """

    def __init__(self, meta: Metadata):
        self.meta = meta
        self.calls: List[FrozenSet[str]] = []

    def build_metadata_and_bundle(self, deferred: Iterable[str] = ()) -> BundleResult:
        deferred = tuple(sorted(set(deferred)))
        self.calls.append(frozenset(deferred))
        return BundleResult(meta=self.meta, bundle=json.dumps(list(deferred)), deferred=deferred)

    def assemble_script(self, bundle, meta, *, entry_point=None, strict_verifiers=False, deferred=()):
        return json.dumps({
            "entry": entry_point or f"./{meta.entry_key}",
            "bundled": json.loads(bundle),
            "strict": strict_verifiers,
        })


class GraphOracle(Oracle):
    """
    Loads the entry point and, eagerly, every import that isn't deferred.
    The probe fails when a loaded module is `bad` for the deferred set, or
    when the entry point itself is deferred.
    """

    def __init__(self, meta: Metadata, bad: Callable[[str, FrozenSet[str]], bool]):
        self.meta = meta
        self.bad = bad
        self.probes: List[Tuple[str, FrozenSet[str]]] = []

    def loads(self, entry: str, deferred: FrozenSet[str]) -> bool:
        if entry in deferred:
            return False
        seen = set()
        todo = [entry]
        while todo:
            key = todo.pop()
            if key in seen:
                continue
            seen.add(key)
            if self.bad(key, deferred):
                return False
            todo.extend(imp for imp in self.meta.modules[key].imports if imp not in deferred)
        return True

    def execute(self, script: str, filename: str) -> ProbeResult:
        data = json.loads(script)
        entry = data["entry"][2:]
        deferred = frozenset(data["bundled"])
        self.probes.append((entry, deferred))
        if self.loads(entry, deferred):
            return ProbeResult(ok=True)
        return ProbeResult(ok=False, message=f"Error: [SNAPSHOT_CACHE_FAILURE] {filename} cannot be loaded")


def never_bad(key: str, deferred: FrozenSet[str]) -> bool:
    return False


@pytest.fixture
def quiet_context() -> DoctorContext:
    return DoctorContext(log_level=LogLevel.SILENT)


@pytest.fixture
def make_doctor(quiet_context: DoctorContext):
    """
    Build a doctor over an in-memory graph.

    Usage:
        def test_something(make_doctor):
            doctor, bundler, oracle = make_doctor(
                {"a.js": [], "b.js": ["a.js"]}, "b.js",
                bad=lambda key, deferred: key == "a.js",
            )
            result = doctor.heal()
    """

    def _make(graph: Dict[str, List[str]], entry: str, bad=never_bad):
        meta = Metadata.from_graph(graph, entry_key=entry)
        bundler = FakeBundler(meta)
        oracle = GraphOracle(meta, bad)
        return SnapshotDoctor(bundler, oracle, context=quiet_context), bundler, oracle

    return _make


@pytest.fixture
def write_metafile(tmp_path: Path):
    def _write(data, name: str = "meta.json") -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write


def esbuild_meta(graph: Dict[str, List[str]], entry: str, sizes: Dict[str, int] | None = None) -> dict:
    """An esbuild-style metafile object for `graph`."""
    sizes = sizes or {}
    return {
        "inputs": {
            key: {"bytes": sizes.get(key, 10), "imports": [{"path": p} for p in imports]}
            for key, imports in graph.items()
        },
        "outputs": {
            "bundle.js": {
                "bytes": sum(sizes.get(k, 10) for k in graph),
                "inputs": {
                    key: {
                        "bytesInOutput": sizes.get(key, 10),
                        "fileInfo": {"fullPath": f"/project/{key}", "isEntryPoint": key == entry},
                    }
                    for key in graph
                },
            }
        },
    }
