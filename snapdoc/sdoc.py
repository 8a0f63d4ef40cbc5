#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

import argparse
import json
import os
from pathlib import Path
from typing import Any, List

from sd_bundler import Bundler
from sd_cache import determine_deferred
from sd_context import DoctorContext, LogLevel
from sd_diagnostics import Diagnostic
from sd_doctor import SnapshotDoctor, strip_require_prefix
from sd_errors import DoctorError, InternalDoctorError
from sd_graph import DependencyGraph
from sd_logger import log, log_error, log_info
from sd_metadata import load_metafile
from sd_oracle import NodeOracle


def _init_env_defaults() -> None:
    snapdoc_home = os.getenv("SNAPDOC_HOME")
    if not snapdoc_home:
        return
    if not os.getenv("SNAPDOC_BUNDLER"):
        os.environ["SNAPDOC_BUNDLER"] = os.path.join(snapdoc_home, "bin", "snapshot-bundler")


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2))


def print_diagnostics(diagnostics: List[Diagnostic], context: DoctorContext) -> None:
    for diag in diagnostics:
        level = {
            "error": LogLevel.ERROR,
            "warning": LogLevel.WARNING,
        }.get(diag.kind, LogLevel.INFO)
        log(context, level, diag.format())
        if diag.detail:
            for line in diag.detail.rstrip().splitlines():
                log(context, LogLevel.DEBUG, f"    {line}")


def build_doctor_context(args: argparse.Namespace) -> DoctorContext:
    """Build a DoctorContext from command-line arguments and the environment."""
    verbosity = getattr(args, 'verbosity', 0)
    if verbosity >= 3:
        log_level = LogLevel.DEBUG
    elif verbosity >= 1:
        log_level = LogLevel.INFO
    else:
        log_level = LogLevel.ERROR

    cache_dir = getattr(args, 'cache_dir', None) or os.getenv("SNAPDOC_CACHE_DIR")
    entry = getattr(args, 'entry', None)

    return DoctorContext(
        base_dir=Path(getattr(args, 'base_dir', '.')),
        entry_file=Path(entry) if entry else None,
        bundler_path=getattr(args, 'bundler', None) or os.getenv("SNAPDOC_BUNDLER"),
        node_path=getattr(args, 'node', None) or os.getenv("SNAPDOC_NODE") or "node",
        cache_dir=Path(cache_dir) if cache_dir else None,
        oracle_timeout=getattr(args, 'timeout', 60.0),
        log_rich_format=getattr(args, 'log', False),
        log_level=log_level,
    )


def build_doctor(context: DoctorContext) -> SnapshotDoctor:
    oracle = NodeOracle(context.node_path, timeout=context.oracle_timeout)
    return SnapshotDoctor(Bundler(context), oracle, context=context)


def cmd_heal(args: argparse.Namespace) -> int:
    """Heal the bundle for an entry file and print the deferred modules."""
    context = build_doctor_context(args)
    doctor = build_doctor(context)

    result = doctor.heal(args.force_defer)
    print_diagnostics(result.diagnostics, context)

    if args.script_out and result.snapshot_script is not None:
        Path(args.script_out).write_text(result.snapshot_script, encoding="utf-8")
        log_info(context, f"Wrote last snapshot script: {args.script_out}")

    if args.output:
        Path(args.output).write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
        log_info(context, f"Wrote heal result: {args.output}")
    else:
        _print_json(result.to_dict())
    return 0


def cmd_deferred(args: argparse.Namespace) -> int:
    """Print the deferred modules, healing only when the cache is stale."""
    context = build_doctor_context(args)
    _print_json(determine_deferred(context, build_doctor(context)))
    return 0


def cmd_graph(args: argparse.Namespace) -> int:
    """Dump the dependency graph of an existing metafile (no bundler or node needed)."""
    meta = load_metafile(args.metafile)
    graph = DependencyGraph(meta)
    _print_json({
        "entry": meta.entry_key,
        "modules": len(meta),
        "totalBytes": meta.total_bytes,
        "leaves": graph.leaves(),
        "circular": {key: sorted(partners) for key, partners in sorted(graph.circulars.items())},
        "leafness": graph.sort_by_leafness(),
    })
    return 0


def cmd_probe(args: argparse.Namespace) -> int:
    """Check whether one module loads with the given modules deferred."""
    context = build_doctor_context(args)
    doctor = build_doctor(context)
    module = strip_require_prefix(args.module)
    deferring = [strip_require_prefix(k) for k in args.defer]

    if doctor.entry_works_when_deferring(module, deferring):
        print(f"./{module}: ok")
        return 0
    print(f"./{module}: fails with {len(deferring)} deferred")
    return 1


def _add_entry_arg(parser: argparse.ArgumentParser) -> None:
    """Add the entry file argument."""
    parser.add_argument("entry", help="Application entry file handed to the bundler (e.g. 'lib/index.js')")


def main(argv=None) -> None:
    _init_env_defaults()
    parser = argparse.ArgumentParser(prog="sdoc", description="Snapshot doctor: find modules to defer from a snapshot")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to run")

    parser.add_argument("-v", "--verbose",
                        action='count',
                        default=0,
                        dest='verbosity',
                        help="Increase verbosity: -v=INFO, -vvv=DEBUG")
    parser.add_argument("-l", "--log",
                        action='store_true',
                        default=False,
                        help="Enable rich log formatting (timestamps, levels)")
    parser.add_argument("-B", "--base-dir",
                        default=".",
                        help="Project base directory; module keys are relative to it (default: .)")
    parser.add_argument("--bundler",
                        help="Snapshot bundler executable (default: $SNAPDOC_BUNDLER)")
    parser.add_argument("--node",
                        help="Node executable used to probe scripts (default: $SNAPDOC_NODE or node)")
    parser.add_argument("--timeout",
                        type=float,
                        default=60.0,
                        help="Seconds a single probe may run (default: 60)")

    ###########################
    # heal command
    ###########################
    p_heal = subparsers.add_parser("heal", help="Determine and optimize the deferred modules")
    p_heal.add_argument("--force-defer", "-f",
                        action="append",
                        default=[],
                        help="Always defer this module (can be passed multiple times)")
    p_heal.add_argument("--output", "-o", help="Write the result JSON here instead of stdout")
    p_heal.add_argument("--script-out", help="Write the last assembled snapshot script here")
    _add_entry_arg(p_heal)
    p_heal.set_defaults(func=cmd_heal)

    ###########################
    # deferred command
    ###########################
    p_deferred = subparsers.add_parser("deferred", help="Deferred modules, reusing the cache when the manifest is unchanged")
    p_deferred.add_argument("--cache-dir", help="Directory of snapshot-meta.json (default: $SNAPDOC_CACHE_DIR or base dir)")
    _add_entry_arg(p_deferred)
    p_deferred.set_defaults(func=cmd_deferred)

    ###########################
    # graph command
    ###########################
    p_graph = subparsers.add_parser("graph", help="Dump leaves, circular imports and leafness order of a metafile")
    p_graph.add_argument("metafile", help="Bundler metafile (JSON)")
    p_graph.set_defaults(func=cmd_graph)

    ###########################
    # probe command
    ###########################
    p_probe = subparsers.add_parser("probe", help="Check whether a single module loads")
    p_probe.add_argument("--defer", "-d",
                         action="append",
                         default=[],
                         help="Defer this module while probing (can be passed multiple times)")
    _add_entry_arg(p_probe)
    p_probe.add_argument("module", help="Module key to use as entry point (e.g. 'lib/util.js')")
    p_probe.set_defaults(func=cmd_probe)

    args = parser.parse_args(argv)
    context = DoctorContext(log_level=LogLevel.ERROR)

    try:
        rc = args.func(args)
    except DoctorError as e:
        log_error(context, e.format())
        rc = 1
    except InternalDoctorError as e:
        log_error(context, e.format())
        rc = 1
    raise SystemExit(rc)


if __name__ == "__main__":
    main()
