#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

import json
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from sd_blueprint import assemble_script, require_path
from sd_context import DoctorContext, LogLevel
from sd_errors import BundlerError
from sd_logger import log_debug, log_output
from sd_metadata import Metadata


@dataclass(frozen=True)
class BundleResult:
    """One bundler invocation: metadata, bundle text and the deferred set it was built with."""
    meta: Metadata
    bundle: str
    deferred: Tuple[str, ...] = ()


class Bundler:
    """
    Adapter around the external snapshot bundler executable.

    The bundler is invoked as:

        <bundler> --outfile=<tmp>/bundle.js --basedir=<base_dir>
                  --metafile=<tmp>/meta.json [--deferred=./a.js,./b.js] <entry_file>

    and is expected to write the bundle and an esbuild-style metafile.
    """

    def __init__(self, context: DoctorContext):
        self.context = context

    def command(self, outfile: Path, metafile: Path, deferred: Iterable[str] = ()) -> List[str]:
        ctx = self.context
        if not ctx.bundler_path:
            raise BundlerError("[BND-0020] no bundler configured (use --bundler or $SNAPDOC_BUNDLER)")
        if ctx.entry_file is None:
            raise BundlerError("[BND-0020] no entry file configured")

        cmd = [
            ctx.bundler_path,
            f"--outfile={outfile}",
            f"--basedir={Path(ctx.base_dir).resolve()}",
            f"--metafile={metafile}",
        ]
        deferred_args = sorted(require_path(k) for k in deferred)
        if deferred_args:
            cmd.append(f"--deferred={','.join(deferred_args)}")
        cmd.append(str(ctx.entry_file))
        return cmd

    def build_metadata_and_bundle(self, deferred: Iterable[str] = ()) -> BundleResult:
        deferred = tuple(sorted(set(deferred)))
        with tempfile.TemporaryDirectory(prefix="snapdoc-bundle-") as tmp:
            outfile = Path(tmp) / "bundle.js"
            metafile = Path(tmp) / "meta.json"
            cmd = self.command(outfile, metafile, deferred)

            log_debug(self.context, f"Running: {' '.join(cmd)}")
            try:
                result = subprocess.run(cmd, capture_output=True, text=True)
            except FileNotFoundError:
                raise BundlerError(f"[BND-0020] bundler executable not found: '{cmd[0]}'")

            if result.returncode != 0:
                raise BundlerError(
                    f"[BND-0010] bundler failed with exit code {result.returncode}: {' '.join(cmd)}",
                    stderr=result.stderr,
                    stdout=result.stdout,
                )
            log_output(self.context, LogLevel.DEBUG, "bundler output", result.stdout)

            log_debug(self.context, f"Loading {outfile} and {metafile}")
            try:
                bundle = outfile.read_text(encoding="utf-8")
                data = json.loads(metafile.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
                raise BundlerError(
                    f"[BND-0030] unable to read bundler output: {e}",
                    stderr=result.stderr,
                    stdout=result.stdout,
                )

        meta = Metadata.from_json(data)
        return BundleResult(meta=meta, bundle=bundle, deferred=deferred)

    def assemble_script(
            self,
            bundle: str,
            meta: Metadata,
            *,
            entry_point: Optional[str] = None,
            strict_verifiers: bool = False,
            deferred: Iterable[str] = (),
    ) -> str:
        return assemble_script(
            bundle,
            meta,
            entry_point=entry_point,
            strict_verifiers=strict_verifiers,
            deferred=deferred,
        )
