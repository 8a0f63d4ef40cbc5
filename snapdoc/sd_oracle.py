"""
Execution oracles.

An oracle answers one question: does this assembled snapshot script run to
completion? Every call must be independent of the previous ones; the doctor
probes many hypotheses against the same global names.
"""

#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Union

from sd_errors import OracleUnavailableError


@dataclass(frozen=True)
class ProbeResult:
    ok: bool
    message: str = ""


class Oracle:
    """Interface: run a script in a fresh environment and report pass/fail."""

    def execute(self, script: str, filename: str) -> ProbeResult:
        raise NotImplementedError


# Evaluates the snapshot script in a new V8 context, the way mksnapshot would
# see it: no require, no process, only the globals the blueprint sets up.
NODE_HARNESS = """\
const fs = require('fs')
const vm = require('vm')
const [scriptPath, filename] = process.argv.slice(2)
const script = fs.readFileSync(scriptPath, 'utf8')
try {
  vm.runInNewContext(script, undefined, { filename, displayErrors: true })
} catch (err) {
  let text
  try {
    text = err != null && err.stack != null ? String(err.stack) : String(err)
  } catch (_) {
    text = '<unprintable error>'
  }
  process.stderr.write(text + '\\n')
  process.exit(1)
}
"""


class NodeOracle(Oracle):
    """
    Runs every probe in its own node process, so no state can leak from one
    probe into the next.
    """

    def __init__(self, node_path: str = "node", timeout: float = 60.0):
        self.node_path = node_path
        self.timeout = timeout

    def execute(self, script: str, filename: str) -> ProbeResult:
        with tempfile.TemporaryDirectory(prefix="snapdoc-probe-") as tmp:
            harness_path = Path(tmp) / "harness.js"
            script_path = Path(tmp) / "snapshot.js"
            harness_path.write_text(NODE_HARNESS, encoding="utf-8")
            script_path.write_text(script, encoding="utf-8")

            cmd = [self.node_path, str(harness_path), str(script_path), filename]
            try:
                result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
            except FileNotFoundError:
                raise OracleUnavailableError(f"[ORC-0010] node executable not found: '{self.node_path}'")
            except subprocess.TimeoutExpired:
                return ProbeResult(ok=False, message=f"{filename}: timed out after {self.timeout:g}s")

        if result.returncode != 0:
            return ProbeResult(ok=False, message=(result.stderr or result.stdout or "").strip())
        return ProbeResult(ok=True)


class CallableOracle(Oracle):
    """
    Adapts a plain function to the Oracle interface.

    The function may return a bool or a ProbeResult; anything it raises is
    reported as a failed probe.
    """

    def __init__(self, fn: Callable[[str, str], Union[bool, ProbeResult]]):
        self.fn = fn

    def execute(self, script: str, filename: str) -> ProbeResult:
        try:
            outcome = self.fn(script, filename)
        except Exception as e:
            return ProbeResult(ok=False, message=f"{type(e).__name__}: {e}")
        if isinstance(outcome, ProbeResult):
            return outcome
        return ProbeResult(ok=bool(outcome))
