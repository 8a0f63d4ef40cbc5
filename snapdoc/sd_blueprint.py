"""
Snapshot script assembly.

Wraps a bundle produced by the snapshot bundler into a self-contained script
that can be evaluated in a bare V8 context: a custom require backed by the
bundle's module definitions, stubs for anything outside the bundle, and an
entry point that is required eagerly.
"""

#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

import json
import os
import sys
from typing import Any, Dict, Iterable, Optional

from sd_metadata import Metadata


BLUEPRINT = """\
var snapshotAuxiliaryData = {}

function generateSnapshot() {
  const processPlatform = 'PROCESS_PLATFORM'
  const pathSeparator = null

  //
  // <custom-require>
  //
  let require = (moduleName) => {
    throw new Error(
      `[SNAPSHOT_CACHE_FAILURE] Cannot require module "${moduleName}"`
    )
  }
  require.isStrict = IS_STRICT

  VERIFIERS

  const coreStubs = {}

  function customRequire(modulePath, parent = {}) {
    let module = customRequire.cache[modulePath]
    if (!module) {
      if (typeof verifyModuleCanBeLoaded === 'function') {
        verifyModuleCanBeLoaded(modulePath)
      }
      const filename = modulePath
      const dirname = filename.split('/').slice(0, -1).join('/')
      module = {
        exports: {},
        children: [],
        loaded: true,
        parent,
        paths: (parent != null && parent.paths) || [],
        require: customRequire,
        filename,
        id: filename,
        path: filename,
      }
      function define(callback) {
        callback(customRequire, module.exports, module)
      }
      if (Object.prototype.hasOwnProperty.call(customRequire.definitions, modulePath)) {
        customRequire.cache[modulePath] = module
        customRequire.definitions[modulePath].apply(module.exports, [
          module.exports,
          module,
          filename,
          dirname,
          customRequire,
          define,
        ])
      } else if (Object.prototype.hasOwnProperty.call(coreStubs, modulePath)) {
        module.exports = coreStubs[modulePath]
      } else {
        module.exports = require(modulePath)
        customRequire.cache[modulePath] = module
      }
    }
    return module.exports
  }
  customRequire.extensions = {}
  customRequire.cache = {}
  customRequire.definitions = {}
  //
  // </custom-require>
  //

  customRequire(MAIN_MODULE_REQUIRE_PATH)
  return { customRequire, processPlatform, pathSeparator }
}

var snapshotResult = generateSnapshot.call({})
"""

_DEFINITIONS_ASSIGNMENT = "customRequire.definitions = {}"
_AUXILIARY_ASSIGNMENT = "var snapshotAuxiliaryData = {}"


def require_definitions(bundle: str) -> str:
    indented = bundle.replace("\n", "\n  ")
    return (
        "//\n"
        "  // Start Bundle generated with the snapshot bundler\n"
        "  //\n"
        f"  {indented}\n"
        "  //\n"
        "  // End Bundle generated with the snapshot bundler\n"
        "  //\n"
        "\n"
        "  customRequire.definitions = __commonJS"
    )


def verify_module_can_be_loaded(unloadable: Iterable[str]) -> str:
    """
    JS source of verifyModuleCanBeLoaded(): throws when a deferred module is
    required eagerly instead of through the lazy path.
    """
    unloadables = json.dumps(sorted(unloadable))
    return (
        f"const unloadables = new Set({unloadables})\n"
        "  function verifyModuleCanBeLoaded(moduleName) {\n"
        "    if (unloadables.has(moduleName)) {\n"
        "      throw new Error(\n"
        "        '[SNAPSHOT_CACHE_FAILURE] Cannot load deferred or norewrite module \"' +\n"
        "          moduleName + '\" during snapshot creation'\n"
        "      )\n"
        "    }\n"
        "  }"
    )


def require_path(key: str) -> str:
    return key if key.startswith("./") else f"./{key}"


def assemble_script(
        bundle: str,
        meta: Metadata,
        *,
        entry_point: Optional[str] = None,
        strict_verifiers: bool = False,
        deferred: Iterable[str] = (),
        auxiliary_data: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Fill the blueprint for `bundle`.

    entry_point defaults to the metadata's entry point. With
    strict_verifiers, requiring any of `deferred` eagerly throws and
    unresolvable requires are not softened.
    """
    main_path = require_path(entry_point or meta.entry_key)

    script = BLUEPRINT
    script = script.replace("PROCESS_PLATFORM", sys.platform, 1)
    script = script.replace("const pathSeparator = null", f"const pathSeparator = {json.dumps(os.sep)}", 1)
    script = script.replace(
        _AUXILIARY_ASSIGNMENT,
        f"var snapshotAuxiliaryData = {json.dumps(auxiliary_data or {})};",
        1,
    )
    script = script.replace("IS_STRICT", "true" if strict_verifiers else "false", 1)

    verifiers = verify_module_can_be_loaded(require_path(k) for k in deferred) if strict_verifiers else ""
    script = script.replace("VERIFIERS", verifiers, 1)

    script = script.replace("MAIN_MODULE_REQUIRE_PATH", json.dumps(main_path), 1)
    # Last: the bundle text itself may contain any of the placeholders above.
    script = script.replace(_DEFINITIONS_ASSIGNMENT, require_definitions(bundle), 1)
    return script
