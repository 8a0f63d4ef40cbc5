#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sd_errors import MalformedMetadataError


@dataclass(frozen=True)
class ModuleNode:
    """
    One bundled module.

    - key: path relative to the project base dir, without "./" (e.g. 'lib/util.js')
    - imports: imported module keys in source order (duplicates possible)
    - byte_size: size of the module's source as reported by the bundler
    """
    key: str
    imports: Tuple[str, ...] = ()
    byte_size: int = 0


@dataclass(frozen=True)
class Metadata:
    """
    Bundler metadata for one bundler invocation.

    Keys are stable across re-bundles as long as the sources don't change, but
    a new Metadata is produced whenever the deferred set changes.
    """
    modules: Dict[str, ModuleNode] = field(default_factory=dict)
    entry_key: str = ""

    def __contains__(self, key: str) -> bool:
        return key in self.modules

    def __iter__(self) -> Iterator[str]:
        return iter(self.modules)

    def __len__(self) -> int:
        return len(self.modules)

    def node(self, key: str) -> ModuleNode:
        info = self.modules.get(key)
        if info is None:
            raise MalformedMetadataError(f"[META-0030] unable to find '{key}' in the metadata")
        return info

    @property
    def total_bytes(self) -> int:
        return sum(n.byte_size for n in self.modules.values())

    @staticmethod
    def from_graph(graph: Dict[str, List[str]], entry_key: str, sizes: Optional[Dict[str, int]] = None) -> 'Metadata':
        """
        Build Metadata from a plain key -> imports mapping.

        Example:
            Metadata.from_graph({"a.js": [], "b.js": ["a.js"]}, entry_key="b.js")
        """
        sizes = sizes or {}
        modules = {
            key: ModuleNode(key=key, imports=tuple(imports), byte_size=sizes.get(key, 0))
            for key, imports in graph.items()
        }
        meta = Metadata(modules=modules, entry_key=entry_key)
        meta.validate()
        return meta

    @staticmethod
    def from_json(data: Any) -> 'Metadata':
        """
        Parse an esbuild-style metafile object ("inputs" + "outputs").

        The entry point is the single output input flagged with
        fileInfo.isEntryPoint; an "isEntryPoint" flag directly on an
        inputs entry is accepted as well.
        """
        if not isinstance(data, dict) or not isinstance(data.get("inputs"), dict):
            raise MalformedMetadataError("[META-0001] metadata must be an object with an 'inputs' object")

        modules: Dict[str, ModuleNode] = {}
        entries: List[str] = []
        for key, raw in data["inputs"].items():
            if not isinstance(raw, dict):
                raise MalformedMetadataError(f"[META-0001] metadata input '{key}' must be an object")
            imports: List[str] = []
            for imp in raw.get("imports", []):
                if not isinstance(imp, dict) or not isinstance(imp.get("path"), str):
                    raise MalformedMetadataError(f"[META-0001] metadata input '{key}' has an import without a path")
                imports.append(imp["path"])
            modules[key] = ModuleNode(key=key, imports=tuple(imports), byte_size=int(raw.get("bytes", 0)))
            if raw.get("isEntryPoint"):
                entries.append(key)

        for output in (data.get("outputs") or {}).values():
            for key, raw in (output.get("inputs") or {}).items():
                file_info = raw.get("fileInfo") or {}
                if file_info.get("isEntryPoint") and key not in entries:
                    entries.append(key)

        if not entries:
            raise MalformedMetadataError("[META-0010] metadata should have exactly one entry point, found none")
        if len(entries) > 1:
            raise MalformedMetadataError(
                f"[META-0011] metadata should have exactly one entry point, found {len(entries)}: {', '.join(entries)}"
            )

        meta = Metadata(modules=modules, entry_key=entries[0])
        meta.validate()
        return meta

    def validate(self) -> None:
        """Every import and the entry point must refer to a known module."""
        if self.entry_key not in self.modules:
            raise MalformedMetadataError(f"[META-0020] entry point '{self.entry_key}' is not part of the metadata")
        for node in self.modules.values():
            for imp in node.imports:
                if imp not in self.modules:
                    raise MalformedMetadataError(
                        f"[META-0020] '{node.key}' imports '{imp}' which is not part of the metadata"
                    )


def load_metafile(path: str | Path) -> Metadata:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise MalformedMetadataError(f"[META-0001] {path} is not valid JSON: {e}")
    return Metadata.from_json(data)
