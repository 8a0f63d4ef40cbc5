"""
Deferred-set cache.

Healing is expensive (hundreds of bundler runs), so its result is stored
next to a hash of the project's dependency manifest. As long as the
manifest bytes don't change, the stored deferred list is reused.
"""

#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from sd_bundler import Bundler
from sd_context import DoctorContext
from sd_doctor import SnapshotDoctor
from sd_errors import CacheError
from sd_logger import log_debug, log_info, log_warning
from sd_oracle import NodeOracle

CACHE_FILE_NAME = "snapshot-meta.json"

# Searched in this order inside the project base dir.
MANIFEST_CANDIDATES = ("yarn.lock", "package-lock.json", "package.json")


@dataclass(frozen=True)
class CacheRecord:
    deferred: List[str]
    deferred_hash_file: str  # manifest path relative to the base dir
    deferred_hash: str  # sha256 hex of the manifest bytes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deferred": list(self.deferred),
            "deferredHashFile": self.deferred_hash_file,
            "deferredHash": self.deferred_hash,
        }

    @staticmethod
    def from_dict(data: Any) -> CacheRecord:
        if not isinstance(data, dict):
            raise ValueError("cache record must be a JSON object")
        deferred = data.get("deferred")
        hash_file = data.get("deferredHashFile")
        digest = data.get("deferredHash")
        if not isinstance(deferred, list) or any(not isinstance(k, str) for k in deferred):
            raise ValueError("cache record 'deferred' must be a list of strings")
        if not isinstance(hash_file, str) or not hash_file:
            raise ValueError("cache record is missing 'deferredHashFile'")
        if not isinstance(digest, str) or not digest:
            raise ValueError("cache record is missing 'deferredHash'")
        return CacheRecord(deferred=list(deferred), deferred_hash_file=hash_file, deferred_hash=digest)


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hash_file(path: Path) -> str:
    return sha256_hex(Path(path).read_bytes())


def find_hash_file(base_dir: Path) -> Optional[Path]:
    for name in MANIFEST_CANDIDATES:
        candidate = Path(base_dir) / name
        if candidate.is_file():
            return candidate
    return None


def load_cache_record(path: Path) -> Optional[CacheRecord]:
    """
    Load a cache record. Returns None when the file doesn't exist; raises
    ValueError when it exists but can't be used.
    """
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"unreadable cache file {path}: {e}")
    return CacheRecord.from_dict(data)


def save_cache_record(path: Path, record: CacheRecord) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + f".tmp.{os.getpid()}")
    tmp.write_text(json.dumps(record.to_dict(), indent=2), encoding="utf-8")
    os.replace(tmp, path)


def determine_deferred(context: DoctorContext, doctor: SnapshotDoctor | None = None) -> List[str]:
    """
    Return the deferred list for the project in context.base_dir, healing
    only when no cache record matches the current manifest hash.
    """
    base_dir = Path(context.base_dir)
    manifest = find_hash_file(base_dir)
    if manifest is None:
        raise CacheError(
            f"[CCH-0020] unable to find a manifest to hash inside {base_dir} "
            f"(looked for {', '.join(MANIFEST_CANDIDATES)})"
        )
    digest = hash_file(manifest)
    cache_path = context.resolved_cache_dir() / CACHE_FILE_NAME

    try:
        record = load_cache_record(cache_path)
    except ValueError as e:
        log_warning(context, f"[CCH-0010] ignoring cache: {e}")
        record = None

    if record is not None and record.deferred_hash == digest:
        log_info(context, f"Using cached deferred modules from {cache_path}")
        return record.deferred

    if record is None:
        log_info(context, "No cached deferred modules found, will determine them ...")
    else:
        log_info(context, f"{manifest.name} changed since the deferred modules were cached, will determine them ...")
    log_debug(context, f"Manifest {manifest} hashes to {digest}")

    if doctor is None:
        doctor = SnapshotDoctor(
            Bundler(context),
            NodeOracle(context.node_path, timeout=context.oracle_timeout),
            context=context,
        )
    result = doctor.heal()

    updated = CacheRecord(
        deferred=list(result.deferred),
        deferred_hash_file=manifest.relative_to(base_dir).as_posix(),
        deferred_hash=digest,
    )
    save_cache_record(cache_path, updated)
    log_info(context, f"Wrote {len(updated.deferred)} deferred module(s) to {cache_path}")
    return updated.deferred
