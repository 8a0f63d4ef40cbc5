#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2026 gwz

import json

import pytest

from sd_cache import (
    CACHE_FILE_NAME,
    CacheRecord,
    determine_deferred,
    find_hash_file,
    load_cache_record,
    save_cache_record,
    sha256_hex,
)
from sd_context import DoctorContext, LogLevel
from sd_errors import CacheError
from sd_result import HealResult


class StubDoctor:
    def __init__(self, deferred):
        self.deferred = deferred
        self.runs = 0

    def heal(self, force_deferred=()):
        self.runs += 1
        return HealResult(deferred=list(self.deferred))


@pytest.fixture
def project(tmp_path):
    (tmp_path / "package.json").write_text('{"name": "app"}', encoding="utf-8")
    return tmp_path


def _context(base_dir, **overrides):
    return DoctorContext(base_dir=base_dir, log_level=LogLevel.SILENT, **overrides)


def test_sha256_hex():
    assert sha256_hex(b"") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


def test_find_hash_file_prefers_lock_files(tmp_path):
    assert find_hash_file(tmp_path) is None

    (tmp_path / "package.json").write_text("{}")
    assert find_hash_file(tmp_path).name == "package.json"

    (tmp_path / "package-lock.json").write_text("{}")
    assert find_hash_file(tmp_path).name == "package-lock.json"

    (tmp_path / "yarn.lock").write_text("")
    assert find_hash_file(tmp_path).name == "yarn.lock"


def test_record_file_format(tmp_path):
    path = tmp_path / CACHE_FILE_NAME
    save_cache_record(path, CacheRecord(["./a.js"], "yarn.lock", "abc"))

    assert json.loads(path.read_text()) == {
        "deferred": ["./a.js"],
        "deferredHashFile": "yarn.lock",
        "deferredHash": "abc",
    }
    assert load_cache_record(path) == CacheRecord(["./a.js"], "yarn.lock", "abc")
    assert list(tmp_path.iterdir()) == [path]


def test_missing_record_loads_as_none(tmp_path):
    assert load_cache_record(tmp_path / CACHE_FILE_NAME) is None


@pytest.mark.parametrize("content", ["{oops", "[]", '{"deferred": "a.js"}', '{"deferred": []}'])
def test_unusable_record_raises(tmp_path, content):
    path = tmp_path / CACHE_FILE_NAME
    path.write_text(content)

    with pytest.raises(ValueError):
        load_cache_record(path)


def test_first_run_heals_and_saves(project):
    doctor = StubDoctor(["./lib/a.js"])

    deferred = determine_deferred(_context(project), doctor)

    assert deferred == ["./lib/a.js"]
    assert doctor.runs == 1
    record = load_cache_record(project / CACHE_FILE_NAME)
    assert record.deferred == ["./lib/a.js"]
    assert record.deferred_hash_file == "package.json"
    assert record.deferred_hash == sha256_hex(b'{"name": "app"}')


def test_unchanged_manifest_reuses_record(project):
    determine_deferred(_context(project), StubDoctor(["./lib/a.js"]))
    doctor = StubDoctor(["./other.js"])

    deferred = determine_deferred(_context(project), doctor)

    assert deferred == ["./lib/a.js"]
    assert doctor.runs == 0


def test_changed_manifest_heals_again(project):
    determine_deferred(_context(project), StubDoctor(["./lib/a.js"]))
    (project / "package.json").write_text('{"name": "app", "version": "2.0.0"}')
    doctor = StubDoctor(["./lib/b.js"])

    deferred = determine_deferred(_context(project), doctor)

    assert deferred == ["./lib/b.js"]
    assert doctor.runs == 1
    assert load_cache_record(project / CACHE_FILE_NAME).deferred == ["./lib/b.js"]


def test_corrupt_record_is_a_cache_miss(project, capsys):
    (project / CACHE_FILE_NAME).write_text("{oops")
    context = DoctorContext(base_dir=project, log_level=LogLevel.WARNING)
    doctor = StubDoctor([])

    assert determine_deferred(context, doctor) == []
    assert doctor.runs == 1
    assert "[CCH-0010]" in capsys.readouterr().err


def test_cache_dir_can_differ_from_base_dir(project, tmp_path):
    cache_dir = tmp_path / "cache"

    determine_deferred(_context(project, cache_dir=cache_dir), StubDoctor(["./a.js"]))

    assert (cache_dir / CACHE_FILE_NAME).is_file()
    assert not (project / CACHE_FILE_NAME).exists()


def test_project_without_manifest(tmp_path):
    with pytest.raises(CacheError, match=r"\[CCH-0020\]"):
        determine_deferred(_context(tmp_path), StubDoctor([]))
