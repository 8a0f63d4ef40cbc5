#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2026 gwz

import pytest

from conftest import esbuild_meta
from sd_errors import MalformedMetadataError
from sd_metadata import Metadata, ModuleNode, load_metafile


def test_from_json_reads_imports_sizes_and_entry():
    data = esbuild_meta(
        {"lib/a.js": [], "lib/b.js": ["lib/a.js"], "index.js": ["lib/b.js", "lib/a.js"]},
        entry="index.js",
        sizes={"lib/a.js": 100, "lib/b.js": 20, "index.js": 3},
    )

    meta = Metadata.from_json(data)

    assert meta.entry_key == "index.js"
    assert list(meta) == ["lib/a.js", "lib/b.js", "index.js"]
    assert meta.node("index.js") == ModuleNode(key="index.js", imports=("lib/b.js", "lib/a.js"), byte_size=3)
    assert meta.total_bytes == 123
    assert "lib/a.js" in meta
    assert len(meta) == 3


def test_from_json_keeps_duplicate_imports():
    data = esbuild_meta({"a.js": [], "b.js": ["a.js", "a.js"]}, entry="b.js")

    meta = Metadata.from_json(data)

    assert meta.node("b.js").imports == ("a.js", "a.js")


def test_entry_flag_on_inputs_is_accepted():
    data = {
        "inputs": {
            "a.js": {"bytes": 1, "imports": []},
            "main.js": {"bytes": 1, "imports": [{"path": "a.js"}], "isEntryPoint": True},
        }
    }

    assert Metadata.from_json(data).entry_key == "main.js"


def test_missing_entry_point_is_fatal():
    data = esbuild_meta({"a.js": []}, entry="nope.js")

    with pytest.raises(MalformedMetadataError, match=r"\[META-0010\]"):
        Metadata.from_json(data)


def test_more_than_one_entry_point_is_fatal():
    data = esbuild_meta({"a.js": [], "b.js": []}, entry="a.js")
    data["outputs"]["bundle.js"]["inputs"]["b.js"]["fileInfo"]["isEntryPoint"] = True

    with pytest.raises(MalformedMetadataError, match=r"\[META-0011\]"):
        Metadata.from_json(data)


def test_unknown_import_is_fatal():
    data = esbuild_meta({"a.js": ["missing.js"]}, entry="a.js")

    with pytest.raises(MalformedMetadataError, match=r"\[META-0020\].*missing\.js"):
        Metadata.from_json(data)


@pytest.mark.parametrize("data", [[], {"outputs": {}}, {"inputs": {"a.js": 3}}])
def test_non_object_metadata_is_rejected(data):
    with pytest.raises(MalformedMetadataError, match=r"\[META-0001\]"):
        Metadata.from_json(data)


def test_import_without_path_is_rejected():
    data = {"inputs": {"a.js": {"imports": [{"kind": "require-call"}], "isEntryPoint": True}}}

    with pytest.raises(MalformedMetadataError, match=r"\[META-0001\]"):
        Metadata.from_json(data)


def test_node_lookup_of_unknown_key_is_fatal():
    meta = Metadata.from_graph({"a.js": []}, entry_key="a.js")

    with pytest.raises(MalformedMetadataError, match=r"\[META-0030\]"):
        meta.node("b.js")


def test_from_graph_validates_entry():
    with pytest.raises(MalformedMetadataError, match=r"\[META-0020\]"):
        Metadata.from_graph({"a.js": []}, entry_key="main.js")


def test_load_metafile(write_metafile):
    path = write_metafile(esbuild_meta({"a.js": [], "main.js": ["a.js"]}, entry="main.js"))

    meta = load_metafile(path)

    assert meta.entry_key == "main.js"
    assert meta.node("main.js").imports == ("a.js",)


def test_load_metafile_rejects_invalid_json(tmp_path):
    path = tmp_path / "meta.json"
    path.write_text("{not json")

    with pytest.raises(MalformedMetadataError, match=r"\[META-0001\]"):
        load_metafile(path)
