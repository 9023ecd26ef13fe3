"""Tests for connection descriptor discovery."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from bsp_client.discovery import descriptor_candidates, discover, load_descriptor
from bsp_client.errors import DescriptorError
from bsp_client.uri import path_to_uri


def write_descriptor(root: Path, name: str, **fields) -> Path:
    data = {
        "name": name,
        "version": "1.0.0",
        "bspVersion": "2.0.0",
        "languages": ["erlang"],
        "argv": ["rebar3", "bsp"],
    }
    data.update(fields)
    bsp_dir = root / ".bsp"
    bsp_dir.mkdir(exist_ok=True)
    path = bsp_dir / f"{name}.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestDiscover:
    """Tests for discover()."""

    def test_no_bsp_directory(self, tmp_path: Path) -> None:
        assert discover(path_to_uri(tmp_path)) is None

    def test_empty_bsp_directory(self, tmp_path: Path) -> None:
        (tmp_path / ".bsp").mkdir()
        assert discover(tmp_path) is None

    def test_non_json_files_ignored(self, tmp_path: Path) -> None:
        (tmp_path / ".bsp").mkdir()
        (tmp_path / ".bsp" / "notes.txt").write_text("{}")
        assert discover(tmp_path) is None

    def test_single_descriptor(self, tmp_path: Path) -> None:
        write_descriptor(tmp_path, "rebar3")

        descriptor = discover(path_to_uri(tmp_path))

        assert descriptor is not None
        assert descriptor.name == "rebar3"
        assert descriptor.argv == ["rebar3", "bsp"]
        assert descriptor.bsp_version == "2.0.0"
        assert descriptor.languages == ["erlang"]

    def test_first_name_wins(self, tmp_path: Path) -> None:
        write_descriptor(tmp_path, "zeta", argv=["zeta"])
        write_descriptor(tmp_path, "alpha", argv=["alpha"])

        for _ in range(3):
            descriptor = discover(tmp_path)
            assert descriptor is not None
            assert descriptor.name == "alpha"

    def test_candidates_sorted(self, tmp_path: Path) -> None:
        write_descriptor(tmp_path, "b")
        write_descriptor(tmp_path, "a")
        write_descriptor(tmp_path, "c")

        assert [p.stem for p in descriptor_candidates(tmp_path)] == ["a", "b", "c"]

    def test_extra_fields_kept(self, tmp_path: Path) -> None:
        write_descriptor(tmp_path, "sbt", transport="stdio")

        descriptor = discover(tmp_path)

        assert descriptor is not None
        assert descriptor.model_extra == {"transport": "stdio"}


class TestLoadDescriptor:
    """Tests for invalid descriptor files."""

    def test_invalid_json(self, tmp_path: Path) -> None:
        (tmp_path / ".bsp").mkdir()
        path = tmp_path / ".bsp" / "broken.json"
        path.write_text("{not json")

        with pytest.raises(DescriptorError, match="Invalid connection descriptor"):
            load_descriptor(path)

    def test_missing_argv(self, tmp_path: Path) -> None:
        path = write_descriptor(tmp_path, "noargv")
        data = json.loads(path.read_text())
        del data["argv"]
        path.write_text(json.dumps(data))

        with pytest.raises(DescriptorError):
            discover(tmp_path)

    def test_empty_argv(self, tmp_path: Path) -> None:
        write_descriptor(tmp_path, "empty", argv=[])

        with pytest.raises(DescriptorError):
            discover(tmp_path)

    def test_unreadable_file(self, tmp_path: Path) -> None:
        with pytest.raises(DescriptorError, match="Cannot read"):
            load_descriptor(tmp_path / "missing.json")
