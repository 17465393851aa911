"""yaml_io unit tests"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from gridware.utils.yaml_io import atomic_write, deep_merge, load_yaml, save_yaml


class TestLoadYaml:
    def test_missing(self, tmp_path: Path) -> None:
        assert load_yaml(tmp_path / "nope.yml") == {}

    def test_empty(self, tmp_path: Path) -> None:
        f = tmp_path / "e.yml"
        f.write_text("", encoding="utf-8")
        assert load_yaml(f) == {}

    def test_non_mapping_ignored(self, tmp_path: Path) -> None:
        f = tmp_path / "l.yml"
        f.write_text("- a\n- b\n", encoding="utf-8")
        assert load_yaml(f) == {}

    def test_parse_error_raises(self, tmp_path: Path) -> None:
        f = tmp_path / "bad.yml"
        f.write_text("a: [unclosed\n", encoding="utf-8")
        with pytest.raises(yaml.YAMLError):
            load_yaml(f)


class TestWrite:
    def test_save_creates_parents_and_keeps_order(self, tmp_path: Path) -> None:
        f = tmp_path / "a" / "b" / "out.yml"
        save_yaml(f, {"z": 1, "a": 2})
        assert f.read_text(encoding="utf-8").splitlines() == ["z: 1", "a: 2"]

    def test_atomic_write_leaves_no_temp(self, tmp_path: Path) -> None:
        f = tmp_path / "x.txt"
        atomic_write(f, "one")
        atomic_write(f, "two")
        assert f.read_text(encoding="utf-8") == "two"
        assert [p.name for p in tmp_path.iterdir()] == ["x.txt"]


class TestDeepMerge:
    def test_nested_dicts(self) -> None:
        assert deep_merge({"a": {"x": 1}}, {"a": {"y": 2}}) == {"a": {"x": 1, "y": 2}}

    def test_lists_union(self) -> None:
        assert deep_merge({"l": [1, 2]}, {"l": [2, 3]}) == {"l": [1, 2, 3]}

    def test_none_does_not_override(self) -> None:
        assert deep_merge({"a": 1}, {"a": None}) == {"a": 1}

    def test_base_untouched(self) -> None:
        base = {"l": [1]}
        deep_merge(base, {"l": [2]})
        assert base == {"l": [1]}
