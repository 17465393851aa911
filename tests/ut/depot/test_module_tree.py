"""ModuleTree unit tests"""

from __future__ import annotations

from pathlib import Path

from gridware.depot.module_tree import ModuleTree


def _module(root: Path, rel: str) -> None:
    f = root / rel
    f.parent.mkdir(parents=True, exist_ok=True)
    f.write_text("#%Module\n", encoding="utf-8")


class TestModuleTree:
    def test_defaults_point_at_latest(self, tmp_path: Path) -> None:
        _module(tmp_path, "apps/hello/1.9/gcc-4.8.5")
        _module(tmp_path, "apps/hello/1.10/gcc-4.8.5")
        _module(tmp_path, "apps/hello/1.10/intel-2015")
        tree = ModuleTree(tmp_path)
        assert tree.write_defaults() == 3
        assert (tmp_path / "apps/hello/.version").read_text() == '#%Module1.0\nset ModulesVersion "1.10"\n'
        assert 'set ModulesVersion "intel-2015"' in (tmp_path / "apps/hello/1.10/.version").read_text()
        assert tree.write_defaults() == 0

    def test_aliases_only_unique_names(self, tmp_path: Path) -> None:
        _module(tmp_path, "apps/hello/1.0/gcc")
        _module(tmp_path, "libs/fftw/3.3.4/gcc")
        _module(tmp_path, "apps/fftw/1.0/gcc")
        aliases = ModuleTree(tmp_path).write_aliases()
        assert aliases == {"hello": "apps/hello"}
        assert (tmp_path / ".modulerc").read_text() == "#%Module1.0\nmodule-alias hello apps/hello\n"

    def test_missing_root(self, tmp_path: Path) -> None:
        tree = ModuleTree(tmp_path / "absent")
        assert tree.write_defaults() == 0
        assert tree.write_aliases() == {}
