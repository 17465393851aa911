"""PackageStore unit tests"""

from __future__ import annotations

from pathlib import Path

import pytest

from gridware.core.models import Package, Requirement
from gridware.core.package_store import PackageStore


@pytest.fixture()
def store(tmp_path: Path) -> PackageStore:
    s = PackageStore(tmp_path / "packages.yml")
    s.first_or_create(type="libs", name="fftw", version="3.3.3", compiler_tag="gcc", tag="gcc-4.8.5")
    s.first_or_create(type="libs", name="fftw", version="3.3.4", compiler_tag="gcc", tag="gcc-4.8.5")
    s.first_or_create(type="libs", name="fftw", version="3.3.4", compiler_tag="intel",
                      variant="mpi", tag="intel-2015")
    s.first_or_create(type="apps", name="hello", version="1.0", compiler_tag="gcc", tag="gcc-4.8.5")
    return s


class TestQueries:
    def test_all_persisted(self, store: PackageStore, tmp_path: Path) -> None:
        assert len(PackageStore(tmp_path / "packages.yml").all()) == 4

    def test_first_or_create_is_idempotent(self, store: PackageStore) -> None:
        again = store.first_or_create(type="apps", name="hello", version="1.0",
                                      compiler_tag="gcc", tag="gcc-4.8.5")
        assert again.path == "apps/hello/1.0/gcc-4.8.5"
        assert len(store.all()) == 4

    def test_first_none_matches_unset(self, store: PackageStore) -> None:
        pkg = store.first(name="fftw", version="3.3.4", variant=None)
        assert pkg is not None and pkg.variant is None

    def test_first_unknown_attribute(self, store: PackageStore) -> None:
        with pytest.raises(TypeError, match="colour"):
            store.first(colour="red")

    def test_get(self, store: PackageStore) -> None:
        assert store.get("apps/hello/1.0/gcc-4.8.5") == Package(
            "apps", "hello", "1.0", compiler_tag="gcc", tag="gcc-4.8.5",
        )
        assert store.get("apps/nope/1.0") is None

    def test_find_exact_then_prefix(self, store: PackageStore) -> None:
        assert [p.path for p in store.find("apps/hello/1.0/gcc-4.8.5")] == ["apps/hello/1.0/gcc-4.8.5"]
        assert len(store.find("libs/fftw/")) == 2
        assert len(store.find("libs/fftw")) == 3

    def test_remove(self, store: PackageStore) -> None:
        pkg = store.get("apps/hello/1.0/gcc-4.8.5")
        assert store.remove(pkg) is True
        assert store.get(pkg.path) is None


class TestResolve:
    def test_latest_plain_preferred(self, store: PackageStore) -> None:
        pkg = store.resolve("fftw")
        assert (pkg.version, pkg.variant) == ("3.3.4", None)

    def test_compiler_tag_wins(self, store: PackageStore) -> None:
        pkg = store.resolve("fftw", compiler_tag="intel")
        assert pkg.variant == "mpi"

    def test_explicit_version(self, store: PackageStore) -> None:
        assert store.resolve("fftw/3.3.3").version == "3.3.3"

    def test_explicit_variant(self, store: PackageStore) -> None:
        assert store.resolve(Requirement("fftw", variant="mpi")).tag == "intel-2015"

    def test_unknown(self, store: PackageStore) -> None:
        assert store.resolve("nothing") is None
        assert store.resolve("fftw/9.9") is None
