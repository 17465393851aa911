"""Shared fixtures: an isolated configuration tree, a fake executor and
helpers for writing definitions and building package archives."""

from __future__ import annotations

import io
import tarfile
from pathlib import Path
from typing import Any, Callable

import pytest
import yaml

import gridware.core.config as cfgmod
from gridware.core.config import Config
from gridware.services.container import reset_container
from gridware.utils.shell import CommandResult


class FakeExecutor:
    """Records commands; ``handler(cmd)`` decides each result."""

    def __init__(self, handler: Callable[[Any], CommandResult | int] | None = None) -> None:
        self.handler = handler
        self.calls: list[Any] = []

    def execute(self, cmd, *, cwd=None, env=None, timeout=None, shell=False) -> CommandResult:
        self.calls.append(cmd)
        if self.handler is None:
            return CommandResult(0, "", "")
        r = self.handler(cmd)
        if isinstance(r, int):
            return CommandResult(r, "", "")
        return r

    def commands_containing(self, text: str) -> list[Any]:
        return [c for c in self.calls if text in (c if isinstance(c, str) else " ".join(c))]


@pytest.fixture()
def cfg(tmp_path: Path) -> Config:
    root = tmp_path / "gridware"
    root.mkdir()
    return Config(
        dist="el7",
        cw_root=str(tmp_path / "clusterware"),
        depotroot=str(root),
        archives_dir=str(tmp_path / "archives"),
        log_root=str(tmp_path / "log"),
        whitelist_file=str(root / "etc" / "whitelist.yml"),
        requests_dir=str(root / "etc" / "package-requests"),
        repo_paths=[str(tmp_path / "repos" / "main")],
        binary_url="https://packages.example.com/dist",
    )


@pytest.fixture()
def current_config(cfg: Config, monkeypatch: pytest.MonkeyPatch) -> Config:
    """Install ``cfg`` as the process configuration with a fresh container."""
    monkeypatch.setattr(cfgmod, "_current", cfg)
    reset_container()
    yield cfg
    reset_container()


def write_definition(
    repo: Path, type_: str, name: str, version: str, metadata: dict | None = None,
) -> Path:
    d = repo / "pkg" / type_ / name / version
    d.mkdir(parents=True, exist_ok=True)
    f = d / "metadata.yml"
    f.write_text(yaml.safe_dump(metadata or {}), encoding="utf-8")
    return f


def build_archive(
    dest: Path,
    metadata: dict,
    files: dict[str, bytes | str],
) -> Path:
    """Tarball at ``dest`` with ``metadata.yml`` and ``files`` (relative paths)."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(dest, "w:gz") as tf:
        entries = {"metadata.yml": yaml.safe_dump(metadata), **files}
        for rel, content in entries.items():
            data = content.encode() if isinstance(content, str) else content
            info = tarfile.TarInfo(rel)
            info.size = len(data)
            info.mode = 0o755 if rel.endswith(".sh") or "/bin/" in rel else 0o644
            tf.addfile(info, io.BytesIO(data))
    return dest


def tagged_archive(
    dest: Path,
    *,
    type_: str = "apps",
    name: str = "hello",
    version: str = "1.0",
    dist: str = "el7",
    tags: tuple[str, ...] = ("gcc-4.8.5",),
    requirements: list[str] | None = None,
    depends: bool = False,
    build_depot: str = "/opt/gridware/depots/_^DEPOT_",
) -> Path:
    """Archive of a regular package with one module/payload per tag."""
    files: dict[str, bytes | str] = {}
    taggings = []
    for tag in tags:
        base = f"{type_}/{name}/{version}/{tag}"
        files[f"{dist}/etc/modules/{base}"] = f"#%Module\nprepend-path PATH _DEPOT_/{dist}/pkg/{base}/bin\n"
        files[f"{dist}/pkg/{base}/bin/{name}"] = "#!/bin/sh\necho _DEPOT_\n"
        files[f"{dist}/pkg/{base}/lib/lib{name}.so"] = b"\x7fELF\0" + build_depot.encode() + b"/lib\0\0\0tail\0"
        if depends:
            files[f"{dist}/etc/depends/{type_}-{name}-{version}-{tag}.sh"] = "#!/bin/bash\nexit 0\n"
        taggings.append({
            "tag": tag,
            "compiler_tag": tag.split("-")[0],
            "requirements": list(requirements or []),
        })
    meta = {"type": type_, "name": name, "version": version, "distro": dist, "taggings": taggings}
    return build_archive(dest, meta, files)
