"""Depot module tree maintenance

After an import the depot's ``etc/modules`` tree gets ``.version`` files
pointing each package and version directory at its latest entry, and a
top-level ``.modulerc`` aliasing bare package names to ``type/name``.
"""

from __future__ import annotations

import logging
from pathlib import Path

from gridware.core.models import version_key
from gridware.utils.yaml_io import atomic_write

logger = logging.getLogger(__name__)

MODULE_HEADER = "#%Module1.0"


def _entries(directory: Path) -> list[str]:
    return [p.name for p in directory.iterdir() if not p.name.startswith(".")]


class ModuleTree:
    """``<depot>/<dist>/etc/modules``"""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _write_if_changed(self, path: Path, content: str) -> bool:
        if path.exists() and path.read_text(encoding="utf-8") == content:
            return False
        atomic_write(path, content)
        return True

    def package_dirs(self) -> list[Path]:
        """``<type>/<name>`` directories."""
        if not self.root.is_dir():
            return []
        return sorted(
            name_dir
            for type_dir in self.root.iterdir() if type_dir.is_dir() and not type_dir.name.startswith(".")
            for name_dir in type_dir.iterdir() if name_dir.is_dir() and not name_dir.name.startswith(".")
        )

    def write_defaults(self) -> int:
        """Point every package (and tagged version) directory at its latest entry."""
        written = 0
        for pkg_dir in self.package_dirs():
            targets = [pkg_dir] + sorted(
                p for p in pkg_dir.iterdir() if p.is_dir() and not p.name.startswith(".")
            )
            for d in targets:
                entries = _entries(d)
                if not entries:
                    continue
                latest = max(entries, key=version_key)
                content = f'{MODULE_HEADER}\nset ModulesVersion "{latest}"\n'
                if self._write_if_changed(d / ".version", content):
                    written += 1
        logger.debug("Wrote %d default pointer(s) under %s", written, self.root)
        return written

    def write_aliases(self) -> dict[str, str]:
        """Alias each package name to ``type/name`` when the name is unique."""
        seen: dict[str, list[str]] = {}
        for pkg_dir in self.package_dirs():
            name = pkg_dir.name
            seen.setdefault(name, []).append(f"{pkg_dir.parent.name}/{name}")
        aliases = {name: paths[0] for name, paths in sorted(seen.items()) if len(paths) == 1}
        if not self.root.is_dir():
            return aliases
        lines = [MODULE_HEADER] + [f"module-alias {n} {p}" for n, p in aliases.items()]
        self._write_if_changed(self.root / ".modulerc", "\n".join(lines) + "\n")
        return aliases
