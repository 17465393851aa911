"""Distro package install whitelist

``{users: [...], packages: [...], repos: [...]}`` persisted as YAML. Entries
are only ever appended. Each append re-reads the file and merges before the
atomic replace, so concurrent writers can still lose an entry (no locking).
"""

from __future__ import annotations

import logging
from pathlib import Path

from gridware.utils.yaml_io import deep_merge, load_yaml, save_yaml

logger = logging.getLogger(__name__)

SECTIONS = ("users", "packages", "repos")


def _default() -> dict[str, list[str]]:
    return {key: [] for key in SECTIONS}


class Whitelist:
    """Lazily loaded whitelist document"""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._data: dict[str, list[str]] | None = None

    @property
    def data(self) -> dict[str, list[str]]:
        if self._data is None:
            self._data = self._read()
        return self._data

    def _read(self) -> dict[str, list[str]]:
        merged = deep_merge(_default(), load_yaml(self.path))
        return {key: [str(v) for v in merged.get(key) or []] for key in SECTIONS}

    @property
    def users(self) -> list[str]:
        return self.data["users"]

    @property
    def packages(self) -> list[str]:
        return self.data["packages"]

    @property
    def repos(self) -> list[str]:
        return self.data["repos"]

    def add_user(self, user: str) -> bool:
        return self._append("users", user)

    def add_package(self, pkg: str) -> bool:
        return self._append("packages", pkg)

    def add_repo(self, repo_path: str) -> bool:
        return self._append("repos", repo_path)

    def _append(self, section: str, value: str) -> bool:
        """Add ``value`` to ``section``; False when already present."""
        current = self._read()
        if value in current[section]:
            self._data = current
            return False
        current[section].append(value)
        save_yaml(self.path, current)
        self._data = current
        logger.info("Whitelisted %s: %s", section[:-1], value)
        return True
