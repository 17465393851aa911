"""Definition repositories

A repository is a directory holding ``pkg/<type>/<name>[/<version>]/metadata.yml``
definitions and an optional ``repo.yml`` (``source``, ``branch``, ``schema``)
naming the git remote it tracks. RepositorySet is the configured, ordered
collection the resolver searches.
"""

from __future__ import annotations

import fnmatch
import hashlib
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator

import yaml

from gridware.core.exceptions import GridwareError, PackageError
from gridware.core.models import (
    Definition,
    DefinitionMetadata,
    SyncResult,
    SyncStatus,
    version_key,
)
from gridware.repo.git import GitSync
from gridware.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)


class Repository:
    """One definition repository on disk"""

    def __init__(
        self,
        path: str | Path,
        *,
        git: GitSync | None = None,
        update_period: int = 86400,
        last_update_filename: str = ".last_update",
    ) -> None:
        self.path = Path(os.path.expanduser(str(path))).resolve()
        self.package_path = self.path / "pkg"
        self.update_period = update_period
        self._git = git or GitSync()
        self._last_update_file = self.path / last_update_filename
        self._metadata: dict | None = None
        self._definitions: list[Definition] | None = None

    def __repr__(self) -> str:
        return f"Repository({str(self.path)!r})"

    @property
    def name(self) -> str:
        return self.path.name

    # ---- repo.yml ----

    @property
    def metadata(self) -> dict:
        if self._metadata is None:
            self._metadata = load_yaml(self.path / "repo.yml")
        return self._metadata

    @property
    def source(self) -> str | None:
        return self.metadata.get("source")

    @property
    def branch(self) -> str:
        return str(self.metadata.get("branch") or "master")

    @property
    def working_copy(self) -> Path:
        """Git working copy: ``pkg`` for schema 1, the repository otherwise."""
        return self.package_path if self.metadata.get("schema") == 1 else self.path

    @property
    def descriptor(self) -> str:
        if self.source:
            return f"git+{self.source}@{self.head_revision()}"
        return f"file:{self.path}"

    def head_revision(self) -> str:
        try:
            return self._git.head_revision(self.working_copy)[:7] or "unknown"
        except GridwareError:
            return "unknown"

    # ---- definitions ----

    @property
    def definitions(self) -> list[Definition]:
        if self._definitions is None:
            self._definitions = self._load_definitions()
        return self._definitions

    def invalidate(self) -> None:
        self._definitions = None

    def empty(self) -> bool:
        return not self.path.is_dir() or not self.definitions

    def _load_definitions(self) -> list[Definition]:
        if not self.package_path.is_dir():
            return []
        logger.info("Loading repo from path: %s", self.path)
        result = []
        for f in sorted(self.package_path.rglob("metadata.yml")):
            parts = f.relative_to(self.package_path).parts
            if len(parts) < 3:
                continue
            try:
                text = f.read_text(encoding="utf-8")
                data = yaml.safe_load(text) or {}
            except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
                raise PackageError(f"Unable to parse: {f} ({type(e).__name__}: {e})") from e
            if not isinstance(data, dict):
                raise PackageError(f"Unable to parse: {f} (not a mapping)")
            meta = DefinitionMetadata.from_dict(data)
            if len(parts) >= 4:
                name, version = parts[-3], parts[-2]
            else:
                name, version = parts[-2], meta.version
            if not version:
                logger.warning("Skipping definition without version: %s", f)
                continue
            result.append(Definition(
                repo=self,
                type=parts[0],
                name=name,
                version=version,
                metadata=meta,
                checksum=hashlib.md5(text.encode("utf-8")).hexdigest(),  # noqa: S324
            ))
        return result

    # ---- freshness ----

    @property
    def last_update(self) -> datetime:
        """Time of the last successful sync; ``datetime.min`` when never synced."""
        try:
            raw = self._last_update_file.read_text(encoding="utf-8").strip()
        except OSError:
            return datetime.min
        try:
            return datetime.fromisoformat(raw.splitlines()[0])
        except (ValueError, IndexError):
            logger.warning("Unreadable timestamp in %s", self._last_update_file)
            return datetime.min

    def set_last_update(self, when: datetime | None = None) -> None:
        self._last_update_file.write_text((when or datetime.now()).isoformat(), encoding="utf-8")

    def needs_update(self, now: datetime | None = None) -> bool:
        now = now or datetime.now()
        last = self.last_update
        if last == datetime.min:
            return True
        return (now - last).total_seconds() > self.update_period

    # ---- sync ----

    def update(self) -> SyncResult:
        """Synchronise with the remote source.

        Never raises for operational failures: they come back as FAILED with
        the message attached.
        """
        if not os.access(self.path, os.W_OK):
            return SyncResult(SyncStatus.NO_PERMISSION)
        try:
            if not self.source:
                self.set_last_update()
                return SyncResult(SyncStatus.NOT_UPDATEABLE)
            status = self._git.sync(self.working_copy, self.source, self.branch)
        except (GridwareError, OSError) as e:
            logger.error("Unable to sync repo '%s': %s", self.name, e)
            return SyncResult(SyncStatus.FAILED, None, str(e))

        if status not in (
            SyncStatus.CREATED, SyncStatus.UPDATED, SyncStatus.UPTODATE, SyncStatus.OUTOFSYNC,
        ):
            raise RuntimeError(f"Unrecognized response from synchronization: {status!r}")
        if status.fresh:
            self.set_last_update()
        if status.mutated:
            self.invalidate()
        return SyncResult(status, self.head_revision())


class RepositorySet:
    """Ordered collection of configured repositories"""

    def __init__(self, repositories: Iterable[Repository]) -> None:
        self._repos = list(repositories)

    @classmethod
    def from_paths(
        cls,
        paths: Iterable[str],
        *,
        git: GitSync | None = None,
        update_period: int = 86400,
        last_update_filename: str = ".last_update",
    ) -> RepositorySet:
        git = git or GitSync()
        return cls(
            Repository(
                p, git=git, update_period=update_period,
                last_update_filename=last_update_filename,
            )
            for p in paths
        )

    def __iter__(self) -> Iterator[Repository]:
        return iter(self._repos)

    def __len__(self) -> int:
        return len(self._repos)

    def get(self, name: str) -> Repository | None:
        for repo in self._repos:
            if repo.name == name:
                return repo
        return None

    def requiring_update(self, now: datetime | None = None) -> list[Repository]:
        return [r for r in self._repos if r.needs_update(now)]

    def invalidate_definitions(self) -> None:
        for repo in self._repos:
            repo.invalidate()

    def find_definitions(self, query: str) -> list[Definition]:
        """Case-insensitive glob over repositories in order.

        One component matches the name; two match ``repo/type``,
        ``type/name`` or ``name/version``; three match ``repo/type/name`` or
        ``type/name/version``; four match the full path.
        """
        pattern = query.lower()
        depth = len(query.split("/"))
        found: list[Definition] = []
        for repo in self._repos:
            for d in repo.definitions:
                if _matches(pattern, depth, d) and d not in found:
                    found.append(d)
        return found

    @staticmethod
    def sort_definitions(definitions: Iterable[Definition]) -> list[Definition]:
        return sorted(
            definitions,
            key=lambda d: (d.type, d.name.lower(), version_key(d.version), d.repo_name),
        )


def _matches(pattern: str, depth: int, d: Definition) -> bool:
    r, t, n, v = d.repo_name, d.type, d.name, d.version
    if depth == 1:
        candidates = [n]
    elif depth == 2:
        candidates = [f"{r}/{t}", f"{t}/{n}", f"{n}/{v}"]
    elif depth == 3:
        candidates = [f"{r}/{t}/{n}", f"{t}/{n}/{v}"]
    elif depth == 4:
        candidates = [f"{r}/{t}/{n}/{v}"]
    else:
        return False
    return any(fnmatch.fnmatchcase(c.lower(), pattern) for c in candidates)
