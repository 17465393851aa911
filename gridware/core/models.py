"""Core data model

Definitions (buildable recipes read from repositories), installed Package
records, requirement strings and the result types returned by sync and
import. Everything else imports its entities from here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, NamedTuple

if TYPE_CHECKING:
    from gridware.repo.repository import Repository

# =========================================================================
# Repository sync
# =========================================================================


class SyncStatus(str, Enum):
    """Outcome of synchronising one repository"""

    CREATED = "created"
    UPDATED = "updated"
    UPTODATE = "uptodate"
    OUTOFSYNC = "outofsync"
    NOT_UPDATEABLE = "not_updateable"
    NO_PERMISSION = "no_permission"
    FAILED = "failed"

    @property
    def mutated(self) -> bool:
        return self in (SyncStatus.CREATED, SyncStatus.UPDATED)

    @property
    def fresh(self) -> bool:
        return self in (SyncStatus.CREATED, SyncStatus.UPDATED, SyncStatus.UPTODATE)


class SyncResult(NamedTuple):
    status: SyncStatus
    revision: str | None = None
    message: str = ""


# =========================================================================
# Definitions
# =========================================================================

PHASES = ("build", "runtime")


@dataclass(frozen=True)
class DefinitionMetadata:
    """Typed view over a definition's ``metadata.yml``.

    ``dependencies`` is either keyed by phase (``build``/``runtime``) with a
    family/distro mapping underneath, or is the family/distro mapping itself.
    ``requirements`` is either a flat list (runtime and build alike) or keyed
    by phase. Anything else stays reachable through ``get``.
    """

    dependencies: dict[str, Any] = field(default_factory=dict)
    variants: dict[str, Any] = field(default_factory=dict)
    requirements: list[str] | dict[str, list[str]] = field(default_factory=list)
    taggings: list[dict[str, Any]] = field(default_factory=list)
    rewritten: list[str] = field(default_factory=list)
    version: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DefinitionMetadata:
        version = data.get("version")
        return cls(
            dependencies=dict(data.get("dependencies") or {}),
            variants=dict(data.get("variants") or {}),
            requirements=data.get("requirements") or [],
            taggings=list(data.get("taggings") or []),
            rewritten=list(data.get("rewritten") or []),
            version=str(version) if version is not None else None,
            raw=dict(data),
        )

    def get(self, key: str, default: Any = None) -> Any:
        return self.raw.get(key, default)

    def requirements_for(self, phase: str = "runtime") -> list[str]:
        """Requirement strings for ``phase``; a flat list applies to both."""
        reqs = self.requirements
        if isinstance(reqs, dict):
            return [str(r) for r in reqs.get(phase) or []]
        return [str(r) for r in reqs]


@dataclass(frozen=True)
class Definition:
    """A buildable package recipe owned by a repository"""

    repo: Repository
    type: str
    name: str
    version: str
    metadata: DefinitionMetadata
    checksum: str = ""

    @property
    def repo_name(self) -> str:
        return self.repo.name

    @property
    def package_path(self) -> str:
        return f"{self.type}/{self.name}/{self.version}"

    @property
    def path(self) -> str:
        return f"{self.repo_name}/{self.package_path}"

    def __hash__(self) -> int:
        return hash((self.repo_name, self.type, self.name, self.version))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Definition):
            return NotImplemented
        return (self.repo_name, self.type, self.name, self.version) == (
            other.repo_name, other.type, other.name, other.version,
        )


# =========================================================================
# Installed packages
# =========================================================================


@dataclass
class Package:
    """Installed package record kept in a depot's ``packages.yml``"""

    type: str
    name: str
    version: str
    compiler_tag: str | None = None
    variant: str | None = None
    tag: str | None = None

    @property
    def path(self) -> str:
        name = f"{self.name}_{self.variant}" if self.variant else self.name
        parts = [self.type, name, self.version]
        if self.tag:
            parts.append(self.tag)
        return "/".join(parts)

    @property
    def base_path(self) -> str:
        """Path without the tag component"""
        name = f"{self.name}_{self.variant}" if self.variant else self.name
        return f"{self.type}/{name}/{self.version}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "name": self.name,
            "version": self.version,
            "compiler_tag": self.compiler_tag,
            "variant": self.variant,
            "tag": self.tag,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Package:
        return cls(
            type=str(data["type"]),
            name=str(data["name"]),
            version=str(data["version"]),
            compiler_tag=data.get("compiler_tag"),
            variant=data.get("variant"),
            tag=data.get("tag"),
        )


@dataclass(frozen=True)
class Requirement:
    """``name[_variant][/version]``"""

    name: str
    variant: str | None = None
    version: str | None = None

    @classmethod
    def parse(cls, text: str) -> Requirement:
        text = text.strip()
        name, _, version = text.partition("/")
        variant = None
        if "_" in name:
            name, variant = name.rsplit("_", 1)
        return cls(name=name, variant=variant or None, version=version or None)

    def __str__(self) -> str:
        s = f"{self.name}_{self.variant}" if self.variant else self.name
        return f"{s}/{self.version}" if self.version else s


def archive_name(
    type_: str, name: str, version: str, dist: str, variant: str | None = None,
) -> str:
    """File name of a binary archive in the distribution store"""
    full = f"{name}_{variant}" if variant else name
    return f"{type_}-{full}-{version}-{dist}.tar.gz"


_NUM_RE = re.compile(r"(\d+)")


def version_key(version: str | None) -> tuple:
    """Natural sort key: ``1.10`` sorts after ``1.9``."""
    if not version:
        return ()
    return tuple(
        (0, int(chunk), "") if chunk.isdigit() else (1, 0, chunk.lower())
        for chunk in _NUM_RE.split(version) if chunk
    )


# =========================================================================
# Import
# =========================================================================


class ImportStatus(str, Enum):
    EXISTS = "exists"
    UNRESOLVED = "unresolved"
    IMPORTED = "imported"
    FAILED = "failed"


@dataclass
class ImportOutcome:
    """Result of importing one tagging (or a whole compiler)"""

    path: str
    status: ImportStatus
    missing: list[str] = field(default_factory=list)
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status in (ImportStatus.IMPORTED, ImportStatus.EXISTS)


@dataclass
class ImportOptions:
    """Flags threaded through install and import"""

    depot: str = "local"
    compile: bool = False
    verbose: bool = False
    non_interactive: bool = False
    variant: str | None = None
    compiler: str | None = None
