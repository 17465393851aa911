"""Installed package records for one depot

Records live in ``<depot>/<dist>/etc/packages.yml`` keyed by package path, so
one record exists per distinct type/name/variant/version/tag combination.
"""

from __future__ import annotations

import fnmatch
import logging
from pathlib import Path
from typing import Any

from gridware.core.models import Package, Requirement, version_key
from gridware.core.registry import YamlRegistry

logger = logging.getLogger(__name__)

_FIELDS = ("type", "name", "version", "compiler_tag", "variant", "tag")


class PackageStore(YamlRegistry):
    """Queryable set of Package records"""

    section_key = "packages"

    def __init__(self, registry_file: str | Path) -> None:
        super().__init__(registry_file)

    # ---- queries ----

    def all(self) -> list[Package]:
        return [Package.from_dict(d) for d in self._list_raw()]

    def get(self, path: str) -> Package | None:
        raw = self._get_raw(path)
        return Package.from_dict(raw) if raw else None

    def first(self, **attrs: Any) -> Package | None:
        """First record whose attributes equal ``attrs``.

        A ``None`` value matches only records where that attribute is unset.
        """
        unknown = set(attrs) - set(_FIELDS)
        if unknown:
            raise TypeError(f"unknown package attribute(s): {', '.join(sorted(unknown))}")
        for pkg in self.all():
            if all(getattr(pkg, k) == v for k, v in attrs.items()):
                return pkg
        return None

    def find(self, pattern: str) -> list[Package]:
        """Glob on the package path, exact first then as a prefix."""
        pkgs = self.all()
        exact = [p for p in pkgs if fnmatch.fnmatchcase(p.path, pattern)]
        if exact:
            return exact
        return [p for p in pkgs if fnmatch.fnmatchcase(p.path, f"{pattern}*")]

    def resolve(
        self, requirement: str | Requirement, compiler_tag: str | None = None,
    ) -> Package | None:
        """Best installed match for ``requirement`` or None.

        An unspecified variant accepts any variant but prefers the plain
        package. Packages built with ``compiler_tag`` win over others, then
        the latest version.
        """
        req = Requirement.parse(requirement) if isinstance(requirement, str) else requirement
        candidates = [
            p for p in self.all()
            if p.name == req.name
            and (req.variant is None or p.variant == req.variant)
            and (req.version is None or p.version == req.version)
        ]
        if not candidates:
            return None

        def rank(p: Package) -> tuple:
            return (
                compiler_tag is not None and p.compiler_tag == compiler_tag,
                p.variant is None,
                version_key(p.version),
            )

        return max(candidates, key=rank)

    # ---- mutation ----

    def first_or_create(self, **attrs: Any) -> Package:
        """Return the matching record, creating it when absent."""
        existing = self.first(**attrs)
        if existing is not None:
            return existing
        pkg = Package(**attrs)
        self._put(pkg.path, pkg.to_dict())
        logger.info("Recorded package %s", pkg.path)
        return pkg

    def remove(self, pkg: Package) -> bool:
        return self._remove(pkg.path)
