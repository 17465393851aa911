"""Requirement resolution

Turns requirement strings into installed packages, installing whatever is
missing: binary archives through the importer, source builds through an
injected build engine.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Callable, Protocol

from gridware.core.config import Config
from gridware.core.exceptions import ExternalCommandError, NotFoundError
from gridware.core.models import (
    Definition,
    ImportOptions,
    ImportOutcome,
    Package,
    Requirement,
    archive_name,
    version_key,
)

if TYPE_CHECKING:
    from gridware.core.package_store import PackageStore
    from gridware.depot.importer import ArchiveImporter
    from gridware.repo.repository import RepositorySet

logger = logging.getLogger(__name__)


class BuildEngine(Protocol):
    """Compiles a definition from source into a depot"""

    def build(self, defn: Definition, options: ImportOptions) -> None:
        ...


class DefinitionInstaller:
    """Installs a resolved definition, by binary import or source build"""

    def __init__(
        self,
        config: Config,
        importer: Callable[[], ArchiveImporter],
        build_engine: BuildEngine | None = None,
    ) -> None:
        self.config = config
        self._importer = importer
        self.build_engine = build_engine

    def archive_url(self, defn: Definition, variant: str | None = None) -> str:
        fname = archive_name(defn.type, defn.name, defn.version, self.config.dist, variant)
        return f"{self.config.binary_url.rstrip('/')}/{self.config.dist}/{fname}"

    def install(self, defn: Definition, options: ImportOptions) -> list[ImportOutcome]:
        """Install ``defn`` into ``options.depot``.

        Raises:
            ExternalCommandError: a source build was requested without a build engine
        """
        if options.compile:
            if self.build_engine is None:
                raise ExternalCommandError(
                    f"No build engine configured; cannot compile {defn.path}"
                )
            logger.info("Building %s from source", defn.path)
            self.build_engine.build(defn, options)
            return []
        variant = options.variant if options.variant != "default" else None
        url = self.archive_url(defn, variant)
        logger.info("Installing %s from binary archive %s", defn.path, url)
        return self._importer().import_archive(defn, url, options)


class Resolver:
    """Requirement lookup against repositories and installed packages"""

    def __init__(
        self,
        repos: RepositorySet,
        store_for: Callable[[str], PackageStore],
        installer: DefinitionInstaller,
    ) -> None:
        self.repos = repos
        self._store_for = store_for
        self.installer = installer

    def resolve(
        self, requirement: str | Requirement, compiler_tag: str | None = None,
        *, depot: str,
    ) -> Package | None:
        return self._store_for(depot).resolve(requirement, compiler_tag)

    def find_definition(self, requirement: str | Requirement) -> Definition:
        """Latest definition named by ``requirement`` (variant ignored).

        Raises:
            NotFoundError: nothing matches
        """
        req = Requirement.parse(requirement) if isinstance(requirement, str) else requirement
        query = f"{req.name}/{req.version}" if req.version else req.name
        candidates = [
            d for d in self.repos.find_definitions(query)
            if d.name.lower() == req.name.lower()
            and (req.version is None or d.version == req.version)
        ]
        if not candidates:
            raise NotFoundError(f"No definition found for requirement: {requirement}")
        return max(candidates, key=lambda d: version_key(d.version))

    def install_requirement(
        self, requirement: str | Requirement, options: ImportOptions,
    ) -> list[ImportOutcome]:
        """Install the definition satisfying ``requirement`` into ``options.depot``."""
        req = Requirement.parse(requirement) if isinstance(requirement, str) else requirement
        defn = self.find_definition(Requirement(req.name, version=req.version))
        if req.variant:
            variant = req.variant
        elif defn.metadata.variants:
            variant = "default"
        else:
            variant = None
        opts = replace(options, variant=variant)
        logger.info(
            "%s requirement %s", "Building" if opts.compile else "Importing", req,
        )
        return self.installer.install(defn, opts)

    def requirements_tree(
        self,
        defn: Definition,
        variant: str | None = None,
        *,
        depot: str,
        compiler_tag: str | None = None,
    ) -> list[Package]:
        """Installed runtime closure of ``defn``, dependencies first."""
        result: list[Package] = []
        self._walk(defn, variant, depot, compiler_tag, set(), result)
        return result

    def _walk(
        self,
        defn: Definition,
        variant: str | None,
        depot: str,
        compiler_tag: str | None,
        visited: set[str],
        result: list[Package],
    ) -> None:
        if defn.path in visited:
            return
        visited.add(defn.path)
        store = self._store_for(depot)

        for req_text in defn.metadata.requirements_for("runtime"):
            pkg = store.resolve(req_text, compiler_tag)
            if pkg is None:
                logger.warning("Requirement %s of %s is not installed", req_text, defn.path)
                continue
            try:
                dep_defn = self.find_definition(Requirement(pkg.name, version=pkg.version))
            except NotFoundError:
                logger.warning("No definition for installed package %s", pkg.path)
                if pkg not in result:
                    result.append(pkg)
                continue
            self._walk(dep_defn, pkg.variant, depot, compiler_tag, visited, result)

        own = store.resolve(
            Requirement(defn.name, variant=variant if variant != "default" else None,
                        version=defn.version),
            compiler_tag,
        )
        if own is not None and own not in result:
            result.append(own)
