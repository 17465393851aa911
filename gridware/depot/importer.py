"""Binary archive import

An archive is a gzip tarball holding ``metadata.yml`` and a
``<dist>/{etc/modules,pkg,etc/depends}`` tree built against a placeholder
depot. Import fetches and unpacks it, checks the distribution, relocates
every file to the target depot, records the package and moves the files into
place, then refreshes the module tree and runs the dependency scripts.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable

from gridware.core.config import Config
from gridware.core.exceptions import (
    DepotError,
    GridwareError,
    IncompatibleEnvironmentError,
    NotFoundError,
    PackageError,
)
from gridware.core.models import (
    Definition,
    ImportOptions,
    ImportOutcome,
    ImportStatus,
    Package,
)
from gridware.core.package_store import PackageStore
from gridware.core.resolver import Resolver
from gridware.deps.utils import SCRIPT_VERSION, generate_dependency_script, script_version
from gridware.depot.depot import Depot
from gridware.depot.fetch import ArchiveFetcher, extract_archive
from gridware.depot.module_tree import ModuleTree
from gridware.depot.relocation import relocate_text, relocate_tree
from gridware.utils.shell import CommandExecutor, CommandResult, LocalExecutor
from gridware.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

STDERR_EXTRACT_LINES = 10


class ArchiveImporter:
    """Imports binary archives into depots"""

    def __init__(
        self,
        config: Config,
        *,
        store_for: Callable[[str], PackageStore],
        resolver: Callable[[], Resolver],
        fetcher: ArchiveFetcher | None = None,
        executor: CommandExecutor | None = None,
    ) -> None:
        self.config = config
        self._store_for = store_for
        self._resolver = resolver
        self.fetcher = fetcher or ArchiveFetcher(config.archives_dir, config.fetch_timeout)
        self._executor = executor or LocalExecutor()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def import_archive(
        self, defn: Definition | None, location: str, options: ImportOptions,
    ) -> list[ImportOutcome]:
        """Import the archive at ``location`` (path or http(s) URL).

        Returns one outcome per tagging (one for a compiler archive).

        Raises:
            NotFoundError: archive or depot missing
            ExternalCommandError: download or extraction failed
            PackageError: archive has no metadata
            IncompatibleEnvironmentError: archive built for another distribution
            DepotError: a dependency script failed
        """
        depot_path = Depot.hash_path_for(self.config, options.depot)
        if depot_path is None:
            raise NotFoundError(f"Could not find depot: {options.depot}")

        logger.info("Importing %s", Path(location).name)
        archive = self.fetcher.fetch(location)

        with tempfile.TemporaryDirectory(prefix="gridware-import-") as tmp:
            workdir = Path(tmp)
            extract_archive(archive, workdir)
            meta = self._load_metadata(workdir)
            distro = str(meta.get("distro", ""))
            if distro != self.config.dist:
                raise IncompatibleEnvironmentError(
                    f"Incompatible distro in archive ({distro}) for this system ({self.config.dist})"
                )

            job = _ImportJob(self, defn, meta, workdir, depot_path, options)
            if job.type == "compilers":
                outcomes = [job.import_compiler()]
            else:
                outcomes = job.import_taggings()

            self._finalize(options, job.placed_scripts)
        return outcomes

    @staticmethod
    def _load_metadata(workdir: Path) -> dict[str, Any]:
        path = workdir / "metadata.yml"
        if not path.is_file():
            raise PackageError("Archive does not contain metadata")
        meta = load_yaml(path)
        for key in ("type", "name", "version"):
            if not meta.get(key):
                raise PackageError(f"Archive metadata lacks '{key}'")
        return meta

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------

    def _finalize(self, options: ImportOptions, scripts: list[Path]) -> None:
        tree = ModuleTree(self.config.modules_dir(options.depot))
        tree.write_defaults()
        tree.write_aliases()
        for script in scripts:
            logger.info("Running dependency script %s", script.name)
            r = self._executor.execute(["/bin/bash", str(script)])
            if not r.success:
                raise DepotError(failure_message(r, options.verbose))


def failure_message(r: CommandResult, verbose: bool = False) -> str:
    """Dependency failure summary with the tail of the script's stderr."""
    lines = r.stderr.splitlines()[-STDERR_EXTRACT_LINES:]
    if not verbose:
        lines = [ln for ln in lines if not ln.startswith("+")]
    extract = "\n   > ".join(ln.strip() for ln in lines)
    return (
        "Installing dependencies failed.\n\n"
        f"   Extract of script error output:\n   > {extract}"
    )


class _ImportJob:
    """State for one archive being imported"""

    def __init__(
        self,
        importer: ArchiveImporter,
        defn: Definition | None,
        meta: dict[str, Any],
        workdir: Path,
        depot_path: str,
        options: ImportOptions,
    ) -> None:
        self.importer = importer
        self.config = importer.config
        self.defn = defn
        self.meta = meta
        self.options = options
        self.depot_path = depot_path
        self.root = workdir / self.config.dist
        self.store = importer._store_for(options.depot)
        self.placed_scripts: list[Path] = []

        self.type = str(meta["type"])
        self.name = str(meta["name"])
        self.version = str(meta["version"])
        self.variant = meta.get("variant") or None
        # type/name[_variant]/version, both inside the archive and once installed
        self.package_path = Package(self.type, self.name, self.version, variant=self.variant).base_path

    @property
    def modules_dir(self) -> Path:
        return self.config.modules_dir(self.options.depot)

    @property
    def packages_dir(self) -> Path:
        return self.config.packages_dir(self.options.depot)

    @property
    def dependencies_dir(self) -> Path:
        return self.config.dependencies_dir(self.options.depot)

    # ---- per tagging ----

    def import_taggings(self) -> list[ImportOutcome]:
        taggings = self.meta.get("taggings") or []
        if not taggings:
            raise PackageError(f"Archive for {self.package_path} declares no taggings")
        outcomes = []
        for tagging in taggings:
            outcome = self._import_tagging(tagging)
            logger.info("%s: %s", outcome.path, outcome.status.value)
            outcomes.append(outcome)
        return outcomes

    def _import_tagging(self, tagging: dict[str, Any]) -> ImportOutcome:
        tag = str(tagging.get("tag") or "")
        compiler_tag = tagging.get("compiler_tag")
        label = f"{self.package_path}/{tag}"

        if self.store.first(
            type=self.type, name=self.name, version=self.version, variant=self.variant, tag=tag,
        ):
            return ImportOutcome(label, ImportStatus.EXISTS)

        missing = self._satisfy_requirements(tagging.get("requirements") or [], compiler_tag)
        if missing:
            return ImportOutcome(
                label, ImportStatus.UNRESOLVED, missing=missing,
                message=f"Unable to satisfy runtime requirements: {', '.join(missing)}",
            )

        module_file = self.root / "etc" / "modules" / self.package_path / tag
        pkg_dir = self.root / "pkg" / self.package_path / tag
        depends = self.root / "etc" / "depends" / f"{self.package_path.replace('/', '-')}-{tag}.sh"
        try:
            self._require(module_file, pkg_dir)
            relocate_text(module_file, self.depot_path)
            relocate_tree(pkg_dir, self.depot_path)
            self._place(module_file, self.modules_dir / self.package_path / tag)
            self._place(pkg_dir, self.packages_dir / self.package_path / tag)
            self._place_depends(depends)
            self.store.first_or_create(
                type=self.type, name=self.name, version=self.version,
                compiler_tag=compiler_tag, variant=self.variant, tag=tag,
            )
        except (GridwareError, OSError, UnicodeError) as e:
            logger.error("Unable to import %s: %s", label, e)
            return ImportOutcome(label, ImportStatus.FAILED, message=str(e))
        return ImportOutcome(label, ImportStatus.IMPORTED)

    def _satisfy_requirements(self, requirements: list[str], compiler_tag: str | None) -> list[str]:
        resolver = self.importer._resolver()
        depot = self.options.depot
        unresolved = [r for r in requirements if resolver.resolve(r, compiler_tag, depot=depot) is None]
        if not unresolved:
            return []
        logger.info(
            "%s requirements for %s: %s",
            "Building" if self.options.compile else "Importing",
            self.package_path, ", ".join(unresolved),
        )
        for req in unresolved:
            try:
                resolver.install_requirement(req, self.options)
            except GridwareError as e:
                logger.error("Unable to install requirement %s: %s", req, e)
        return [r for r in unresolved if resolver.resolve(r, compiler_tag, depot=depot) is None]

    # ---- compiler ----

    def import_compiler(self) -> ImportOutcome:
        label = self.package_path
        if self.store.first(type=self.type, name=self.name, version=self.version):
            return ImportOutcome(label, ImportStatus.EXISTS)

        compiler_module = self.root / "etc" / "modules" / "compilers" / self.name / self.version
        lib_module = self.root / "etc" / "modules" / "libs" / self.name / self.version
        pkg_dir = self.root / "pkg" / "compilers" / self.name / self.version
        depends = self.root / "etc" / "depends" / f"compilers-{self.name}-{self.version}.sh"
        try:
            self._require(compiler_module, lib_module, pkg_dir)
            relocate_text(compiler_module, self.depot_path)
            relocate_text(lib_module, self.depot_path)
            relocate_tree(pkg_dir, self.depot_path)
            self._place(compiler_module, self.modules_dir / "compilers" / self.name / self.version)
            self._place(lib_module, self.modules_dir / "libs" / self.name / self.version)
            self._place(pkg_dir, self.packages_dir / "compilers" / self.name / self.version)
            self._place_depends(depends)
            self.store.first_or_create(type=self.type, name=self.name, version=self.version)
        except (GridwareError, OSError, UnicodeError) as e:
            logger.error("Unable to import %s: %s", label, e)
            return ImportOutcome(label, ImportStatus.FAILED, message=str(e))
        return ImportOutcome(label, ImportStatus.IMPORTED)

    # ---- file placement ----

    @staticmethod
    def _require(*paths: Path) -> None:
        for p in paths:
            if not p.exists():
                raise PackageError(f"Archive is missing {p.name} ({p})")

    @staticmethod
    def _place(src: Path, dest: Path) -> None:
        """Move ``src`` to exactly ``dest``, replacing a stale leftover."""
        if dest.is_dir() and not dest.is_symlink():
            shutil.rmtree(dest)
        elif dest.exists() or dest.is_symlink():
            dest.unlink()
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(src), str(dest))

    def _place_depends(self, depends: Path) -> None:
        if not depends.exists():
            return
        if self.defn is not None:
            depends.write_text(
                generate_dependency_script(
                    self.defn, "runtime",
                    dist=self.config.dist,
                    engine=self.config.engine,
                    marker_file=self.config.dependency_marker,
                    userspace=self.config.userspace,
                    log_root=self.config.log_root,
                ),
                encoding="utf-8",
            )
        elif (script_version(depends.read_text(encoding="utf-8", errors="replace")) or 0) < SCRIPT_VERSION:
            # old scripts call the distro package manager directly
            logger.warning("No definition supplied, unable to regenerate outdated %s", depends.name)
        dest = self.dependencies_dir / depends.name
        self._place(depends, dest)
        self.placed_scripts.append(dest)
