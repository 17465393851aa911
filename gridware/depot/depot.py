"""Depot lifecycle

A depot is a named symlink ``<depotroot>/<name>`` onto physical storage
``<depotroot>/depots/<id>``. It is enabled when its module path is listed in
the modulespath file the module system reads.
"""

from __future__ import annotations

import logging
import os
import secrets
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Mapping

from gridware.core.config import Config
from gridware.core.exceptions import (
    AlreadyExistsError,
    AmbiguousError,
    DepotError,
    NotFoundError,
    ValidationError,
)
from gridware.core.models import archive_name
from gridware.deps.utils import strip_variant
from gridware.utils.shell import CommandExecutor, LocalExecutor
from gridware.utils.yaml_io import save_yaml

if TYPE_CHECKING:
    from gridware.core.package_store import PackageStore
    from gridware.core.resolver import Resolver
    from gridware.repo.repository import RepositorySet

logger = logging.getLogger(__name__)

RESERVED_NAMES = ("depots", "etc")
USERSPACE_LINK = ".gridware-userspace"
SYSTEM_COMPILER = "compilers/gcc/system"

REGION_MAP = {
    "eu-west-1": "https://s3-eu-west-1.amazonaws.com/alces-gridware-eu-west-1/dist",
    "eu-west-2": "https://s3-eu-west-1.amazonaws.com/alces-gridware-eu-west-1/dist",
    "eu-central-1": "https://s3-eu-central-1.amazonaws.com/alces-gridware-eu-central-1/dist",
    "us-east-1": "https://s3.amazonaws.com/alces-gridware-us-east-1/dist",
    "us-east-2": "https://s3.amazonaws.com/alces-gridware-us-east-1/dist",
    "us-west-1": "https://s3.amazonaws.com/alces-gridware-us-east-1/dist",
    "us-west-2": "https://s3.amazonaws.com/alces-gridware-us-east-1/dist",
    "ap-northeast-1": "https://s3-ap-southeast-2.amazonaws.com/alces-gridware-ap-southeast-2/dist",
    "ap-northeast-2": "https://s3-ap-southeast-2.amazonaws.com/alces-gridware-ap-southeast-2/dist",
    "ap-southeast-1": "https://s3-ap-southeast-2.amazonaws.com/alces-gridware-ap-southeast-2/dist",
    "ap-southeast-2": "https://s3-ap-southeast-2.amazonaws.com/alces-gridware-ap-southeast-2/dist",
    "ap-south-1": "https://s3-ap-southeast-2.amazonaws.com/alces-gridware-ap-southeast-2/dist",
    "sa-east-1": "https://s3.amazonaws.com/alces-gridware-us-east-1/dist",
    "ca-central-1": "https://s3.amazonaws.com/alces-gridware-us-east-1/dist",
}


def _read_lines(path: Path) -> list[str]:
    return path.read_text(encoding="utf-8").splitlines() if path.exists() else []


class Depot:
    """One named depot"""

    def __init__(
        self,
        name: str,
        config: Config,
        *,
        executor: CommandExecutor | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.name = name
        self.config = config
        self._executor = executor or LocalExecutor()
        self._environ = os.environ if environ is None else environ

    def __repr__(self) -> str:
        return f"Depot({self.name!r})"

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @staticmethod
    def hash_path_for(config: Config, name: str, global_: bool = True) -> str | None:
        """Physical storage path of depot ``name``.

        With ``global_`` a userspace marker link wins over the depot link, so
        the path is the one under the global depot root even for a userspace
        depot.
        """
        depot_path = config.depot_path(name)
        userspace_link = depot_path / USERSPACE_LINK
        if global_ and userspace_link.is_symlink():
            return os.readlink(userspace_link)
        if depot_path.is_symlink():
            return os.readlink(depot_path)
        return None

    @classmethod
    def find(cls, config: Config, name: str, **kwargs) -> Depot | None:
        if name in RESERVED_NAMES:
            return None
        if config.depot_path(name).is_symlink():
            return cls(name, config, **kwargs)
        return None

    @staticmethod
    def names(config: Config) -> list[str]:
        root = Path(config.depotroot)
        if not root.is_dir():
            return []
        return sorted(p.name for p in root.iterdir() if p.is_symlink() and p.name not in RESERVED_NAMES)

    @classmethod
    def create(cls, config: Config, name: str, **kwargs) -> Depot:
        """Lay out fresh storage and link ``name`` to it.

        Raises:
            AlreadyExistsError: the name is taken
            ValidationError: reserved name
        """
        if name in RESERVED_NAMES or "/" in name:
            raise ValidationError(f"Invalid depot name: {name}")
        link = config.depot_path(name)
        if link.exists() or link.is_symlink():
            raise AlreadyExistsError(f"Depot already exists: {name}")
        storage = Path(config.depotroot) / "depots" / secrets.token_hex(4)
        for sub in (("etc", "modules"), ("etc", "depends"), ("pkg",)):
            storage.joinpath(config.dist, *sub).mkdir(parents=True, exist_ok=True)
        link.symlink_to(storage)
        logger.info("Created depot %s at %s", name, storage)
        return cls(name, config, **kwargs)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        return self.config.depot_path(self.name)

    @property
    def hash_path(self) -> str | None:
        return Depot.hash_path_for(self.config, self.name)

    @property
    def target(self) -> str:
        """Modulespath entry; ``$cw_DIST`` is expanded by the module system."""
        return f"{self.path}/$cw_DIST/etc/modules"

    def _modulespath_file(self) -> Path:
        if self.config.is_userspace:
            return self.config.user_modulespath_file(current_user=True)
        return self.config.global_modulespath_file()

    # ------------------------------------------------------------------
    # Enable / disable
    # ------------------------------------------------------------------

    def enabled(self) -> bool:
        if self.target in _read_lines(self.config.global_modulespath_file()):
            return True
        return self.config.is_userspace and self.target in _read_lines(
            self.config.user_modulespath_file()
        )

    def enable(self) -> bool:
        """Add the depot to the modulespath; False when already enabled."""
        changed = False
        if self.enabled():
            logger.warning("Depot already enabled: %s", self.name)
        else:
            f = self._modulespath_file()
            paths = _read_lines(f)
            if self.target not in paths:
                idx = next((i for i, p in enumerate(paths) if not p.startswith("#")), 0)
                paths.insert(idx, self.target)
                f.parent.mkdir(parents=True, exist_ok=True)
                f.write_text("\n".join(paths) + "\n", encoding="utf-8")
            changed = True
            logger.info("Enabled depot %s", self.name)
        self.notify_depot("enabled")
        return changed

    def loaded_modules(self) -> list[str]:
        """Loaded module files (``_LMFILES_``) provided by this depot."""
        prefix = str(self.path)
        return [
            m for m in (self._environ.get("_LMFILES_") or "").split(":")
            if m and (m == prefix or m.startswith(prefix + "/"))
        ]

    def disable(self) -> bool:
        """Remove the depot from the modulespath.

        False when modules from this depot are loaded; they are listed in the
        log and must be unloaded first.
        """
        if not self.enabled():
            logger.warning("Depot already disabled: %s", self.name)
            self.notify_depot("disabled")
            return True
        loaded = self.loaded_modules()
        if loaded:
            logger.error(
                "The following modules have been loaded from depot %s and must be "
                "unloaded to continue: %s", self.name, ", ".join(loaded),
            )
            return False
        f = self._modulespath_file()
        paths = [p for p in _read_lines(f) if p != self.target]
        f.write_text("\n".join(paths) + ("\n" if paths else ""), encoding="utf-8")
        logger.info("Disabled depot %s", self.name)
        self.notify_depot("disabled")
        return True

    # ------------------------------------------------------------------
    # Purge
    # ------------------------------------------------------------------

    def purge_targets(self) -> list[str]:
        found = [
            Depot.hash_path_for(self.config, self.name, False),
            str(self.path),
            Depot.hash_path_for(self.config, self.name),
        ]
        result: list[str] = []
        for p in found:
            if p and p not in result:
                result.append(p)
        return result

    def purge(
        self,
        *,
        force: bool = False,
        non_interactive: bool = False,
        confirm: Callable[[str], bool] | None = None,
    ) -> bool:
        """Remove the depot's storage and links.

        Raises:
            DepotError: non-interactive without ``force``, or disable refused
        """
        files = self.purge_targets()
        msg = "Purge operation will remove the following files/directories:\n  " + "\n  ".join(files)
        if non_interactive:
            if not force:
                raise DepotError("Refusing to purge non-interactively; supply the --yes option to override")
        elif not force and (confirm is None or not confirm(msg)):
            return False

        if self.enabled() and not self.disable():
            raise DepotError(f"Unable to disable depot {self.name} before purging")
        for f in files:
            p = Path(f)
            if p.is_symlink() or p.is_file():
                p.unlink()
            elif p.is_dir():
                shutil.rmtree(p)
        logger.info("Purged depot %s", self.name)
        return True

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export(
        self,
        output: str | None,
        *,
        store: PackageStore,
        repos: RepositorySet,
        resolver: Resolver,
        packages: bool = False,
    ) -> Path:
        """Write a depot manifest (and optionally its archives) to ``output``.

        Args:
            output: target directory, ``/tmp/<name>`` when None; must not exist
            store: the depot's installed package records
            repos: repositories to look definitions up in
            resolver: used to order the requirement tree of each package
            packages: also copy the cached binary archives into ``dist/``

        Returns:
            Path: the output directory holding ``<name>.yml``

        Raises:
            ValidationError: output directory exists
            AmbiguousError / NotFoundError: an installed package has no unique definition
        """
        output_dir = Path(output or f"/tmp/{self.name}")  # noqa: S108
        if output_dir.exists():
            raise ValidationError(f"Output directory already exists: {output_dir}")

        content: list[str] = []
        for pkg in store.all():
            if pkg.base_path == SYSTEM_COMPILER:
                continue
            query = strip_variant(pkg.base_path)
            defns = repos.find_definitions(query)
            if len(defns) > 1:
                raise AmbiguousError(
                    f"Ambiguous package definition found: {', '.join(d.path for d in defns)}",
                    candidates=[d.path for d in defns],
                )
            if not defns:
                raise NotFoundError(f"No package definition found: {query}")
            for dep in resolver.requirements_tree(defns[0], pkg.variant, depot=self.name):
                if dep.base_path not in content:
                    content.append(dep.base_path)

        manifest: dict = {
            "title": self.name,
            "summary": f"Summary of {self.name}",
            "description": f"Description of {self.name}",
            "region_map": dict(REGION_MAP),
            "content": content,
        }
        output_dir.mkdir(parents=True)
        if packages:
            manifest["missing"] = self._copy_archives(content, store, output_dir / "dist")
        save_yaml(output_dir / f"{self.name}.yml", manifest)
        logger.info("Export of depot '%s' complete: %s", self.name, output_dir)
        return output_dir

    def _copy_archives(self, content: list[str], store: PackageStore, dest: Path) -> list[str]:
        dest.mkdir(parents=True, exist_ok=True)
        cache = Path(self.config.archives_dir) / "dist"
        missing: list[str] = []
        for base in content:
            pkg = next((p for p in store.all() if p.base_path == base), None)
            if pkg is None:
                missing.append(base)
                continue
            fname = archive_name(pkg.type, pkg.name, pkg.version, self.config.dist, pkg.variant)
            src = cache / fname
            if src.is_file():
                shutil.copy2(src, dest / fname)
            else:
                logger.warning("No cached archive for %s (%s)", base, fname)
                missing.append(base)
        return missing

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def notify_depot(self, state: str) -> None:
        """Tell the cluster a depot changed state.

        Raises:
            DepotError: the event trigger failed
        """
        if self.config.is_userspace or not self.config.notify:
            return
        storage = self.hash_path_for(self.config, self.name, False)
        if storage is None:
            return
        depot_id = os.path.basename(storage)
        trigger = os.path.join(self.config.cw_root, "libexec", "share", "trigger-depot-event")
        install_path = os.path.join(self.config.depotroot, "depots", depot_id)
        for args in (["nfs-export", install_path], ["gridware-depots", f"{depot_id}:{self.name}:{state}"]):
            r = self._executor.execute([trigger, *args])
            if not r.success:
                raise DepotError(f"Unable to trigger depot event: {r.stderr.strip()}")
