"""Service container

Every service is built lazily from one Config and shared within the
container, so the repository set (and its definition cache), the whitelist
and the per-depot package stores are loaded at most once per process.

Dependency graph (-> depends on):
  resolver  -> repos, stores, installer
  installer -> importer (late bound)
  importer  -> stores, resolver (late bound), fetcher
  distro    -> whitelist, requests

Usage:
    container = ServiceContainer(config=Config.load())
    container.resolver.find_definition("gcc")

    # process-wide instance for the CLI
    from gridware.services.container import get_container
    get_container().depot("local")
"""

from __future__ import annotations

import logging
import os
import threading
from typing import TYPE_CHECKING

from gridware.utils.shell import CommandExecutor, LocalExecutor

if TYPE_CHECKING:
    from gridware.core.config import Config
    from gridware.core.package_store import PackageStore
    from gridware.core.resolver import BuildEngine, DefinitionInstaller, Resolver
    from gridware.depot.depot import Depot
    from gridware.depot.importer import ArchiveImporter
    from gridware.deps.distro import DistroDepsInstaller
    from gridware.deps.requests import PackageRequestQueue
    from gridware.deps.utils import Invoker
    from gridware.deps.whitelist import Whitelist
    from gridware.repo.git import GitSync
    from gridware.repo.repository import RepositorySet

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Lazily built services sharing one configuration"""

    def __init__(
        self,
        config: Config | None = None,
        *,
        executor: CommandExecutor | None = None,
        invoker: Invoker | None = None,
        build_engine: BuildEngine | None = None,
    ) -> None:
        self._instances: dict[str, object] = {}
        self._stores: dict[str, PackageStore] = {}
        if config is None:
            from gridware.core.config import get_config
            config = get_config()
        self._config = config
        self._executor = executor or LocalExecutor()
        self._invoker = invoker
        self._build_engine = build_engine

    @property
    def config(self) -> Config:
        return self._config

    @property
    def executor(self) -> CommandExecutor:
        return self._executor

    # ---- repositories ----

    @property
    def git(self) -> GitSync:
        if "git" not in self._instances:
            from gridware.repo.git import GitSync
            self._instances["git"] = GitSync(self._executor)
        return self._instances["git"]  # type: ignore[return-value]

    @property
    def repos(self) -> RepositorySet:
        if "repos" not in self._instances:
            from gridware.core.config import load_repo_paths
            from gridware.repo.repository import RepositorySet
            self._instances["repos"] = RepositorySet.from_paths(
                load_repo_paths(self._config),
                git=self.git,
                update_period=self._config.update_period,
                last_update_filename=self._config.last_update_filename,
            )
        return self._instances["repos"]  # type: ignore[return-value]

    def invalidate_definitions(self) -> None:
        if "repos" in self._instances:
            self.repos.invalidate_definitions()

    # ---- depots ----

    def store(self, depot: str) -> PackageStore:
        """Package records of ``depot``, one instance per depot."""
        if depot not in self._stores:
            from gridware.core.package_store import PackageStore
            self._stores[depot] = PackageStore(self._config.packages_file(depot))
        return self._stores[depot]

    def depot(self, name: str) -> Depot | None:
        from gridware.depot.depot import Depot
        return Depot.find(self._config, name, executor=self._executor)

    # ---- install pipeline ----

    @property
    def installer(self) -> DefinitionInstaller:
        if "installer" not in self._instances:
            from gridware.core.resolver import DefinitionInstaller
            self._instances["installer"] = DefinitionInstaller(
                self._config,
                importer=lambda: self.importer,
                build_engine=self._build_engine,
            )
        return self._instances["installer"]  # type: ignore[return-value]

    @property
    def resolver(self) -> Resolver:
        if "resolver" not in self._instances:
            from gridware.core.resolver import Resolver
            self._instances["resolver"] = Resolver(self.repos, self.store, self.installer)
        return self._instances["resolver"]  # type: ignore[return-value]

    @property
    def importer(self) -> ArchiveImporter:
        if "importer" not in self._instances:
            from gridware.depot.importer import ArchiveImporter
            self._instances["importer"] = ArchiveImporter(
                self._config,
                store_for=self.store,
                resolver=lambda: self.resolver,
                executor=self._executor,
            )
        return self._instances["importer"]  # type: ignore[return-value]

    # ---- distro dependencies ----

    @property
    def whitelist(self) -> Whitelist:
        if "whitelist" not in self._instances:
            from gridware.deps.whitelist import Whitelist
            self._instances["whitelist"] = Whitelist(self._config.whitelist_path)
        return self._instances["whitelist"]  # type: ignore[return-value]

    def _get_invoker(self) -> Invoker:
        if self._invoker is None:
            from gridware.deps.utils import Invoker
            self._invoker = Invoker.from_os()
        return self._invoker

    @property
    def requests(self) -> PackageRequestQueue:
        if "requests" not in self._instances:
            from gridware.deps.requests import PackageRequestQueue
            self._instances["requests"] = PackageRequestQueue(
                self._config.requests_path,
                dist=self._config.dist,
                whitelist=self.whitelist,
                executor=self._executor,
                invoker=self._get_invoker(),
                log_root=self._config.log_root,
                notify_command=os.path.join(
                    self._config.cw_root, "libexec", "share", "package-install-notify",
                ),
            )
        return self._instances["requests"]  # type: ignore[return-value]

    @property
    def distro(self) -> DistroDepsInstaller:
        if "distro" not in self._instances:
            from gridware.deps.distro import DistroDepsInstaller
            self._instances["distro"] = DistroDepsInstaller(
                dist=self._config.dist,
                whitelist=self.whitelist,
                requests=self.requests,
                executor=self._executor,
                invoker=self._get_invoker(),
                log_root=self._config.log_root,
            )
        return self._instances["distro"]  # type: ignore[return-value]


# ---- process-wide instance ----

_global: ServiceContainer | None = None
_global_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """Process-wide ServiceContainer"""
    global _global  # noqa: PLW0603
    if _global is not None:
        return _global
    with _global_lock:
        if _global is None:
            _global = ServiceContainer()
        return _global


def reset_container() -> None:
    """Drop the process-wide container (tests)"""
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = None
