"""Distro dependency installer

Installs the OS packages a definition needs for a phase. Runs under sudo:
a package may be installed when the caller is true root, or the sudo user,
the package or the definition's repository is whitelisted. Denied packages
are queued for an administrator and reported together at the end.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from gridware.core.exceptions import NotFoundError, PermissionDeniedError
from gridware.core.models import Definition
from gridware.deps.requests import PackageRequestQueue
from gridware.deps.utils import Invoker, distro_command, required_distro_packages
from gridware.deps.whitelist import Whitelist
from gridware.utils.shell import CommandExecutor, LocalExecutor

logger = logging.getLogger(__name__)


@dataclass
class DistroInstallReport:
    privileged: bool = True
    installed: list[str] = field(default_factory=list)
    already: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    denied: list[str] = field(default_factory=list)


class DistroDepsInstaller:
    """Checks, gates and installs distro packages"""

    def __init__(
        self,
        *,
        dist: str,
        whitelist: Whitelist,
        requests: PackageRequestQueue,
        executor: CommandExecutor | None = None,
        invoker: Invoker | None = None,
        log_root: str = "/var/log/gridware",
    ) -> None:
        self.dist = dist
        self.whitelist = whitelist
        self.requests = requests
        self._executor = executor or LocalExecutor()
        self._invoker = invoker or Invoker.from_os()
        self.log_root = log_root

    def _run(self, kind: str, pkg: str) -> bool:
        cmd = distro_command(kind, self.dist, pkg, f"{self.log_root}/depends.log")
        return self._executor.execute(cmd, shell=True).success

    def installed(self, pkg: str) -> bool:
        return self._run("check", pkg)

    def available(self, pkg: str) -> bool:
        return self._run("available", pkg)

    def permitted(self, pkg: str, defn: Definition) -> bool:
        inv = self._invoker
        return (
            inv.true_root
            or (inv.sudo_user is not None and inv.sudo_user in self.whitelist.users)
            or pkg in self.whitelist.packages
            or str(defn.repo.path) in self.whitelist.repos
        )

    def install(
        self, defn: Definition, phase: str = "runtime", non_interactive: bool = False,
    ) -> DistroInstallReport:
        """Install ``defn``'s OS packages for ``phase``.

        Raises:
            NotFoundError: a required package is not available at all
            PermissionDeniedError: one or more packages were denied
        """
        report = DistroInstallReport()
        if not self._invoker.privileged:
            logger.warning("This command must be executed with sudo.")
            report.privileged = False
            return report

        true_root = self._invoker.true_root
        for pkg in required_distro_packages(defn, phase, self.dist):
            if self.installed(pkg):
                report.already.append(pkg)
                if true_root:
                    self.whitelist.add_package(pkg)
                continue
            if not self.available(pkg):
                raise NotFoundError(f"Package {pkg} is required but not available.")
            if not self.permitted(pkg, defn):
                logger.error("Permission denied when trying to install %s", pkg)
                report.denied.append(pkg)
                self.requests.file_request(
                    self._invoker.sudo_user or "root", defn.name, pkg, str(defn.repo.path),
                )
                continue
            if self._run("install", pkg):
                report.installed.append(pkg)
                if true_root:
                    self.whitelist.add_package(pkg)
            else:
                logger.error("Installing %s failed", pkg)
                report.failed.append(pkg)

        if not non_interactive:
            logger.info(
                "%s (%s): installed=%s already=%s failed=%s denied=%s",
                defn.path, phase, report.installed, report.already, report.failed, report.denied,
            )
        if report.denied:
            raise PermissionDeniedError(
                "Some packages failed to install. A request has been filed with "
                "your system administrator."
            )
        return report
