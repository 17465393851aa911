"""Queued distro package install requests

When a user without permission needs an OS package, a request file is
written to the queue directory holding one space separated record:
``user gridware_package distro_package repo_path``. An administrator later
works through the queue as root.
"""

from __future__ import annotations

import csv
import io
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable

from gridware.core.exceptions import NotFoundError, PermissionDeniedError
from gridware.deps.utils import Invoker, distro_command
from gridware.deps.whitelist import Whitelist
from gridware.utils.shell import CommandExecutor, LocalExecutor
from gridware.utils.yaml_io import atomic_write, load_yaml

logger = logging.getLogger(__name__)

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_.+-]")


class Decision(str, Enum):
    INSTALL = "install"
    INSTALL_ALL = "install_all"
    SKIP = "skip"
    DELETE = "delete"


@dataclass
class PackageRequest:
    id: str
    user: str
    package: str
    distro_package: str
    repo_path: str
    filed: datetime | None = None

    def row(self) -> list[str]:
        return [self.user, self.package, self.distro_package, self.repo_path]


@dataclass
class ProcessReport:
    installed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)


class PackageRequestQueue:
    """Directory of pending requests"""

    def __init__(
        self,
        requests_dir: str | Path,
        *,
        dist: str,
        whitelist: Whitelist,
        executor: CommandExecutor | None = None,
        invoker: Invoker | None = None,
        log_root: str = "/var/log/gridware",
        notify_command: str | None = None,
    ) -> None:
        self.requests_dir = Path(requests_dir)
        self.dist = dist
        self.whitelist = whitelist
        self._executor = executor or LocalExecutor()
        self._invoker = invoker or Invoker.from_os()
        self.log_root = log_root
        self.notify_command = notify_command

    # ---- filing ----

    def file_request(
        self, user: str, package: str, distro_package: str, repo_path: str,
    ) -> PackageRequest:
        """Queue a request; refiling the same user/package pair overwrites it."""
        rid = f"{_UNSAFE_RE.sub('_', user)}.{_UNSAFE_RE.sub('_', distro_package)}"
        req = PackageRequest(rid, user, package, distro_package, repo_path)
        buf = io.StringIO()
        csv.writer(buf, delimiter=" ", lineterminator="\n").writerow(req.row())
        atomic_write(self.requests_dir / rid, buf.getvalue())
        logger.info("Filed install request %s for %s", rid, user)
        return req

    # ---- reading ----

    def list(self) -> list[PackageRequest]:
        if not self.requests_dir.is_dir():
            return []
        return [
            self._read(p)
            for p in sorted(self.requests_dir.iterdir())
            if not p.name.startswith(".") and p.is_file()
        ]

    def get(self, rid: str) -> PackageRequest:
        path = self.requests_dir / rid
        if not path.is_file():
            raise NotFoundError(f"No such installation request: {rid}")
        return self._read(path)

    @staticmethod
    def _read(path: Path) -> PackageRequest:
        with open(path, encoding="utf-8", newline="") as f:
            row = next(csv.reader(f, delimiter=" "), [])
        row = (row + [""] * 4)[:4]
        return PackageRequest(
            path.name, *row, filed=datetime.fromtimestamp(path.stat().st_mtime),
        )

    def delete(self, rid: str) -> bool:
        path = self.requests_dir / rid
        if not path.is_file():
            return False
        path.unlink()
        logger.info("Deleted install request %s", rid)
        return True

    # ---- processing ----

    def process(self, decide: Callable[[PackageRequest], Decision]) -> ProcessReport:
        """Work through every pending request.

        ``decide`` is consulted per request until it answers INSTALL_ALL,
        after which the remaining requests are installed without asking.

        Raises:
            PermissionDeniedError: not running as root
        """
        if not self._invoker.privileged:
            raise PermissionDeniedError("This command must be executed as root.")

        report = ProcessReport()
        install_all = False
        for req in self.list():
            decision = Decision.INSTALL if install_all else decide(req)
            if decision == Decision.INSTALL_ALL:
                install_all = True
                decision = Decision.INSTALL

            if decision == Decision.DELETE:
                self.delete(req.id)
                report.deleted.append(req.id)
            elif decision == Decision.SKIP:
                report.skipped.append(req.id)
            elif self._install(req.distro_package):
                self.delete(req.id)
                self.whitelist.add_package(req.distro_package)
                self._notify_user(req)
                report.installed.append(req.id)
            else:
                report.failed.append(req.id)
        return report

    def _install(self, pkg: str) -> bool:
        cmd = distro_command("install", self.dist, pkg, f"{self.log_root}/depends.log")
        r = self._executor.execute(cmd, shell=True)
        if not r.success:
            logger.error("Installing %s failed (rc=%d)", pkg, r.returncode)
        return r.success

    def _notify_user(self, req: PackageRequest) -> None:
        if not self.notify_command:
            return
        cmd = [self.notify_command, *req.row(), user_email(req.user)]
        r = self._executor.execute(cmd)
        if not r.success:
            logger.warning("Unable to notify %s about %s: %s", req.user, req.distro_package, r.stderr.strip())


def user_email(username: str) -> str:
    """``user_email`` from the user's gridware config, or empty."""
    home = os.path.expanduser(f"~{username}")
    if home.startswith("~"):
        return ""
    data = load_yaml(Path(home) / "gridware" / "etc" / "gridware.yml")
    return str(data.get("user_email") or "")
