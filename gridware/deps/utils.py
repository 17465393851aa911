"""Distribution dependency helpers

The distro family table, the list of OS packages a definition needs for a
phase, and the dependency shell scripts shipped alongside installed packages.
"""

from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping

from gridware.core.exceptions import ConfigError
from gridware.core.models import Definition

logger = logging.getLogger(__name__)

SCRIPT_VERSION = 2
SCRIPT_MARKER = "#=Alces-Gridware-Dependencies:"

AVAILABILITY_ATTEMPTS = 5
INSTALL_ATTEMPTS = 5


class DistroFamily(str, Enum):
    EL = "el"
    UBUNTU = "ubuntu"

    @classmethod
    def for_dist(cls, dist: str) -> DistroFamily:
        """``el7`` -> EL, ``ubuntu1604`` -> UBUNTU.

        Raises:
            ConfigError: unsupported distribution identifier
        """
        for family in cls:
            if dist.startswith(family.value):
                return family
        raise ConfigError(f"Unsupported distribution: {dist!r}")


# Shell templates; ``{pkg}`` is the package name, ``{log}`` the depends log
COMMANDS: dict[DistroFamily, dict[str, str]] = {
    DistroFamily.EL: {
        "check": "/bin/rpm -q {pkg} >/dev/null 2>&1",
        "available": "/usr/bin/yum -q list available {pkg} >/dev/null 2>&1",
        "install": "env -i /usr/bin/yum install -y {pkg} >>{log} 2>&1",
    },
    DistroFamily.UBUNTU: {
        "check": "/usr/bin/dpkg -s {pkg} 2>/dev/null | grep -q '^Status: install ok installed'",
        "available": "/usr/bin/apt-cache show {pkg} >/dev/null 2>&1",
        "install": "env DEBIAN_FRONTEND=noninteractive /usr/bin/apt-get install -y {pkg} >>{log} 2>&1",
    },
}


@dataclass(frozen=True)
class Invoker:
    """Identity of the calling process"""

    uid: int
    euid: int
    sudo_user: str | None = None

    @classmethod
    def from_os(cls, env: Mapping[str, str] | None = None) -> Invoker:
        env = os.environ if env is None else env
        return cls(uid=os.getuid(), euid=os.geteuid(), sudo_user=env.get("SUDO_USER"))

    @property
    def privileged(self) -> bool:
        return self.euid == 0

    @property
    def true_root(self) -> bool:
        """Root without sudo."""
        return self.uid == 0 and self.sudo_user is None


def distro_command(kind: str, dist: str, pkg: str, log: str = "/dev/null") -> str:
    """Render the ``check``/``available``/``install`` command for ``pkg``."""
    template = COMMANDS[DistroFamily.for_dist(dist)][kind]
    return template.format(pkg=shlex.quote(pkg), log=shlex.quote(log))


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def required_distro_packages(defn: Definition, phase: str, dist: str) -> list[str]:
    """OS packages ``defn`` needs for ``phase`` on ``dist``.

    ``build`` also pulls in ``runtime`` when the dependencies are phase keyed.
    Each mapping contributes its family entry then its literal dist entry.
    """
    deps = defn.metadata.dependencies
    if not deps:
        return []
    family = DistroFamily.for_dist(dist).value

    if phase in deps:
        mappings = [deps[phase]]
        if phase == "build" and "runtime" in deps:
            mappings.append(deps["runtime"])
    else:
        mappings = [deps]

    return dedupe(
        pkg
        for mapping in mappings
        for pkg in _as_list((mapping or {}).get(family)) + _as_list((mapping or {}).get(dist))
    )


def strip_variant(path: str) -> str:
    """``apps/foo_mpi/1.0`` -> ``apps/foo/1.0``"""
    parts = path.split("/")
    if len(parts) >= 2 and "_" in parts[-2]:
        parts[-2] = parts[-2].rsplit("_", 1)[0]
    return "/".join(parts)


def script_version(text: str) -> int | None:
    """Dependency script format version from its marker line."""
    for line in text.splitlines()[:2]:
        if line.startswith(SCRIPT_MARKER):
            try:
                return int(line[len(SCRIPT_MARKER):].strip())
            except ValueError:
                return None
    return None


def generate_dependency_script(
    defn: Definition,
    phase: str,
    *,
    dist: str,
    engine: str,
    marker_file: str,
    userspace: str = "",
    log_root: str = "/var/log/gridware",
) -> str:
    """Bash script installing ``defn``'s OS packages for ``phase``.

    A runtime new enough to understand this script version handles the
    install itself via ``distro-deps``; older runtimes fall back to the
    embedded loop.
    """
    packages = required_distro_packages(defn, phase, dist)
    log = f"{log_root}/depends.log"

    def cmd(kind: str) -> str:
        template = COMMANDS[DistroFamily.for_dist(dist)][kind]
        return template.format(pkg='"$pkg"', log=shlex.quote(log))

    lines = [
        "#!/bin/bash",
        f"{SCRIPT_MARKER}{SCRIPT_VERSION}",
        f"cw_GRIDWARE_userspace={shlex.quote(userspace)}",
        "export cw_GRIDWARE_userspace",
        f"marker={shlex.quote(marker_file)}",
        'if [ -r "$marker" ] && [ "$(cat "$marker" 2>/dev/null)" -ge '
        f"{SCRIPT_VERSION} ] 2>/dev/null; then",
        f"  exec sudo -E {engine} distro-deps {shlex.quote(defn.path)} "
        f"--phase {phase} --non-interactive",
        "fi",
        "",
        f"packages=({' '.join(shlex.quote(p) for p in packages)})",
        'for pkg in "${packages[@]}"; do',
        f"  if {cmd('check')}; then",
        "    continue",
        "  fi",
        "  n=0",
        f"  until {cmd('available')}; do",
        "    n=$((n+1))",
        f"    if [ $n -ge {AVAILABILITY_ATTEMPTS} ]; then",
        '      echo "Package $pkg is required but was not found." >&2',
        "      exit 1",
        "    fi",
        "    sleep 1",
        "  done",
        "  n=0",
        f"  until {cmd('install')}; do",
        "    n=$((n+1))",
        f"    if [ $n -ge {INSTALL_ATTEMPTS} ]; then",
        '      echo "Unable to install $pkg." >&2',
        "      exit 1",
        "    fi",
        "    sleep 1",
        "  done",
        "done",
        "",
    ]
    logger.debug("Generated %s dependency script for %s", phase, defn.path)
    return "\n".join(lines)


def dedupe(items: Iterable[str]) -> list[str]:
    out: list[str] = []
    for item in items:
        if item not in out:
            out.append(item)
    return out
