"""Subprocess execution

Every external program gridware drives (git, the distro package manager,
dependency scripts, depot event triggers) goes through a ``CommandExecutor``
so services can be handed a fake in tests instead of patching subprocess.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Protocol

from gridware.core.exceptions import ExternalCommandError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of one child process."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


class CommandExecutor(Protocol):
    """Runs a command and reports its outcome without raising on failure."""

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
        shell: bool = False,
    ) -> CommandResult:
        ...


class LocalExecutor:
    """Runs commands on the local host.

    A string command is split with shlex unless ``shell`` is set, in which
    case it is handed to ``/bin/sh -c`` as-is (needed for the distro command
    templates, which carry redirections and pipes).
    """

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
        shell: bool = False,
    ) -> CommandResult:
        if shell:
            args = ["/bin/sh", "-c", cmd if isinstance(cmd, str) else shlex.join(cmd)]
        else:
            args = shlex.split(cmd) if isinstance(cmd, str) else cmd
        logger.debug("exec: %s (cwd=%s)", args, cwd)
        r = subprocess.run(
            args, capture_output=True, text=True,
            cwd=cwd, env=env, check=False, timeout=timeout,
        )
        return CommandResult(
            returncode=r.returncode,
            stdout=r.stdout,
            stderr=r.stderr,
        )


def run_cmd(
    executor: CommandExecutor,
    cmd: str | list[str],
    *,
    cwd: str | None = None,
    label: str = "command",
) -> CommandResult:
    """Run ``cmd`` and raise ExternalCommandError on a non-zero exit."""
    r = executor.execute(cmd, cwd=cwd)
    if not r.success:
        raise ExternalCommandError(
            f"{label} failed (rc={r.returncode}): {r.stderr.strip()[:500]}"
        )
    return r
