"""Git working-copy synchronisation

Keeps a repository's working copy at the tip of ``upstream/<branch>`` by
fast-forward only: a fresh copy is created, a strictly older copy is reset
forward, and a diverged copy is reported and left alone.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from gridware.core.exceptions import (
    ExternalCommandError,
    PermissionDeniedError,
    ValidationError,
)
from gridware.core.models import SyncStatus
from gridware.utils.shell import CommandExecutor, CommandResult, LocalExecutor, run_cmd

logger = logging.getLogger(__name__)

_SAFE_REF_RE = re.compile(r"^[a-zA-Z0-9_./@\-]+$")
REMOTE = "upstream"


def path_writable(path: Path) -> bool:
    """Writable, or absent with a writable parent."""
    if path.exists():
        return os.access(path, os.W_OK)
    return os.access(path.parent, os.W_OK)


class GitSync:
    """Drives the git CLI through a CommandExecutor"""

    def __init__(self, executor: CommandExecutor | None = None) -> None:
        self._executor = executor or LocalExecutor()

    def _git(self, path: Path, *args: str, check: bool = True) -> CommandResult:
        cmd = ["git", *args]
        if check:
            return run_cmd(self._executor, cmd, cwd=str(path), label=f"git {args[0]} in {path}")
        return self._executor.execute(cmd, cwd=str(path))

    def head_revision(self, path: str | Path) -> str:
        """Full object id of HEAD."""
        return self._git(Path(path), "rev-parse", "HEAD").stdout.strip()

    def sync(self, path: str | Path, url: str, branch: str = "master") -> SyncStatus:
        """Bring ``path`` up to date with ``url``'s ``branch``.

        Returns CREATED, UPDATED, UPTODATE or OUTOFSYNC.

        Raises:
            PermissionDeniedError: path cannot be written
            ExternalCommandError: any git invocation failed
        """
        if not _SAFE_REF_RE.match(branch):
            raise ValidationError(f"Illegal branch name: {branch}")
        path = Path(path)
        if not path_writable(path):
            raise PermissionDeniedError(f"Permission denied for repository: '{path.parent.name}'")

        if not (path / ".git").is_dir():
            path.mkdir(parents=True, exist_ok=True)
            self._git(path, "init", "-q")
            logger.info("Initialised working copy at %s", path)

        self._ensure_remote(path, url)
        self._git(path, "fetch", "-q", REMOTE)
        upstream = self._git(
            path, "rev-parse", "--verify", f"refs/remotes/{REMOTE}/{branch}^{{commit}}",
        ).stdout.strip()

        head_r = self._git(path, "rev-parse", "--verify", "-q", "HEAD^{commit}", check=False)
        if not head_r.success:
            self._git(path, "reset", "-q", "--hard", upstream)
            return SyncStatus.CREATED

        head = head_r.stdout.strip()
        if head == upstream or self._is_ancestor(path, upstream, head):
            return SyncStatus.UPTODATE
        if self._is_ancestor(path, head, upstream):
            self._git(path, "reset", "-q", "--hard", upstream)
            return SyncStatus.UPDATED
        logger.warning("Working copy %s has diverged from %s/%s", path, REMOTE, branch)
        return SyncStatus.OUTOFSYNC

    def _ensure_remote(self, path: Path, url: str) -> None:
        current = self._git(path, "remote", "get-url", REMOTE, check=False)
        if not current.success:
            self._git(path, "remote", "add", REMOTE, url)
        elif current.stdout.strip() != url:
            logger.info("Re-pointing %s remote of %s to %s", REMOTE, path, url)
            self._git(path, "remote", "set-url", REMOTE, url)

    def _is_ancestor(self, path: Path, older: str, newer: str) -> bool:
        r = self._git(path, "merge-base", "--is-ancestor", older, newer, check=False)
        if r.returncode not in (0, 1):
            raise ExternalCommandError(f"git merge-base failed in {path}: {r.stderr.strip()[:300]}")
        return r.returncode == 0
