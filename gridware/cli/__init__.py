"""gridware command line interface

Commands are split by domain into sub-modules, each registering its commands
on the main group. Any GridwareError escaping a command is reported as a
single ``Error: ...`` line with exit status 1.
"""

import os
from typing import Any

import click

from gridware import __version__
from gridware.core.exceptions import (
    AmbiguousError,
    DepotError,
    GridwareError,
    NotFoundError,
    ValidationError,
)
from gridware.core.models import SyncResult, SyncStatus
from gridware.services.container import get_container
from gridware.utils.logger import setup_logging


class GridwareGroup(click.Group):
    """click group turning domain errors into click errors"""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except GridwareError as e:
            raise click.ClickException(str(e)) from e


def _svc() -> Any:
    """Shortcut to the process-wide service container"""
    return get_container()


# ---- shared helpers ----

_SYNC_MARKERS = {
    SyncStatus.CREATED: ("OK", "At"),
    SyncStatus.UPDATED: ("OK", "At"),
    SyncStatus.UPTODATE: ("OK", "Up-to-date"),
    SyncStatus.OUTOFSYNC: ("SKIP", "Out of sync"),
    SyncStatus.NOT_UPDATEABLE: ("SKIP", "Not updateable, no remote configured"),
    SyncStatus.NO_PERMISSION: ("SKIP", "No permission"),
    SyncStatus.FAILED: ("FAIL", None),
}


def _echo_sync(name: str, result: SyncResult) -> None:
    marker, text = _SYNC_MARKERS[result.status]
    if result.status == SyncStatus.FAILED:
        detail = result.message
    elif result.revision:
        detail = f"{text}: {result.revision}"
    else:
        detail = text
    click.echo(f"Updating repository: {name} ... {marker} ({detail})")


def _sync_stale() -> None:
    """Synchronise repositories whose last update is older than the period."""
    stale = _svc().repos.requiring_update()
    if not stale:
        return
    noun = "repositories need" if len(stale) > 1 else "repository needs"
    click.echo(f"{len(stale)} {noun} to update ...")
    for repo in stale:
        _echo_sync(repo.name, repo.update())


def _require_depot(name: str) -> Any:
    depot = _svc().depot(name)
    if depot is None:
        raise NotFoundError(f"Could not find depot: {name}")
    if not depot.enabled():
        raise DepotError(f"Depot is not enabled: {name}")
    return depot


def _select_definition(query: str, latest: bool = False) -> Any:
    repos = _svc().repos
    found = repos.sort_definitions(repos.find_definitions(query))
    if not found:
        raise NotFoundError(f"No matching package found for: {query}")
    if latest or len(found) == 1:
        return found[-1]
    paths = [d.path for d in found]
    raise AmbiguousError(
        "More than one matching package found, please choose one of: " + ", ".join(paths),
        candidates=paths,
    )


def _require_arg(value: str | None, what: str) -> str:
    if not value:
        raise ValidationError(f"Please supply {what}")
    return value


@click.group(cls=GridwareGroup)
@click.version_option(version=__version__)
def main() -> None:
    """gridware - relocatable HPC software depots"""
    setup_logging(
        level=os.getenv("GRIDWARE_LOG_LEVEL", "WARNING"),
        json_output=os.getenv("GRIDWARE_LOG_JSON", "") == "1",
    )


# Domain sub-commands
from gridware.cli.cmd_repo import register as _reg_repo  # noqa: E402
from gridware.cli.cmd_install import register as _reg_install  # noqa: E402
from gridware.cli.cmd_depot import register as _reg_depot  # noqa: E402
from gridware.cli.cmd_distro import register as _reg_distro  # noqa: E402
from gridware.cli.cmd_requests import register as _reg_requests  # noqa: E402

_reg_repo(main)
_reg_install(main)
_reg_depot(main)
_reg_distro(main)
_reg_requests(main)
