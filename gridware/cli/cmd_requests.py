"""CLI - queued distro package install requests"""

from __future__ import annotations

import click

from gridware.cli import _svc
from gridware.core.exceptions import NotFoundError
from gridware.deps.requests import Decision, PackageRequest

_ANSWERS = {
    "i": Decision.INSTALL,
    "a": Decision.INSTALL_ALL,
    "s": Decision.SKIP,
    "d": Decision.DELETE,
}


def register(group: click.Group) -> None:
    group.add_command(requests_group)


@click.group(name="requests")
def requests_group() -> None:
    """Pending distribution package install requests"""


@requests_group.command(name="list")
def requests_list() -> None:
    """List pending requests"""
    pending = _svc().requests.list()
    if not pending:
        click.echo("No pending installation requests.")
        return
    click.echo(f"{'ID':24s} {'User':12s} {'Gridware package':20s} {'Distro package':20s} Date")
    for r in pending:
        stamp = r.filed.strftime("%Y-%m-%d %H:%M") if r.filed else ""
        click.echo(f"{r.id:24s} {r.user:12s} {r.package:20s} {r.distro_package:20s} {stamp}")


@requests_group.command(name="install")
@click.option("--yes", is_flag=True, help="Install every request without asking")
def requests_install(yes: bool) -> None:
    """Process pending requests (run as root)"""

    def decide(req: PackageRequest) -> Decision:
        if yes:
            return Decision.INSTALL
        answer = click.prompt(
            f"User {req.user} wants to install package {req.distro_package}. "
            "(I)nstall, install (A)ll, (S)kip, (D)elete?",
            type=click.Choice(list(_ANSWERS), case_sensitive=False),
            show_choices=False,
        )
        return _ANSWERS[answer.lower()]

    report = _svc().requests.process(decide)
    for rid in report.installed:
        click.echo(f"{rid} ... Done")
    for rid in report.failed:
        click.echo(f"{rid} ... INSTALL FAILED")
    for rid in report.skipped + report.deleted:
        click.echo(f"{rid} ... NOT INSTALLED")


@requests_group.command(name="delete")
@click.argument("request_id")
def requests_delete(request_id: str) -> None:
    """Delete a pending request"""
    if not _svc().requests.delete(request_id):
        raise NotFoundError(f"No such installation request: {request_id}")
    click.echo(f"Deleted {request_id}")
