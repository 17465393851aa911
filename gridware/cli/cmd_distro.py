"""CLI - distro dependencies and the install whitelist"""

from __future__ import annotations

import click

from gridware.cli import _select_definition, _svc
from gridware.core.exceptions import PermissionDeniedError


def register(group: click.Group) -> None:
    group.add_command(distro_deps)
    group.add_command(whitelist_group)


@click.command(name="distro-deps")
@click.argument("package")
@click.option("--phase", "-p", type=click.Choice(["build", "runtime"]), default="runtime", show_default=True)
@click.option("--non-interactive", is_flag=True, help="Quiet per-package output")
@click.option("--latest", "-l", is_flag=True, help="Use the latest version when several match")
def distro_deps(package: str, phase: str, non_interactive: bool, latest: bool) -> None:
    """Install the distribution packages PACKAGE needs (run with sudo)"""
    defn = _select_definition(package, latest)
    try:
        report = _svc().distro.install(defn, phase, non_interactive)
    except PermissionDeniedError:
        click.echo("PERMISSION DENIED", err=True)
        raise
    if not report.privileged:
        click.echo("WARNING: This command must be executed with sudo.", err=True)
        return
    if non_interactive:
        return
    for pkg in report.already:
        click.echo(f"{pkg} ... already installed")
    for pkg in report.installed:
        click.echo(f"{pkg} ... OK")
    for pkg in report.failed:
        click.echo(f"{pkg} ... FAILED")


@click.group(name="whitelist")
def whitelist_group() -> None:
    """Distro package install whitelist"""


@whitelist_group.command(name="show")
def whitelist_show() -> None:
    """Print the whitelist"""
    wl = _svc().whitelist
    for section in ("users", "packages", "repos"):
        entries = getattr(wl, section)
        click.echo(f"{section}: {', '.join(entries) if entries else '(none)'}")


@whitelist_group.command(name="add")
@click.argument("kind", type=click.Choice(["user", "package", "repo"]))
@click.argument("value")
def whitelist_add(kind: str, value: str) -> None:
    """Whitelist a user, distro package or repository path"""
    wl = _svc().whitelist
    added = getattr(wl, f"add_{kind}")(value)
    click.echo(f"{kind} {value}: {'added' if added else 'already whitelisted'}")
