"""CLI - depot lifecycle"""

from __future__ import annotations

import click

from gridware.cli import _svc
from gridware.core.exceptions import NotFoundError


def register(group: click.Group) -> None:
    group.add_command(depot_group)


def _find(name: str):
    d = _svc().depot(name)
    if d is None:
        raise NotFoundError(f"Could not find depot: {name}")
    return d


@click.group(name="depot")
def depot_group() -> None:
    """Depot operations"""


@depot_group.command(name="list")
def depot_list() -> None:
    """List depots"""
    from gridware.depot.depot import Depot
    svc = _svc()
    for name in Depot.names(svc.config):
        d = svc.depot(name)
        state = "enabled" if d is not None and d.enabled() else "disabled"
        click.echo(f"  {name:20s} {state}")


@depot_group.command(name="init")
@click.argument("name")
@click.option("--disabled", is_flag=True, help="Don't enable the new depot")
def depot_init(name: str, disabled: bool) -> None:
    """Create depot NAME"""
    from gridware.depot.depot import Depot
    svc = _svc()
    d = Depot.create(svc.config, name, executor=svc.executor)
    click.echo(f"Initialized depot: {name} ({d.hash_path})")
    if not disabled:
        d.enable()
        click.echo(f"module use {d.path}/$cw_DIST/etc/modules")


@depot_group.command(name="enable")
@click.argument("name")
def depot_enable(name: str) -> None:
    """Enable depot NAME"""
    d = _find(name)
    if d.enable():
        click.echo(f"Enabling depot: {name} ... OK")
        click.echo(f"module use {d.target}")
    else:
        click.echo(f"WARNING! Depot already enabled: {name}")


@depot_group.command(name="disable")
@click.argument("name")
def depot_disable(name: str) -> None:
    """Disable depot NAME"""
    d = _find(name)
    loaded = d.loaded_modules()
    if not d.disable():
        click.echo(
            "ERROR: The following modules have been loaded from this depot "
            "and must be unloaded to continue:",
            err=True,
        )
        for mod in loaded:
            click.echo(f" - {mod}", err=True)
        raise click.exceptions.Exit(1)
    click.echo(f"Disabling depot: {name} ... OK")
    click.echo(f"module unuse {d.target}")


@depot_group.command(name="purge")
@click.argument("name")
@click.option("--yes", is_flag=True, help="Answer positively to confirmations")
@click.option("--non-interactive", is_flag=True, help="Never prompt")
def depot_purge(name: str, yes: bool, non_interactive: bool) -> None:
    """Remove depot NAME and all of its content"""
    d = _find(name)

    def confirm(msg: str) -> bool:
        click.echo(msg)
        return click.confirm("Proceed?", default=False)

    if d.purge(force=yes, non_interactive=non_interactive, confirm=confirm):
        click.echo(f"Purging depot: {name} ... OK")
    else:
        click.echo("Purge cancelled.")


@depot_group.command(name="export")
@click.argument("name")
@click.option("--output", "-o", default=None, help="Output directory (default: /tmp/<depot>)")
@click.option("--packages/--no-packages", default=True, help="Copy package archives")
def depot_export(name: str, output: str | None, packages: bool) -> None:
    """Export depot NAME's manifest and archives"""
    svc = _svc()
    d = _find(name)
    out = d.export(
        output, store=svc.store(name), repos=svc.repos,
        resolver=svc.resolver, packages=packages,
    )
    click.echo(f"Export of depot '{name}' complete: {out}")
