"""CLI - install, import and inspect packages"""

from __future__ import annotations

import click

from gridware.cli import _require_arg, _require_depot, _select_definition, _svc, _sync_stale
from gridware.core.exceptions import UnresolvableError
from gridware.core.models import ImportOptions, ImportOutcome, ImportStatus

_MARKERS = {
    ImportStatus.IMPORTED: "OK",
    ImportStatus.EXISTS: "EXISTS",
    ImportStatus.UNRESOLVED: "MISSING",
    ImportStatus.FAILED: "FAILED",
}


def register(group: click.Group) -> None:
    group.add_command(install)
    group.add_command(import_archive)
    group.add_command(requires)
    group.add_command(list_packages)


def _echo_outcomes(outcomes: list[ImportOutcome]) -> None:
    """Print one line per outcome; unresolved requirements fail the command."""
    for o in outcomes:
        line = f"Processing {o.path} ... {_MARKERS[o.status]}"
        if o.message and not o.ok:
            line += f"\n  ERROR: {o.message}"
        click.echo(line)
    missing = sorted({m for o in outcomes if o.status is ImportStatus.UNRESOLVED for m in o.missing})
    if missing:
        raise UnresolvableError(
            f"Unable to satisfy runtime requirements: {', '.join(missing)}", missing=missing,
        )


def _depot_option(f):
    return click.option("--depot", "-d", default="local", show_default=True, help="Target depot")(f)


@click.command()
@click.argument("package")
@_depot_option
@click.option("--variant", default=None, help="Build variant")
@click.option("--compile", "-c", "compile_", is_flag=True, help="Build from source instead of importing a binary")
@click.option("--latest", "-l", is_flag=True, help="Install the latest version when several match")
@click.option("--non-interactive", is_flag=True, help="Never prompt")
@click.option("--verbose", is_flag=True, help="Show full dependency script output on failure")
def install(
    package: str, depot: str, variant: str | None, compile_: bool,
    latest: bool, non_interactive: bool, verbose: bool,
) -> None:
    """Install PACKAGE and any missing requirements"""
    _require_depot(depot)
    _sync_stale()
    defn = _select_definition(package, latest)
    opts = ImportOptions(
        depot=depot, compile=compile_, verbose=verbose,
        non_interactive=non_interactive, variant=variant,
    )
    click.echo(f"Installing {defn.path}")
    _echo_outcomes(_svc().installer.install(defn, opts))


@click.command(name="import")
@click.argument("archive", required=False)
@_depot_option
@click.option("--compile", "-c", "compile_", is_flag=True, help="Compile missing requirements from source")
@click.option("--verbose", is_flag=True, help="Show full dependency script output on failure")
def import_archive(archive: str | None, depot: str, compile_: bool, verbose: bool) -> None:
    """Import a binary ARCHIVE (path or URL) into a depot"""
    archive = _require_arg(archive, "path to archive")
    _require_depot(depot)
    _sync_stale()
    opts = ImportOptions(depot=depot, compile=compile_, verbose=verbose)
    _echo_outcomes(_svc().importer.import_archive(None, archive, opts))


@click.command()
@click.argument("package")
@_depot_option
@click.option("--latest", "-l", is_flag=True, help="Use the latest version when several match")
def requires(package: str, depot: str, latest: bool) -> None:
    """Show PACKAGE's runtime requirements and whether they are installed"""
    _require_depot(depot)
    _sync_stale()
    svc = _svc()
    defn = _select_definition(package, latest)
    reqs = defn.metadata.requirements_for("runtime")
    if not reqs:
        click.echo(f"{defn.path} has no runtime requirements.")
        return
    for req in reqs:
        pkg = svc.resolver.resolve(req, depot=depot)
        click.echo(f"  {req:30s} {pkg.path if pkg else 'MISSING'}")


@click.command(name="list")
@_depot_option
@click.argument("pattern", default="*")
def list_packages(depot: str, pattern: str) -> None:
    """List packages installed in a depot"""
    _require_depot(depot)
    pkgs = _svc().store(depot).find(pattern)
    if not pkgs:
        click.echo("No packages installed.")
        return
    for p in sorted(pkgs, key=lambda p: p.path):
        click.echo(p.path)
