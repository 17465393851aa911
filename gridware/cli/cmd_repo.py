"""CLI - repository commands"""

from __future__ import annotations

import click

from gridware.cli import _echo_sync, _svc, _sync_stale
from gridware.core.exceptions import NotFoundError


def register(group: click.Group) -> None:
    group.add_command(update)
    group.add_command(repos)
    group.add_command(search)


@click.command()
@click.argument("repo", required=False)
def update(repo: str | None) -> None:
    """Synchronise REPO (default: every repository) with its remote"""
    repo_set = _svc().repos
    if repo:
        target = repo_set.get(repo)
        if target is None:
            raise NotFoundError(f"Repository {repo} not found")
        targets = [target]
    else:
        targets = list(repo_set)
    for r in targets:
        _echo_sync(r.name, r.update())


@click.command()
def repos() -> None:
    """List configured repositories"""
    repo_set = _svc().repos
    if not len(repo_set):
        click.echo("No repositories configured.")
        return
    for r in repo_set:
        last = r.last_update
        stamp = "never" if last.year == 1 else last.strftime("%Y-%m-%d %H:%M")
        click.echo(f"  {r.name:16s} {r.descriptor:50s} updated: {stamp}")


@click.command()
@click.argument("query", default="*")
def search(query: str) -> None:
    """Find package definitions matching QUERY (name, type/name, ...)"""
    _sync_stale()
    repo_set = _svc().repos
    found = repo_set.sort_definitions(repo_set.find_definitions(query))
    if not found:
        click.echo(f"No matching package found for: {query}")
        return
    for d in found:
        click.echo(d.path)
