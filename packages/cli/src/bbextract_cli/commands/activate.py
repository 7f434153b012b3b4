"""activate command: repoint readers at a previously loaded version."""

from __future__ import annotations

import click
from rich.console import Console

console = Console()


@click.command("activate")
@click.argument("version", type=int)
@click.pass_context
def activate_cmd(ctx, version: int):
    """Make VERSION the snapshot readers see.

    Only versions that finished loading can be activated. Useful to roll back
    to an earlier snapshot after a bad run.
    """
    from bbextract_cli.cli import open_store
    from bbextract_store.base import PersistenceError

    store = open_store(ctx)
    previous = store.active_version()
    try:
        store.set_active_version(version)
    except PersistenceError as e:
        raise click.ClickException(str(e))

    if previous is None:
        console.print(f"[green]Version {version} is now active.[/green]")
    else:
        console.print(f"[green]Version {version} is now active[/green] (was {previous}).")
