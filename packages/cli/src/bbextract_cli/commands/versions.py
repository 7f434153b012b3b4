"""versions command: list snapshot versions from the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()

_STATE_STYLE = {"loaded": "green", "loading": "yellow"}


@click.command("versions")
@click.option("--limit", default=20, show_default=True, help="Maximum number of versions to show.")
@click.pass_context
def versions_cmd(ctx, limit: int):
    """Show snapshot versions, newest first.

    A version stuck in `loading` belongs to a run that failed or was
    interrupted; its rows are never served.
    """
    from bbextract_cli.cli import open_store

    versions = open_store(ctx).list_versions()
    if not versions:
        console.print("[yellow]No snapshot versions found. Run `bbextract sync` first.[/yellow]")
        return

    table = Table(title="Snapshot Versions", show_header=True, header_style="bold cyan")
    table.add_column("Version", justify="right", style="bold")
    table.add_column("State", width=8)
    table.add_column("Rows", justify="right")
    table.add_column("Started At", width=20)
    table.add_column("Finished At", width=20)
    table.add_column("Active", justify="center")

    for v in versions[:limit]:
        style = _STATE_STYLE.get(v.state, "white")
        table.add_row(
            str(v.version),
            f"[{style}]{v.state}[/{style}]",
            str(v.rows),
            v.started_at[:19].replace("T", " "),
            (v.finished_at or "")[:19].replace("T", " "),
            "[green]*[/green]" if v.active else "",
        )

    console.print(table)
