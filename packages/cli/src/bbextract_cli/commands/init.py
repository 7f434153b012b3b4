"""init command: interactive setup wizard.

Writes .bbextract.yml once so every later run is just `bbextract sync`.
Credentials are never written to the file; they stay in the environment.
"""

from __future__ import annotations

from pathlib import Path

import click
import yaml
from rich.console import Console

console = Console()


@click.command("init")
@click.pass_context
def init_cmd(ctx):
    """Set up bbextract for a Bitbucket installation.

    Asks for the API variant, where to find it and where to store snapshots,
    then creates or updates .bbextract.yml.
    """
    config_path = (ctx.obj or {}).get("config_path", ".bbextract.yml")
    console.print("\n[bold cyan]bbextract init[/bold cyan]: setup wizard\n")

    # --- Choose variant ---
    variant = click.prompt(
        "Bitbucket variant",
        type=click.Choice(["server", "cloud"]),
        default="server",
    )
    config: dict = {"variant": variant}

    if variant == "server":
        config["base_url"] = click.prompt("REST API root (e.g. https://bitbucket.example.com/rest)").rstrip("/")
    else:
        config["workspace"] = click.prompt("Workspace")

    # --- Choose store backend ---
    console.print("\nSnapshot store:")
    console.print("  [bold]sqlite[/bold]    local SQLite file (default)")
    console.print("  [bold]postgres[/bold]  shared PostgreSQL database")
    store_type = click.prompt(
        "Store backend",
        type=click.Choice(["sqlite", "postgres"]),
        default="sqlite",
    )
    config["store"] = store_type

    if store_type == "sqlite":
        db_path = click.prompt("SQLite database path", default=".bbextract.db")
        if db_path != ".bbextract.db":
            config["store_path"] = db_path
        console.print(f"[green]SQLite store configured at {db_path}[/green]")
    else:
        console.print(
            "[yellow]Set DATABASE_URL in the environment, or add database_url to "
            f"{config_path}, before running sync.[/yellow]"
        )
        console.print("[dim]The PostgreSQL driver ships as an extra: pip install 'bbextract[postgres]'[/dim]")

    # --- Error policy ---
    default_policy = "strict" if variant == "server" else "best_effort"
    policy = click.prompt(
        "On a failing pull request",
        type=click.Choice(["strict", "best_effort"]),
        default=default_policy,
    )
    if policy != default_policy:
        config["error_policy"] = policy

    _write_config(config, config_path)
    console.print(f"[green]Wrote {config_path}[/green]")

    console.print("\n[bold green]Setup complete![/bold green]")
    console.print("Export BITBUCKET_TOKEN (or BITBUCKET_USERNAME and BITBUCKET_PASSWORD), then run:")
    console.print("  [bold]bbextract sync[/bold]")


def _write_config(config: dict, config_path: str = ".bbextract.yml") -> None:
    """Write or update the config file, preserving any existing keys."""
    path = Path(config_path)
    existing: dict = {}
    if path.exists():
        existing = yaml.safe_load(path.read_text()) or {}
    existing.update(config)
    path.write_text(yaml.dump(existing, default_flow_style=False, sort_keys=False))
