"""CLI entry point for bbextract.

Commands:
  sync      run a full extraction into a new snapshot version
  versions  list snapshot versions, newest first
  stats     summarise the active (or a given) snapshot
  activate  repoint readers at a previously loaded version
  init      interactive setup wizard
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from bbextract_cli.commands.activate import activate_cmd
from bbextract_cli.commands.init import init_cmd
from bbextract_cli.commands.stats import stats_cmd
from bbextract_cli.commands.sync import sync_cmd
from bbextract_cli.commands.versions import versions_cmd

console = Console()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def setup_logging(level: str) -> None:
    """Route every module logger through rich on stderr. Unknown levels fall back to INFO."""
    level = (level or "INFO").upper().strip()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO) if level in LOG_LEVELS else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _build_store(config: dict):
    """Instantiate the configured store from .bbextract.yml settings.

    Store selection:
      store: sqlite   → SQLiteStore   (store_path, default .bbextract.db)
      store: postgres → PostgresStore (database_url / DATABASE_URL)

    This factory lives in cli.py so neither bbextract_core nor bbextract_store
    know about the CLI config format.
    """
    store_type = config.get("store", "sqlite")

    if store_type == "postgres":
        from bbextract_store.postgres import PostgresStore

        return PostgresStore(dsn=config["database_url"])

    from bbextract_store.sqlite import SQLiteStore

    return SQLiteStore(db_path=config.get("store_path", ".bbextract.db"))


def open_store(ctx: click.Context, config: dict | None = None):
    """Return the store for this invocation, opening it on first use.

    Opened lazily so `init` and `--help` never touch a database. The store is
    closed when the click context tears down.
    """
    from bbextract_store.base import PersistenceError

    obj = ctx.find_root().obj
    store = obj.get("store")
    if store is None:
        try:
            store = _build_store(config or obj["config"])
        except (ImportError, PersistenceError) as e:
            raise click.ClickException(str(e))
        obj["store"] = store
        ctx.find_root().call_on_close(store.close)
    return store


@click.group()
@click.version_option(
    version=importlib.metadata.version("bbextract"),
    prog_name="bbextract",
)
@click.option(
    "--config",
    "config_path",
    default=".bbextract.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="BBEXTRACT_CONFIG",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Logging level. Overrides log_level / LOGGING_LEVEL.",
)
@click.pass_context
def main(ctx: click.Context, config_path: str, log_level: str | None):
    """Extract Bitbucket pull request history into versioned snapshots."""
    from bbextract_core.config import load_config

    ctx.ensure_object(dict)

    overrides = {"log_level": log_level}
    config = load_config(config_path, cli_overrides=overrides)
    setup_logging(config["log_level"])

    ctx.obj["config_path"] = config_path
    ctx.obj["overrides"] = overrides
    ctx.obj["config"] = config


main.add_command(sync_cmd)
main.add_command(versions_cmd)
main.add_command(stats_cmd)
main.add_command(activate_cmd)
main.add_command(init_cmd)
