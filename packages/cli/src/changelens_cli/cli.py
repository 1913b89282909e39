"""CLI entry point for changelens.

Commands:
  generate: build the CHANGELOG for a release from its merged pull requests
  ledger:   show how earlier changelogs described each pull request
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from changelens_cli.commands.generate import generate_cmd
from changelens_cli.commands.ledger import ledger_cmd

console = Console(stderr=True)


def _build_store(config: dict):
    """Instantiate the configured artifact store from .changelens.yml settings.

    Store selection:
      store: directory → DirectoryStore (writes under store_path, default ".")
      (default)        → NoOpStore      (only the changelog itself is written)
    """
    from changelens_store.noop import NoOpStore

    store_type = config.get("store", "noop")

    if store_type == "directory":
        from changelens_store.directory import DirectoryStore

        return DirectoryStore(path=config.get("store_path", "."))

    if store_type != "noop":
        console.print(f"[yellow]Unknown store {store_type!r}. Falling back to no store.[/yellow]")
    return NoOpStore()


@click.group()
@click.version_option(
    version=importlib.metadata.version("changelens"),
    prog_name="changelens",
)
@click.option(
    "--config",
    "config_path",
    default=".changelens.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="CHANGELENS_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """AI-assisted CHANGELOG generation from merged GitHub pull requests."""
    from changelens_core.config import load_config
    from changelens_core.errors import ConfigurationError

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        raise click.UsageError(str(e))

    store = _build_store(config)
    ctx.obj["config_path"] = config_path
    ctx.obj["config"] = config
    ctx.obj["store"] = store
    ctx.call_on_close(store.close)


main.add_command(generate_cmd)
main.add_command(ledger_cmd)
