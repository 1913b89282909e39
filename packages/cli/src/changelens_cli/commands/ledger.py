"""ledger command: show historical changelog wording per pull request."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from changelens_core.config import ReleaseSettings
from changelens_core.errors import ChangelogError
from changelens_core.gh.client import GitHubSourceControl
from changelens_core.ledger import HistoricalLedger
from changelens_core.markdown import ChangelogGrammar

console = Console()


@click.command("ledger")
@click.option("--repo", default=None, help="GitHub repository (owner/name). Overrides config file.")
@click.option("--pr", "pr_number", type=int, default=None, help="Only show this PR number.")
@click.option("--limit", default=50, show_default=True, help="Maximum number of entries to show.")
@click.pass_context
def ledger_cmd(ctx, repo: str | None, pr_number: int | None, limit: int):
    """Show the category and wording earlier CHANGELOGs used for each PR.

    These are the entries the model is told to reuse when a PR shows up
    again, typically as a backport into a patch release.
    """
    from changelens_cli.auth import resolve_github_token

    config = dict(ctx.obj.get("config", {})) if ctx.obj else {}
    if repo:
        config["repo"] = repo
    try:
        settings = ReleaseSettings.from_config(config)
    except (ChangelogError, KeyError) as e:
        raise click.UsageError(f"Invalid configuration: {e}")

    try:
        client = GitHubSourceControl(settings.repo, token=resolve_github_token())
        source = HistoricalLedger(
            client,
            ChangelogGrammar(settings.repo),
            directory=settings.changelog_dir,
            prefix=settings.changelog_prefix,
            extension=settings.changelog_extension,
        )
        documents = source.list_documents()
        ledger = source.build_ledger(documents)
    except ChangelogError as e:
        raise click.ClickException(f"Could not build ledger: {e}")

    if pr_number is not None:
        ledger = {pr_number: ledger[pr_number]} if pr_number in ledger else {}
    if not ledger:
        console.print("[yellow]No historical entries found.[/yellow]")
        return

    # Highest PR numbers first, capped at --limit.
    numbers = sorted(ledger, reverse=True)[:limit]

    table = Table(
        title=f"Changelog ledger: {settings.repo} ({len(documents)} file(s))",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("PR", style="bold", width=8)
    table.add_column("Category", width=9)
    table.add_column("Description")

    _category_style = {"ADDED": "green", "CHANGED": "yellow", "FIXED": "blue"}

    for number in numbers:
        entry = ledger[number]
        style = _category_style.get(entry.category, "white")
        table.add_row(f"#{number}", f"[{style}]{entry.category}[/{style}]", escape(entry.description))

    console.print(table)
