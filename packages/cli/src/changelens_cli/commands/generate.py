"""generate command: build the CHANGELOG for one release."""

from __future__ import annotations

import threading
from pathlib import Path

import click
from rich.console import Console

from changelens_core.config import ReleaseSettings, load_config, load_prompt_template
from changelens_core.errors import ChangelogError, ConfigurationError, OutputWriteError
from changelens_core.generator import ChangelogGenerator, get_oracle
from changelens_core.gh.client import GitHubSourceControl
from changelens_core.models import GenerationResult
from changelens_store.models import RunArtifacts

console = Console(stderr=True)


def _result_to_artifacts(result: GenerationResult, model: str) -> RunArtifacts:
    """Map a GenerationResult to the store's RunArtifacts.

    The CLI owns this mapping so changelens_core and changelens_store stay
    unaware of each other.
    """
    details = result.details.to_dict() if result.details else {}
    return RunArtifacts(
        version=result.prompt.version,
        timestamp=result.prompt.timestamp,
        model=model,
        prompt=result.prompt.text,
        model_output={"changes": [e.to_dict() for e in result.entries]},
        model_details=details,
    )


def _write_changelog(path: str, text: str) -> None:
    try:
        Path(path).write_text(text, encoding="utf-8")
    except OSError as e:
        raise OutputWriteError(f"failed to write {path}: {e}", stage="output") from e


@click.command("generate")
@click.option("--release", required=True, help="Release to generate the changelog for (X.Y.Z).")
@click.option(
    "--from-release",
    default=None,
    help="Previous release (X.Y.Z). Computed from --release when omitted.",
)
@click.option(
    "--all",
    "broad",
    is_flag=True,
    help="Send every merged PR to the model instead of only release-note labeled ones.",
)
@click.option(
    "--model",
    default=None,
    help="Model as provider[:name], e.g. 'anthropic' or 'openai:gpt-4o'. Overrides config file.",
)
@click.option("--repo", default=None, help="GitHub repository in owner/name format. Overrides config file.")
@click.option("--output", "-o", default=None, help="Output file. Defaults to CHANGELOG-<release>.md.")
@click.option("--stdout", "to_stdout", is_flag=True, help="Print the changelog instead of writing a file.")
@click.option("--timeout", type=float, default=None, help="Abort the run after this many seconds.")
@click.pass_context
def generate_cmd(
    ctx,
    release: str,
    from_release: str | None,
    broad: bool,
    model: str | None,
    repo: str | None,
    output: str | None,
    to_stdout: bool,
    timeout: float | None,
):
    """Generate a CHANGELOG for RELEASE from the PRs merged since the previous release.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub token (or use gh CLI); optional for public repos
      ANTHROPIC_API_KEY    Required when using --model anthropic
      OPENAI_API_KEY       Required when using --model openai
    """
    from changelens_cli.auth import resolve_github_token

    config_path = ctx.obj.get("config_path", ".changelens.yml") if ctx.obj else ".changelens.yml"
    try:
        config = load_config(config_path, cli_overrides={"model": model, "repo": repo})
        settings = ReleaseSettings.from_config(config)
        template = load_prompt_template(config)
        oracle = get_oracle(config)
    except ConfigurationError as e:
        raise click.UsageError(str(e))

    token = resolve_github_token()
    if not token:
        console.print("[yellow]No GitHub token found; using anonymous access (low rate limit).[/yellow]")

    cancel = threading.Event()
    timer = None
    if timeout:
        timer = threading.Timer(timeout, cancel.set)
        timer.daemon = True
        timer.start()

    try:
        client = GitHubSourceControl(settings.repo, token=token)
        generator = ChangelogGenerator(
            release=release,
            client=client,
            oracle=oracle,
            settings=settings,
            template=template,
            model=config["model"],
            from_release=from_release,
            broad=broad,
            cancel=cancel,
        )
        result = generator.generate()

        store = ctx.obj.get("store") if ctx.obj else None
        if store is not None:
            try:
                for path in store.save(_result_to_artifacts(result, config["model"])):
                    console.print(f"[dim]Saved {path}[/dim]")
            except OSError as e:
                raise OutputWriteError(f"failed to save run artifacts: {e}", stage="artifacts") from e

        if to_stdout:
            click.echo(result.changelog, nl=False)
        else:
            path = output or f"CHANGELOG-{result.prompt.version}.md"
            _write_changelog(path, result.changelog)
            console.print(f"[green]Changelog written to {path}[/green]")
    except ChangelogError as e:
        raise click.ClickException(f"Changelog generation failed: {e}")
    finally:
        if timer is not None:
            timer.cancel()
