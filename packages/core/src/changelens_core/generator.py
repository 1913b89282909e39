"""Core changelog generation pipeline."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime

from github import GithubException
from rich.console import Console

from changelens_core.collector import PullRequestCollector
from changelens_core.config import ReleaseSettings, parse_model_id
from changelens_core.errors import ChangelogError, ConfigurationError, PlatformAccessError, raise_if_cancelled
from changelens_core.formatter import enrich_authors, format_changelog
from changelens_core.gh.client import SourceControlClient
from changelens_core.ledger import HistoricalLedger
from changelens_core.markdown import ChangelogGrammar
from changelens_core.models import ChangeEntry, GenerationResult, HistoricalEntry, Prompt
from changelens_core.prompt import build_prompt
from changelens_core.providers.anthropic import AnthropicClassifier
from changelens_core.providers.base import TIMESTAMP_FORMAT, ChangelogOracle
from changelens_core.providers.openai import OpenAIClassifier
from changelens_core.version import parse_version, previous_release, release_branch

console = Console(stderr=True)
logger = logging.getLogger(__name__)


def get_oracle(config: dict) -> ChangelogOracle:
    provider, _ = parse_model_id(config.get("model"))
    if provider == "anthropic":
        if not config.get("anthropic_api_key"):
            raise ConfigurationError("ANTHROPIC_API_KEY environment variable is not set.")
        return AnthropicClassifier(api_key=config["anthropic_api_key"])
    if not config.get("openai_api_key"):
        raise ConfigurationError("OPENAI_API_KEY environment variable is not set.")
    return OpenAIClassifier(api_key=config["openai_api_key"])


@contextmanager
def _stage(name: str):
    """Tag any failure with the stage it happened in."""
    try:
        yield
    except ChangelogError as e:
        if e.stage is None:
            e.stage = name
        raise
    except GithubException as e:
        raise PlatformAccessError(str(e), stage=name) from e


def _report_ledger_drift(entries: list[ChangeEntry], ledger: dict[int, HistoricalEntry]) -> None:
    """Log entries whose wording differs from their historical entry. Nothing is rewritten."""
    for entry in entries:
        historical = ledger.get(entry.pr_number)
        if historical is None:
            continue
        if entry.category != historical.category or entry.description != historical.description:
            logger.warning(
                "PR #%d differs from its historical entry: %s %r (was %s %r)",
                entry.pr_number,
                entry.category,
                entry.description,
                historical.category,
                historical.description,
            )


class ChangelogGenerator:
    """Runs every stage in order; any failure aborts the whole run."""

    def __init__(
        self,
        release: str,
        client: SourceControlClient,
        oracle: ChangelogOracle,
        settings: ReleaseSettings,
        template: str,
        model: str = "anthropic",
        from_release: str | None = None,
        broad: bool = False,
        cancel: threading.Event | None = None,
        today: date | None = None,
    ):
        self.release = release
        self.from_release = from_release
        self.broad = broad
        self.model = model
        self.client = client
        self.oracle = oracle
        self.settings = settings
        self.template = template
        self.cancel = cancel
        self.today = today
        self.grammar = ChangelogGrammar(settings.repo)

    def generate(self) -> GenerationResult:
        with _stage("version"):
            version = parse_version(self.release)
            previous = parse_version(self.from_release) if self.from_release else previous_release(version)
            branch = release_branch(version, self.settings.mainline_branch, self.settings.release_branch_format)
            _, model_name = parse_model_id(self.model)
        console.print(f"[bold]Generating changelog for {version}[/bold] (from {previous}, branch: {branch})")

        with _stage("ledger"):
            console.print("Fetching historical CHANGELOGs...")
            ledger_source = HistoricalLedger(
                self.client,
                self.grammar,
                directory=self.settings.changelog_dir,
                prefix=self.settings.changelog_prefix,
                extension=self.settings.changelog_extension,
                cancel=self.cancel,
            )
            documents = ledger_source.list_documents()
            ledger = ledger_source.build_ledger(documents)
            excerpt = ledger_source.style_excerpt(documents, self.settings.style_reference_count)
        console.print(f"  {len(ledger)} historical PR entries from {len(documents)} file(s).")

        with _stage("collect"):
            collector = PullRequestCollector(self.client, self.settings.collection, cancel=self.cancel)
            since = collector.resolve_window_start(previous)
            console.print(f"Fetching PRs merged after {since.isoformat()}...")
            records = collector.collect(version, branch, since, broad=self.broad)
        console.print(f"  {len(records)} PR(s) collected.")

        with _stage("prompt"):
            prompt = Prompt(
                text=build_prompt(self.template, excerpt, ledger, records),
                version=str(version),
                timestamp=datetime.now().strftime(TIMESTAMP_FORMAT),
            )

        with _stage("classify"):
            raise_if_cancelled(self.cancel, "calling the model")
            console.print(f"Calling model ({self.model})...")
            entries, details = self.oracle.classify(prompt.text, str(version), model_name, cancel=self.cancel)
        console.print(
            f"  {len(entries)} change entries; latency {details.latency_seconds:.2f}s, "
            f"{details.total_tokens} tokens, ~${details.estimated_cost_usd:.4f}"
        )

        with _stage("format"):
            raise_if_cancelled(self.cancel, "formatting")
            enrich_authors(entries, records)
            _report_ledger_drift(entries, ledger)
            changelog = format_changelog(version, entries, self.grammar, broad=self.broad, today=self.today)

        return GenerationResult(
            changelog=changelog,
            prompt=prompt,
            entries=entries,
            details=details,
            record_count=len(records),
            ledger_size=len(ledger),
        )
