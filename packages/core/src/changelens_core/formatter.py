"""Rendering classifier output into a changelog document."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import date

from changelens_core.markdown import RELEASE_PREFIX, TITLE_PREFIX, ChangelogGrammar, author_definition
from changelens_core.models import CATEGORIES, EXCLUDE_BELOW, ChangeEntry, ChangeRecord
from changelens_core.version import Version

logger = logging.getLogger(__name__)

TRIAGE_HEADING = "### Needs triage"
TRIAGE_NOTE = "<!-- Entries below were not classified as Added, Changed or Fixed. Move or delete them. -->"


def enrich_authors(entries: Iterable[ChangeEntry], records: Iterable[ChangeRecord]) -> None:
    """Copy each record's author onto the entry with the same PR number."""
    authors = {}
    for record in records:
        authors.setdefault(record.number, record.author)
    for entry in entries:
        if entry.pr_number in authors:
            entry.author = authors[entry.pr_number]
        else:
            logger.warning("Model returned PR #%d which was not collected; leaving author empty", entry.pr_number)


def filter_and_mark(entries: Iterable[ChangeEntry]) -> list[ChangeEntry]:
    """Drop entries below the inclusion threshold.

    Entries kept with 25 <= include_score < 50 report ``optional`` and are
    rendered with the optional marker.
    """
    return [e for e in entries if e.include_score >= EXCLUDE_BELOW]


def group(entries: Iterable[ChangeEntry]) -> tuple[dict[str, list[ChangeEntry]], list[ChangeEntry]]:
    """Split entries into the fixed category buckets plus the unclassified rest."""
    buckets: dict[str, list[ChangeEntry]] = {category: [] for category in CATEGORIES}
    unclassified: list[ChangeEntry] = []
    for entry in entries:
        category = entry.category.upper()
        if category in buckets:
            buckets[category].append(entry)
        else:
            unclassified.append(entry)
    return buckets, unclassified


def rank(bucket: Iterable[ChangeEntry]) -> list[ChangeEntry]:
    """Most important first; ties keep the classifier's order (sorted is stable)."""
    return sorted(bucket, key=lambda e: e.importance_score, reverse=True)


def render(
    version: Version,
    buckets: dict[str, list[ChangeEntry]],
    grammar: ChangelogGrammar,
    unclassified: Sequence[ChangeEntry] = (),
    today: date | None = None,
) -> str:
    today = today or date.today()
    lines: list[str] = []
    if version.patch == 0:
        lines += [f"{TITLE_PREFIX}Changelog {version.major}.{version.minor}", ""]
    lines += [f"{RELEASE_PREFIX}{version} - {today.isoformat()}", ""]

    authors: set[str] = set()

    def _bullets(entries: Iterable[ChangeEntry]) -> None:
        for entry in entries:
            lines.append(grammar.bullet(entry.description, entry.pr_number, entry.author, entry.optional))
            if entry.author:
                authors.add(entry.author)

    for category in CATEGORIES:
        lines += [grammar.heading(category), ""]
        _bullets(buckets.get(category, []))
        lines.append("")

    if unclassified:
        lines += [TRIAGE_HEADING, "", TRIAGE_NOTE, ""]
        _bullets(unclassified)
        lines.append("")

    lines.append("")
    lines += [author_definition(a) for a in sorted(authors)]
    return "\n".join(lines) + "\n"


def format_changelog(
    version: Version,
    entries: Iterable[ChangeEntry],
    grammar: ChangelogGrammar,
    broad: bool = False,
    today: date | None = None,
) -> str:
    """Threshold, group, rank and render. Unclassified entries are only shown in broad mode."""
    buckets, unclassified = group(filter_and_mark(entries))
    ranked = {category: rank(bucket) for category, bucket in buckets.items()}
    if unclassified and not broad:
        logger.warning(
            "Dropping %d entry(ies) with an unknown category: %s",
            len(unclassified),
            ", ".join(f"#{e.pr_number} ({e.category})" for e in unclassified),
        )
        unclassified = []
    return render(version, ranked, grammar, rank(unclassified), today)
