"""Prompt assembly for the changelog classifier."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from changelens_core.models import ChangeRecord, HistoricalEntry


def _record_block(record: ChangeRecord, historical: HistoricalEntry | None) -> str:
    lines = [
        f"## PR #{record.number}",
        f"**Title:** {record.title}",
        f"**Author:** {record.author}",
        f"**Labels:** {', '.join(record.labels)}",
    ]
    if historical is not None:
        lines.append("**HISTORICAL ENTRY (MUST REUSE):**")
        lines.append(f"- Category: {historical.category}")
        lines.append(f"- Description: {historical.description}")
    lines.append(f"**Body:**\n{record.body}")
    return "\n".join(lines) + "\n\n---\n\n"


def build_prompt(
    template: str,
    style_excerpt: str,
    ledger: Mapping[int, HistoricalEntry],
    records: Iterable[ChangeRecord],
) -> str:
    """Concatenate preamble, historical changelogs and one block per record.

    Deterministic for identical inputs; records keep the order given.
    """
    parts = [
        template,
        "\n\n",
        "# HISTORICAL CHANGELOGS (for reference and consistency)\n\n",
        style_excerpt,
        "\n\n",
        "# PULL REQUESTS FOR THIS RELEASE\n\n",
    ]
    for record in records:
        parts.append(_record_block(record, ledger.get(record.number)))
    return "".join(parts)
