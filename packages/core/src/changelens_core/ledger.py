"""Historical changelog ledger.

Every earlier changelog is parsed into a PR-number -> {category, description}
map so that a fix backported into several releases is described the same way
each time. Only the most recent few documents are also passed to the model
verbatim, as a tone and format reference.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass

from changelens_core.errors import VersionFormatError, raise_if_cancelled
from changelens_core.gh.client import SourceControlClient
from changelens_core.markdown import ChangelogGrammar
from changelens_core.models import CATEGORIES, HistoricalEntry
from changelens_core.version import Version, parse_version

logger = logging.getLogger(__name__)

DEFAULT_DIRECTORY = "CHANGELOG"
DEFAULT_PREFIX = "CHANGELOG"
DEFAULT_EXTENSION = "md"
STYLE_REFERENCE_COUNT = 3


@dataclass(frozen=True)
class ChangelogDocument:
    name: str
    version: Version


def parse_changelog(text: str, grammar: ChangelogGrammar, ledger: dict[int, HistoricalEntry] | None = None):
    """Add every entry of one changelog document to ``ledger`` and return it.

    Numbers already present are left alone, so callers feeding documents
    newest-first keep the newest wording.
    """
    if ledger is None:
        ledger = {}
    current_category: str | None = None
    for line in text.splitlines():
        heading = grammar.parse_heading(line)
        if heading is not None:
            current_category = heading if heading in CATEGORIES else None
            continue
        if current_category is None:
            continue
        bullet = grammar.parse_bullet(line)
        if bullet is None:
            continue
        if bullet.number not in ledger:
            ledger[bullet.number] = HistoricalEntry(description=bullet.description, category=current_category)
    return ledger


class HistoricalLedger:
    """Locates, fetches and parses prior changelog documents."""

    def __init__(
        self,
        client: SourceControlClient,
        grammar: ChangelogGrammar,
        directory: str = DEFAULT_DIRECTORY,
        prefix: str = DEFAULT_PREFIX,
        extension: str = DEFAULT_EXTENSION,
        cancel: threading.Event | None = None,
    ):
        self.client = client
        self.grammar = grammar
        self.directory = directory.rstrip("/")
        self.cancel = cancel
        self._name_re = re.compile(rf"^{re.escape(prefix)}-(\d+\.\d+)\.{re.escape(extension)}$")
        self._texts: dict[str, str] = {}

    def list_documents(self) -> list[ChangelogDocument]:
        """Return matching documents ordered newest version first."""
        raise_if_cancelled(self.cancel, f"listing {self.directory}")
        documents = []
        for name in self.client.list_directory(self.directory):
            match = self._name_re.match(name)
            if not match:
                continue
            try:
                version = parse_version(match.group(1) + ".0")
            except VersionFormatError:
                continue
            documents.append(ChangelogDocument(name=name, version=version))
        documents.sort(key=lambda d: d.version, reverse=True)
        return documents

    def fetch_text(self, document: ChangelogDocument) -> str:
        if document.name not in self._texts:
            raise_if_cancelled(self.cancel, f"fetching {document.name}")
            self._texts[document.name] = self.client.get_file_text(f"{self.directory}/{document.name}")
        return self._texts[document.name]

    def build_ledger(self, documents: list[ChangelogDocument]) -> dict[int, HistoricalEntry]:
        """Parse every document into one ledger, newest version winning.

        Documents are re-sorted here rather than trusting the caller's order:
        first-occurrence-wins is only correct when the newest document is
        scanned first.
        """
        ledger: dict[int, HistoricalEntry] = {}
        ordered = sorted(documents, key=lambda d: d.version, reverse=True)
        logger.info("Parsing %d changelog file(s) for historical PR entries", len(ordered))
        for document in ordered:
            before = len(ledger)
            parse_changelog(self.fetch_text(document), self.grammar, ledger)
            logger.debug("%s: %d new historical entries", document.name, len(ledger) - before)
        return ledger

    def style_excerpt(self, documents: list[ChangelogDocument], n: int = STYLE_REFERENCE_COUNT) -> str:
        """Raw text of the ``n`` most recent documents, unparsed."""
        ordered = sorted(documents, key=lambda d: d.version, reverse=True)
        parts = []
        for document in ordered[: max(n, 0)]:
            logger.debug("Including %s in prompt as style reference", document.name)
            parts.append(f"\n\n=== {document.name} ===\n\n")
            parts.append(self.fetch_text(document))
        return "".join(parts)
