"""The changelog document grammar.

Rendered changelogs are also the input of the reuse ledger, so the shapes
below are written and read in one place:

    # Changelog 2.3                                  (minor releases only)
    ## 2.3.0 - 2025-02-14
    ### Added
    - *OPTIONAL* Description. ([#123](https://github.com/owner/repo/pull/123), [@alice])
    [@alice]: https://github.com/alice
"""

from __future__ import annotations

import re
from dataclasses import dataclass

TITLE_PREFIX = "# "
RELEASE_PREFIX = "## "
HEADING_PREFIX = "### "
BULLET_PREFIX = "- "
OPTIONAL_MARKER = "*OPTIONAL* "
GITHUB_URL = "https://github.com"


def category_title(category: str) -> str:
    """``ADDED`` -> ``Added``."""
    return category[:1].upper() + category[1:].lower()


def author_reference(author: str) -> str:
    return f"[@{author}]"


def author_definition(author: str) -> str:
    return f"[@{author}]: {GITHUB_URL}/{author}"


@dataclass(frozen=True)
class ParsedBullet:
    number: int
    description: str
    optional: bool


class ChangelogGrammar:
    """Renders and recognises lines for one repository's pull links."""

    def __init__(self, repo: str):
        self.repo = repo
        self.pull_base = f"{GITHUB_URL}/{repo}/pull/"
        self._link_re = re.compile(r"\(\[#(?P<number>\d+)\]\(" + re.escape(self.pull_base) + r"\d+\)")

    def pull_link(self, number: int) -> str:
        return f"[#{number}]({self.pull_base}{number})"

    def heading(self, category: str) -> str:
        return f"{HEADING_PREFIX}{category_title(category)}"

    def bullet(self, description: str, number: int, author: str = "", optional: bool = False) -> str:
        marker = OPTIONAL_MARKER if optional else ""
        refs = self.pull_link(number)
        if author:
            refs += f", {author_reference(author)}"
        text = description.rstrip()
        if text.endswith("."):
            text = text[:-1]
        return f"{BULLET_PREFIX}{marker}{text}. ({refs})"

    @staticmethod
    def parse_heading(line: str) -> str | None:
        """Return the upper-cased heading text of a ``###`` line, else None."""
        stripped = line.strip()
        if not stripped.startswith(HEADING_PREFIX):
            return None
        return stripped[len(HEADING_PREFIX) :].strip().upper()

    def parse_bullet(self, line: str) -> ParsedBullet | None:
        """Parse a bullet carrying a canonical pull link, or return None."""
        stripped = line.strip()
        if not stripped.startswith(BULLET_PREFIX):
            return None
        match = self._link_re.search(stripped)
        if match is None:
            return None
        description = stripped[len(BULLET_PREFIX) : match.start()].strip()
        optional = description.startswith(OPTIONAL_MARKER.strip())
        if optional:
            description = description[len(OPTIONAL_MARKER.strip()) :].strip()
        if description.endswith("."):
            description = description[:-1].rstrip()
        if not description:
            return None
        return ParsedBullet(number=int(match.group("number")), description=description, optional=optional)
