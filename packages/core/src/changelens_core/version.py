"""Release version parsing and lineage helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass

from changelens_core.errors import VersionFormatError

_COMPONENT_RE = re.compile(r"^\d+$")

MAINLINE_BRANCH = "main"
RELEASE_BRANCH_FORMAT = "release-{major}.{minor}"


@dataclass(frozen=True, order=True)
class Version:
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    @property
    def is_minor_release(self) -> bool:
        return self.patch == 0


def parse_version(version_str: str) -> Version:
    """Parse ``X.Y.Z`` (an optional leading ``v`` is accepted, as in tag names)."""
    if not isinstance(version_str, str):
        raise VersionFormatError(f"invalid version {version_str!r}: expected a string")
    text = version_str.strip()
    if text.startswith("v"):
        text = text[1:]
    parts = text.split(".")
    if len(parts) != 3 or not all(_COMPONENT_RE.match(p) for p in parts):
        raise VersionFormatError(f"invalid version {version_str!r}: expected MAJOR.MINOR.PATCH")
    major, minor, patch = (int(p) for p in parts)
    return Version(major, minor, patch)


def previous_release(version: Version) -> Version:
    """Return the release that precedes ``version`` in its lineage.

    ``X.0.0`` maps to itself: the first release of a major line has no
    earlier minor to diff against.
    """
    if version.patch > 0:
        return Version(version.major, version.minor, version.patch - 1)
    if version.minor > 0:
        return Version(version.major, version.minor - 1, 0)
    return Version(version.major, 0, 0)


def release_branch(
    version: Version,
    mainline: str = MAINLINE_BRANCH,
    branch_format: str = RELEASE_BRANCH_FORMAT,
) -> str:
    """Minor releases are cut from mainline; patch releases from their release branch."""
    if version.patch == 0:
        return mainline
    return branch_format.format(major=version.major, minor=version.minor)
