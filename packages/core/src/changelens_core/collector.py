"""Pull request collection for a release window."""

from __future__ import annotations

import dataclasses
import logging
import re
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime

from changelens_core.errors import PlatformAccessError, raise_if_cancelled
from changelens_core.gh.client import SourceControlClient
from changelens_core.models import ChangeRecord
from changelens_core.version import Version

logger = logging.getLogger(__name__)

_PR_REFERENCE_RE = re.compile(r"#(\d+)")

DEFAULT_IGNORED_AUTHORS = frozenset({"renovate[bot]", "dependabot", "dependabot[bot]", "antrea-bot"})


@dataclass(frozen=True)
class CollectionPolicy:
    """Labels and identities that steer collection. Built once from config."""

    release_note_label: str = "action/release-note"
    cherry_pick_label: str = "kind/cherry-pick"
    ignored_authors: frozenset[str] = field(default_factory=lambda: DEFAULT_IGNORED_AUTHORS)
    tag_prefix: str = "v"


def filter_automation_authors(records: Iterable[ChangeRecord], ignored_authors: frozenset[str]) -> list[ChangeRecord]:
    """Drop records whose author exactly matches a blocked automation identity."""
    return [r for r in records if r.author not in ignored_authors]


def deduplicate(records: Iterable[ChangeRecord]) -> list[ChangeRecord]:
    """Keep the first record seen for each PR number, preserving order."""
    seen: dict[int, ChangeRecord] = {}
    for record in records:
        seen.setdefault(record.number, record)
    return list(seen.values())


def order_by_merge_time(records: Iterable[ChangeRecord]) -> list[ChangeRecord]:
    return sorted(records, key=lambda r: r.merged_at)


class PullRequestCollector:
    """Fetches, resolves and normalises the pull requests of one release."""

    def __init__(
        self,
        client: SourceControlClient,
        policy: CollectionPolicy | None = None,
        cancel: threading.Event | None = None,
    ):
        self.client = client
        self.policy = policy or CollectionPolicy()
        self.cancel = cancel

    def resolve_window_start(self, previous: Version) -> datetime:
        """Timestamp of the commit tagged for ``previous``: the exclusive window start."""
        tag = f"{self.policy.tag_prefix}{previous}"
        raise_if_cancelled(self.cancel, f"resolving tag {tag}")
        sha = self.client.get_tag_commit(tag)
        raise_if_cancelled(self.cancel, f"fetching commit {sha}")
        return self.client.get_commit_time(sha)

    def iter_closed_pulls(self, branch: str) -> Iterator[ChangeRecord]:
        """Lazily walk closed pulls on ``branch``, one page per request.

        Early termination by the consumer relies on the listing being sorted
        by update time, newest first; a record updated later than its
        predecessor means that assumption no longer holds.
        """
        page: int | None = 0
        last_updated: datetime | None = None
        while page is not None:
            raise_if_cancelled(self.cancel, f"listing pull requests on {branch} (page {page})")
            records, page = self.client.list_closed_pulls(branch, page)
            for record in records:
                if record.updated_at is not None:
                    if last_updated is not None and record.updated_at > last_updated:
                        raise PlatformAccessError(
                            f"pull requests on {branch} are not sorted by update time: "
                            f"#{record.number} updated {record.updated_at.isoformat()} "
                            f"after a record updated {last_updated.isoformat()}"
                        )
                    last_updated = record.updated_at
                yield record

    def _iter_window(self, branch: str, since: datetime) -> Iterator[ChangeRecord]:
        for record in self.iter_closed_pulls(branch):
            if record.merged_at is None:
                continue
            if record.merged_at <= since:
                # Everything further down the listing was updated even earlier.
                return
            yield record

    def fetch_labeled(self, branch: str, since: datetime, label: str) -> list[ChangeRecord]:
        return [r for r in self._iter_window(branch, since) if r.has_label(label)]

    def fetch_all(self, branch: str, since: datetime) -> list[ChangeRecord]:
        # Cherry-picks are resolved to their originals separately.
        return [r for r in self._iter_window(branch, since) if not r.has_label(self.policy.cherry_pick_label)]

    def resolve_cherry_picks(self, branch: str, since: datetime) -> list[ChangeRecord]:
        """Re-emit the originals of cherry-picks merged in the window.

        The original keeps its title, body and author but takes the
        cherry-pick's merge time, which is what places it in this release.
        """
        resolved = []
        for pick in self._iter_window(branch, since):
            if not pick.has_label(self.policy.cherry_pick_label):
                continue
            numbers = list(dict.fromkeys(int(n) for n in _PR_REFERENCE_RE.findall(pick.body)))
            for number in numbers:
                if number == pick.number:
                    continue
                raise_if_cancelled(self.cancel, f"fetching original pull request #{number}")
                original = self.client.get_pull(number)
                logger.debug("Cherry-pick #%d resolves to original #%d", pick.number, number)
                resolved.append(dataclasses.replace(original, merged_at=pick.merged_at))
        return resolved

    def collect(self, version: Version, branch: str, since: datetime, broad: bool = False) -> list[ChangeRecord]:
        """Gather the release's records: unique, human-authored, oldest merge first."""
        records: list[ChangeRecord] = []
        if broad:
            logger.info("Fetching all merged pull requests on %s", branch)
            records.extend(self.fetch_all(branch, since))
        else:
            label = self.policy.release_note_label
            logger.info("Fetching pull requests on %s labeled %s", branch, label)
            records.extend(self.fetch_labeled(branch, since, label))

        if version.patch != 0:
            picks = self.resolve_cherry_picks(branch, since)
            logger.info("Resolved %d cherry-picked pull request(s)", len(picks))
            records.extend(picks)

        human = filter_automation_authors(records, self.policy.ignored_authors)
        if len(human) != len(records):
            logger.info("Dropped %d bot-authored pull request(s)", len(records) - len(human))
        return order_by_merge_time(deduplicate(human))
