"""Shared fixtures: an in-memory SourceControlClient and a scripted oracle."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from changelens_core.errors import PlatformAccessError
from changelens_core.gh.client import SourceControlClient
from changelens_core.models import ChangeRecord, ModelDetails
from changelens_core.providers.base import ChangelogOracle

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


class FakeSourceControl(SourceControlClient):
    """Serves files, tags and pulls from dicts; records every call.

    ``pulls`` maps a branch to its closed pulls, already sorted by update
    time newest first, served ``per_page`` at a time.
    """

    def __init__(self, files=None, tags=None, commits=None, pulls=None, originals=None, per_page=2):
        self.files = files or {}
        self.tags = tags or {}
        self.commits = commits or {}
        self.pulls = pulls or {}
        self.originals = originals or {}
        self.per_page = per_page
        self.calls: list[tuple] = []

    def list_directory(self, path):
        self.calls.append(("list_directory", path))
        prefix = path.rstrip("/") + "/"
        names = [p[len(prefix) :] for p in self.files if p.startswith(prefix)]
        if not names:
            raise PlatformAccessError(f"no such directory: {path}")
        return names

    def get_file_text(self, path):
        self.calls.append(("get_file_text", path))
        if path not in self.files:
            raise PlatformAccessError(f"no such file: {path}")
        return self.files[path]

    def get_tag_commit(self, tag):
        self.calls.append(("get_tag_commit", tag))
        if tag not in self.tags:
            raise PlatformAccessError(f"no such tag: {tag}")
        return self.tags[tag]

    def get_commit_time(self, sha):
        self.calls.append(("get_commit_time", sha))
        if sha not in self.commits:
            raise PlatformAccessError(f"no such commit: {sha}")
        return self.commits[sha]

    def list_closed_pulls(self, branch, page):
        self.calls.append(("list_closed_pulls", branch, page))
        records = self.pulls.get(branch, [])
        start = page * self.per_page
        chunk = records[start : start + self.per_page]
        next_page = page + 1 if start + self.per_page < len(records) else None
        return chunk, next_page

    def get_pull(self, number):
        self.calls.append(("get_pull", number))
        if number not in self.originals:
            raise PlatformAccessError(f"no such pull request: #{number}")
        return self.originals[number]

    def pages_fetched(self, branch):
        return [c[2] for c in self.calls if c[0] == "list_closed_pulls" and c[1] == branch]


class ScriptedOracle(ChangelogOracle):
    """Returns a fixed list of entries and remembers the prompt it was given.

    ``during_call`` runs inside classify(), e.g. to set the cancel event while
    the model is "thinking".
    """

    def __init__(self, entries, during_call=None):
        self.entries = entries
        self.during_call = during_call
        self.calls: list[tuple] = []
        self.cancel_events: list = []

    def classify(self, prompt, release, model=None, cancel=None):
        self.calls.append((prompt, release, model))
        self.cancel_events.append(cancel)
        if self.during_call is not None:
            self.during_call()
        details = ModelDetails(
            version=release,
            timestamp="20250301-120000",
            model=model or "scripted",
            latency_seconds=0.5,
            prompt_tokens=100,
            candidates_tokens=20,
            total_tokens=120,
            estimated_cost_usd=0.001,
        )
        return list(self.entries), details


def make_pull(number, merged_hours=None, updated_hours=None, author="alice", labels=(), title=None, body=""):
    """Build a ChangeRecord with times expressed as hours after T0."""
    merged_at = T0 + timedelta(hours=merged_hours) if merged_hours is not None else None
    if updated_hours is None:
        updated_hours = merged_hours if merged_hours is not None else 0
    return ChangeRecord(
        number=number,
        title=title or f"PR {number}",
        body=body,
        author=author,
        labels=tuple(labels),
        merged_at=merged_at,
        updated_at=T0 + timedelta(hours=updated_hours),
    )


@pytest.fixture
def fake_client():
    return FakeSourceControl


@pytest.fixture
def scripted_oracle():
    return ScriptedOracle


@pytest.fixture
def pull():
    return make_pull


@pytest.fixture
def t0():
    return T0
