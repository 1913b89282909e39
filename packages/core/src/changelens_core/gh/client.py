"""Source-control access used by the ledger and the collector.

The pipeline depends on SourceControlClient only. GitHubSourceControl is the
production adapter on top of PyGithub; tests substitute an in-memory double.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone

from github import Auth, Github, GithubException

from changelens_core.errors import PlatformAccessError
from changelens_core.models import ChangeRecord

logger = logging.getLogger(__name__)

PER_PAGE = 100


class SourceControlClient(ABC):
    """The six read-only calls the pipeline makes against the platform.

    Implementations raise PlatformAccessError on any failure.
    """

    @abstractmethod
    def list_directory(self, path: str) -> list[str]:
        """Return the entry names of a repository directory."""

    @abstractmethod
    def get_file_text(self, path: str) -> str:
        """Return the decoded text of a repository file."""

    @abstractmethod
    def get_tag_commit(self, tag: str) -> str:
        """Return the SHA of the commit a tag points at."""

    @abstractmethod
    def get_commit_time(self, sha: str) -> datetime:
        """Return the committer timestamp of a commit."""

    @abstractmethod
    def list_closed_pulls(self, branch: str, page: int) -> tuple[list[ChangeRecord], int | None]:
        """Return one page of closed pulls on ``branch``, most recently updated first.

        The second element is the next page number, or None after the last page.
        """

    @abstractmethod
    def get_pull(self, number: int) -> ChangeRecord:
        """Return a single pull request."""


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_change_record(pull) -> ChangeRecord:
    """Convert a PyGithub PullRequest into a ChangeRecord."""
    return ChangeRecord(
        number=pull.number,
        title=pull.title or "",
        body=pull.body or "",
        author=pull.user.login if pull.user is not None else "",
        labels=tuple(label.name for label in pull.labels),
        merged_at=_as_utc(pull.merged_at),
        updated_at=_as_utc(pull.updated_at),
    )


@contextmanager
def _github_call(what: str):
    # requests' exceptions derive from OSError, so transport failures land here too.
    try:
        yield
    except (GithubException, OSError) as e:
        raise PlatformAccessError(f"{what}: {e}") from e


class GitHubSourceControl(SourceControlClient):
    """SourceControlClient backed by the GitHub REST API."""

    def __init__(self, repo_name: str, token: str | None = None, per_page: int = PER_PAGE, repo=None):
        self.repo_name = repo_name
        self.per_page = per_page
        if repo is not None:
            self._repo = repo
            return
        gh = Github(auth=Auth.Token(token), per_page=per_page) if token else Github(per_page=per_page)
        with _github_call(f"failed to open repository {repo_name}"):
            self._repo = gh.get_repo(repo_name)

    def list_directory(self, path: str) -> list[str]:
        with _github_call(f"failed to list directory {path}"):
            contents = self._repo.get_contents(path)
        if not isinstance(contents, list):
            raise PlatformAccessError(f"{path} is a file, not a directory")
        return [c.name for c in contents]

    def get_file_text(self, path: str) -> str:
        with _github_call(f"failed to fetch {path}"):
            content = self._repo.get_contents(path)
            if isinstance(content, list):
                raise PlatformAccessError(f"{path} is a directory, not a file")
            return content.decoded_content.decode("utf-8", errors="replace")

    def get_tag_commit(self, tag: str) -> str:
        with _github_call(f"failed to get tag {tag}"):
            ref = self._repo.get_git_ref(f"tags/{tag}")
            sha = ref.object.sha
            # Annotated tags point at a tag object, not directly at the commit.
            if ref.object.type == "tag":
                sha = self._repo.get_git_tag(sha).object.sha
        return sha

    def get_commit_time(self, sha: str) -> datetime:
        with _github_call(f"failed to get commit {sha}"):
            commit = self._repo.get_commit(sha)
            return _as_utc(commit.commit.committer.date)

    def list_closed_pulls(self, branch: str, page: int) -> tuple[list[ChangeRecord], int | None]:
        with _github_call(f"failed to list closed pull requests on {branch} (page {page})"):
            pulls = self._repo.get_pulls(state="closed", base=branch, sort="updated", direction="desc")
            items = pulls.get_page(page)
            records = [to_change_record(p) for p in items]
        logger.debug("Fetched page %d of closed pulls on %s: %d record(s)", page, branch, len(records))
        next_page = page + 1 if len(records) >= self.per_page else None
        return records, next_page

    def get_pull(self, number: int) -> ChangeRecord:
        with _github_call(f"failed to fetch pull request #{number}"):
            return to_change_record(self._repo.get_pull(number))
