"""GitHub token resolution.

Lookup order, first hit wins:
  1. GITHUB_TOKEN in the environment (CI, or an explicit override)
  2. the token of an existing GitHub CLI session (`gh auth token`)

Release managers usually have `gh` logged in already, so the second source
saves them from minting a personal access token just to read PR metadata.
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

_GH_TIMEOUT_SECONDS = 5


def _token_from_gh_cli() -> str | None:
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=_GH_TIMEOUT_SECONDS,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.debug("gh CLI token lookup unavailable: %s", e)
        return None
    if result.returncode != 0:
        logger.debug("gh auth token exited with %d", result.returncode)
        return None
    return result.stdout.strip() or None


def resolve_github_token() -> str | None:
    """Return a GitHub token, or None when neither source has one.

    None is not fatal: public repositories can be read anonymously, at a much
    lower rate limit.
    """
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token
    token = _token_from_gh_cli()
    if token:
        logger.debug("Resolved GitHub token via gh CLI session.")
    return token
