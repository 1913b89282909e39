"""Exception hierarchy for the changelog pipeline.

Every stage is all-or-nothing: any of these aborts the run. The generator
tags the raised error with the stage it came from so the CLI can say where
the run failed without parsing messages.
"""

from __future__ import annotations

import threading


class ChangelogError(Exception):
    """Base class for all pipeline failures."""

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.stage = stage

    def __str__(self) -> str:
        message = super().__str__()
        if self.stage:
            return f"[{self.stage}] {message}"
        return message


class VersionFormatError(ChangelogError, ValueError):
    """A version string is not three dot-separated non-negative integers."""


class ConfigurationError(ChangelogError):
    """A required input is missing or malformed (e.g. the model identifier)."""


class PlatformAccessError(ChangelogError):
    """The source-control platform could not serve a request."""


class OracleProtocolError(ChangelogError):
    """The classifier response could not be decoded into change entries."""


class OracleUnavailableError(ChangelogError):
    """The classifier could not be reached after all retries."""


class OutputWriteError(ChangelogError, OSError):
    """The rendered changelog could not be written."""


class RunCancelled(ChangelogError):
    """The caller cancelled the run before it finished."""


def raise_if_cancelled(cancel: threading.Event | None, before: str) -> None:
    """Checked before every blocking call; partial results are simply dropped."""
    if cancel is not None and cancel.is_set():
        raise RunCancelled(f"cancelled before {before}")
