"""Abstract store interface.

A backend decides where the prompt, raw model output and invocation metrics
of a run end up. The CLI depends on BaseStore, not on a concrete backend,
so backends are swappable without touching CLI code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from changelens_store.models import RunArtifacts


class BaseStore(ABC):
    """Pluggable persistence layer for run artifacts."""

    @abstractmethod
    def save(self, artifacts: RunArtifacts) -> list[str]:
        """Persist the artifacts of one run and return where they went.

        Raises OSError when they cannot be written.
        """

    def close(self) -> None:
        """Release any resources held by the store.

        Default is a no-op so callers can always call close() safely.
        """
