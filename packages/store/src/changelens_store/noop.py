"""No-op store, the default when no store is configured."""

from __future__ import annotations

from typing import TYPE_CHECKING

from changelens_store.base import BaseStore

if TYPE_CHECKING:
    from changelens_store.models import RunArtifacts


class NoOpStore(BaseStore):
    """Discards all artifacts; only the changelog itself is written."""

    def save(self, artifacts: RunArtifacts) -> list[str]:
        return []
