"""DirectoryStore: run artifacts as plain files next to the changelog.

Each run writes three files sharing the release and a timestamp, so several
attempts at the same release sit side by side and can be diffed:

  changelog-model-prompt-<version>-<timestamp>.txt
  changelog-model-output-<version>-<timestamp>.json
  changelog-model-details-<version>-<timestamp>.json
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from changelens_store.base import BaseStore
from changelens_store.models import RunArtifacts

logger = logging.getLogger(__name__)


class DirectoryStore(BaseStore):
    def __init__(self, path: str = "."):
        self._root = Path(path)

    def _path(self, kind: str, artifacts: RunArtifacts, suffix: str) -> Path:
        return self._root / f"changelog-model-{kind}-{artifacts.version}-{artifacts.timestamp}.{suffix}"

    def save(self, artifacts: RunArtifacts) -> list[str]:
        self._root.mkdir(parents=True, exist_ok=True)
        prompt_path = self._path("prompt", artifacts, "txt")
        output_path = self._path("output", artifacts, "json")
        details_path = self._path("details", artifacts, "json")

        prompt_path.write_text(artifacts.prompt, encoding="utf-8")
        output_path.write_text(json.dumps(artifacts.model_output, indent=2) + "\n", encoding="utf-8")
        details_path.write_text(json.dumps(artifacts.model_details, indent=2) + "\n", encoding="utf-8")

        written = [str(prompt_path), str(output_path), str(details_path)]
        logger.debug("Saved run artifacts: %s", ", ".join(written))
        return written
