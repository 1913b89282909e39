"""Run artifact data model.

Decoupled from changelens_core so the store layer can be used independently
and changelens_core has no knowledge of persistence concerns.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class RunArtifacts:
    """Diagnostic output of one generation run.

    Built by the CLI layer from a GenerationResult before calling store.save().
    """

    version: str
    timestamp: str  # YYYYMMDD-HHMMSS, shared by every file of the run
    model: str
    prompt: str
    model_output: dict = field(default_factory=dict)  # {"changes": [...]} as returned by the model
    model_details: dict = field(default_factory=dict)
