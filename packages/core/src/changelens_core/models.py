"""Data carried between pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from changelens_core.errors import OracleProtocolError

CATEGORIES = ("ADDED", "CHANGED", "FIXED")

# include_score thresholds: below EXCLUDE the entry is dropped, below OPTIONAL
# it is rendered with the optional marker.
EXCLUDE_BELOW = 25
OPTIONAL_BELOW = 50


@dataclass(frozen=True)
class ChangeRecord:
    """A pull request collected for the release window."""

    number: int
    title: str
    body: str
    author: str
    labels: tuple[str, ...] = ()
    merged_at: datetime | None = None  # None = closed without merging
    updated_at: datetime | None = None

    def has_label(self, label: str) -> bool:
        return label in self.labels


@dataclass(frozen=True)
class HistoricalEntry:
    """Wording and category used for a PR in an earlier changelog."""

    description: str
    category: str


@dataclass
class ChangeEntry:
    """One classifier verdict. ``author`` is filled in after the model call."""

    pr_number: int
    category: str
    description: str
    include_score: int
    importance_score: int
    reused_from_history: bool = False
    author: str = ""

    @property
    def optional(self) -> bool:
        return EXCLUDE_BELOW <= self.include_score < OPTIONAL_BELOW

    @classmethod
    def from_dict(cls, data: dict) -> ChangeEntry:
        """Build an entry from one element of the model's ``changes`` array."""
        if not isinstance(data, dict):
            raise OracleProtocolError(f"change entry must be an object, got {type(data).__name__}")
        try:
            pr_number = data["pr_number"]
            category = data["category"]
            description = data["description"]
            include_score = data["include_score"]
            importance_score = data["importance_score"]
        except KeyError as e:
            raise OracleProtocolError(f"change entry is missing field {e.args[0]!r}: {data}") from e

        for name, value in (
            ("pr_number", pr_number),
            ("include_score", include_score),
            ("importance_score", importance_score),
        ):
            # bool is an int subclass; the model returning true/false here is a shape error.
            if isinstance(value, bool) or not isinstance(value, int):
                raise OracleProtocolError(f"change entry field {name!r} must be an integer, got {value!r}")
            if name != "pr_number" and not 0 <= value <= 100:
                raise OracleProtocolError(f"change entry field {name!r} must be between 0 and 100, got {value!r}")
        if not isinstance(category, str) or not isinstance(description, str):
            raise OracleProtocolError(f"change entry category/description must be strings: {data}")

        return cls(
            pr_number=pr_number,
            category=category.strip().upper(),
            description=description.strip(),
            include_score=include_score,
            importance_score=importance_score,
            reused_from_history=bool(data.get("reused_from_history", False)),
        )

    def to_dict(self) -> dict:
        return {
            "pr_number": self.pr_number,
            "category": self.category,
            "description": self.description,
            "include_score": self.include_score,
            "importance_score": self.importance_score,
            "reused_from_history": self.reused_from_history,
        }


@dataclass
class ModelDetails:
    """Metrics for a single classifier invocation."""

    version: str
    timestamp: str
    model: str
    latency_seconds: float
    prompt_tokens: int = 0
    candidates_tokens: int = 0
    total_tokens: int = 0
    estimated_cost_usd: float = 0.0

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "timestamp": self.timestamp,
            "model": self.model,
            "latency_seconds": self.latency_seconds,
            "prompt_tokens": self.prompt_tokens,
            "candidates_tokens": self.candidates_tokens,
            "total_tokens": self.total_tokens,
            "estimated_cost_usd": self.estimated_cost_usd,
        }


@dataclass
class Prompt:
    text: str
    version: str
    timestamp: str


@dataclass
class GenerationResult:
    """Everything a run produced. The CLI decides what to write and where."""

    changelog: str
    prompt: Prompt
    entries: list[ChangeEntry] = field(default_factory=list)
    details: ModelDetails | None = None
    record_count: int = 0
    ledger_size: int = 0
