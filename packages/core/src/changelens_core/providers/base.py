"""Classifier providers implementing the Template Method pattern.

All providers share the same classification algorithm:
    classify() → _call_with_retry() → _call_api()   ← only this differs per provider
               → _parse() → ModelDetails

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text plus token usage

The changelog pipeline depends on ChangelogOracle alone, so tests can pass any
object with a matching classify() and never import an SDK.
"""

from __future__ import annotations

import json
import logging
import re
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from changelens_core.errors import OracleProtocolError, OracleUnavailableError, RunCancelled, raise_if_cancelled
from changelens_core.models import ChangeEntry, ModelDetails

logger = logging.getLogger(__name__)

# Shared defaults; subclasses may override as class attributes if needed.
_MAX_RETRIES = 3
_MAX_TOKENS = 16384

TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"

SYSTEM_PROMPT = (
    "You are a meticulous release manager writing a project CHANGELOG. "
    "Follow the instructions in the user message exactly and answer with JSON only."
)


@dataclass
class ApiResult:
    text: str
    prompt_tokens: int = 0
    output_tokens: int = 0


class ChangelogOracle(ABC):
    """Anything that turns a prompt into change entries plus invocation metrics."""

    @abstractmethod
    def classify(
        self,
        prompt: str,
        release: str,
        model: str | None = None,
        cancel: threading.Event | None = None,
    ) -> tuple[list[ChangeEntry], ModelDetails]:
        """Classify every pull request in ``prompt``.

        Raises OracleProtocolError when the response cannot be decoded and
        RunCancelled once ``cancel`` is set.
        """


class BaseClassifier(ChangelogOracle):
    MODEL: str = ""
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS
    # USD per million tokens, used for the cost estimate in ModelDetails.
    PROMPT_PRICE_PER_M: float = 0.0
    OUTPUT_PRICE_PER_M: float = 0.0

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def classify(
        self,
        prompt: str,
        release: str,
        model: str | None = None,
        cancel: threading.Event | None = None,
    ) -> tuple[list[ChangeEntry], ModelDetails]:
        model_name = model or self.MODEL
        start = time.monotonic()
        result = self._call_with_retry(model_name, SYSTEM_PROMPT, prompt, cancel)
        latency = time.monotonic() - start

        entries = self._parse(result.text)
        details = ModelDetails(
            version=release,
            timestamp=datetime.now().strftime(TIMESTAMP_FORMAT),
            model=model_name,
            latency_seconds=latency,
            prompt_tokens=result.prompt_tokens,
            candidates_tokens=result.output_tokens,
            total_tokens=result.prompt_tokens + result.output_tokens,
            estimated_cost_usd=self.estimate_cost(result.prompt_tokens, result.output_tokens),
        )
        return entries, details

    def estimate_cost(self, prompt_tokens: int, output_tokens: int) -> float:
        return (
            prompt_tokens / 1_000_000 * self.PROMPT_PRICE_PER_M + output_tokens / 1_000_000 * self.OUTPUT_PRICE_PER_M
        )

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, model: str, system_prompt: str, user_prompt: str) -> ApiResult:
        """Make a single API call and return the raw text response with usage.

        Should raise on failure; _call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _call_with_retry(
        self,
        model: str,
        system_prompt: str,
        user_prompt: str,
        cancel: threading.Event | None = None,
    ) -> ApiResult:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff.

        The last failure is raised as OracleUnavailableError; there is no
        changelog without the model's answer. A set ``cancel`` event stops
        the loop before the next attempt and cuts the backoff short.
        """
        name = self.__class__.__name__
        for attempt in range(self.MAX_RETRIES):
            raise_if_cancelled(cancel, f"{name} API call (attempt {attempt + 1}/{self.MAX_RETRIES})")
            try:
                return self._call_api(model, system_prompt, user_prompt)
            except Exception as e:
                if cancel is not None and cancel.is_set():
                    raise RunCancelled(f"cancelled during {name} API call: {e}") from e
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempts: %s",
                        name,
                        self.MAX_RETRIES,
                        e,
                    )
                    raise OracleUnavailableError(
                        f"{name} API failed after {self.MAX_RETRIES} attempts: {e}"
                    ) from e
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    name,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                if cancel is None:
                    time.sleep(delay)
                elif cancel.wait(delay):
                    raise RunCancelled(f"cancelled while waiting to retry {name} API call") from e
        raise RuntimeError("MAX_RETRIES must be at least 1")

    def _parse(self, raw: str) -> list[ChangeEntry]:
        """Decode ``{"changes": [...]}`` into ChangeEntry objects.

        Only the outer ```json fence is stripped; backticks inside descriptions
        are left alone.
        """
        cleaned = re.sub(r"^```(?:json)?\s*", "", (raw or "").strip())
        cleaned = re.sub(r"\s*```$", "", cleaned.strip())
        try:
            payload = json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise OracleProtocolError(
                f"{self.__class__.__name__}: failed to parse model response as JSON: {e}; response: {raw[:200]!r}"
            ) from e
        if not isinstance(payload, dict) or not isinstance(payload.get("changes"), list):
            raise OracleProtocolError(
                f"{self.__class__.__name__}: expected an object with a 'changes' list, got {cleaned[:200]!r}"
            )
        return [ChangeEntry.from_dict(item) for item in payload["changes"]]
