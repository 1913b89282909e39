"""Tests for classifier provider implementations.

Shared behaviour (_parse, _call_with_retry, classify metrics) lives in
BaseClassifier and is tested once via a lightweight stub. Provider-specific
tests cover only what differs between implementations: the SDK client setup
and _call_api.
"""

import json
import threading
from unittest.mock import MagicMock, patch

import pytest

from changelens_core.errors import OracleProtocolError, OracleUnavailableError, RunCancelled
from changelens_core.providers.anthropic import AnthropicClassifier
from changelens_core.providers.base import SYSTEM_PROMPT, ApiResult, BaseClassifier
from changelens_core.providers.openai import OpenAIClassifier

ENTRY = {
    "pr_number": 42,
    "category": "fixed",
    "description": "Fix crash when the agent restarts ",
    "include_score": 80,
    "importance_score": 40,
    "reused_from_history": True,
}
VALID_JSON = json.dumps({"changes": [ENTRY]})


class _StubClassifier(BaseClassifier):
    MODEL = "stub-model"
    PROMPT_PRICE_PER_M = 1.0
    OUTPUT_PRICE_PER_M = 2.0

    def _call_api(self, model: str, system_prompt: str, user_prompt: str) -> ApiResult:
        return ApiResult(VALID_JSON, prompt_tokens=1000, output_tokens=200)


# ---------------------------------------------------------------------------
# Shared behaviour, tested once through the stub, not per provider
# ---------------------------------------------------------------------------


class TestBaseClassifierParse:
    def test_parses_valid_json(self):
        result = _StubClassifier()._parse(VALID_JSON)
        assert len(result) == 1
        assert result[0].pr_number == 42
        assert result[0].category == "FIXED"
        assert result[0].description == "Fix crash when the agent restarts"
        assert result[0].reused_from_history is True

    def test_strips_markdown_code_fences(self):
        raw = f"```json\n{VALID_JSON}\n```"
        assert len(_StubClassifier()._parse(raw)) == 1

    def test_preserves_backticks_inside_descriptions(self):
        payload = json.dumps({"changes": [dict(ENTRY, description="Rename `foo` flag to `bar`")]})
        result = _StubClassifier()._parse(f"```json\n{payload}\n```")
        assert result[0].description == "Rename `foo` flag to `bar`"

    def test_empty_changes_list(self):
        assert _StubClassifier()._parse('{"changes": []}') == []

    def test_invalid_json_raises(self):
        with pytest.raises(OracleProtocolError, match="failed to parse"):
            _StubClassifier()._parse("not json at all")

    @pytest.mark.parametrize("raw", ["[]", '{"entries": []}', '{"changes": {}}', '"changes"'])
    def test_wrong_top_level_shape_raises(self, raw):
        with pytest.raises(OracleProtocolError):
            _StubClassifier()._parse(raw)

    def test_missing_field_raises(self):
        item = {k: v for k, v in ENTRY.items() if k != "include_score"}
        with pytest.raises(OracleProtocolError, match="include_score"):
            _StubClassifier()._parse(json.dumps({"changes": [item]}))

    @pytest.mark.parametrize("field,value", [("pr_number", "42"), ("include_score", 80.5), ("importance_score", True)])
    def test_non_integer_scores_raise(self, field, value):
        item = dict(ENTRY, **{field: value})
        with pytest.raises(OracleProtocolError, match=field):
            _StubClassifier()._parse(json.dumps({"changes": [item]}))

    @pytest.mark.parametrize(
        "field,value",
        [("include_score", 250), ("include_score", -1), ("importance_score", -40), ("importance_score", 101)],
    )
    def test_out_of_range_scores_raise(self, field, value):
        item = dict(ENTRY, **{field: value})
        with pytest.raises(OracleProtocolError, match="between 0 and 100"):
            _StubClassifier()._parse(json.dumps({"changes": [item]}))

    @pytest.mark.parametrize("value", [0, 100])
    def test_boundary_scores_accepted(self, value):
        item = dict(ENTRY, include_score=value, importance_score=value)
        entry = _StubClassifier()._parse(json.dumps({"changes": [item]}))[0]
        assert (entry.include_score, entry.importance_score) == (value, value)

    def test_reused_from_history_defaults_to_false(self):
        item = {k: v for k, v in ENTRY.items() if k != "reused_from_history"}
        assert _StubClassifier()._parse(json.dumps({"changes": [item]}))[0].reused_from_history is False


class TestBaseClassifierClassify:
    def test_returns_entries_and_details(self):
        entries, details = _StubClassifier().classify("prompt", "2.3.0")
        assert [e.pr_number for e in entries] == [42]
        assert details.version == "2.3.0"
        assert details.model == "stub-model"
        assert details.prompt_tokens == 1000
        assert details.candidates_tokens == 200
        assert details.total_tokens == 1200
        assert details.latency_seconds >= 0

    def test_cost_uses_per_million_prices(self):
        _, details = _StubClassifier().classify("prompt", "2.3.0")
        assert details.estimated_cost_usd == pytest.approx(1000 / 1e6 * 1.0 + 200 / 1e6 * 2.0)

    def test_timestamp_format(self):
        _, details = _StubClassifier().classify("prompt", "2.3.0")
        date_part, time_part = details.timestamp.split("-")
        assert len(date_part) == 8 and date_part.isdigit()
        assert len(time_part) == 6 and time_part.isdigit()

    def test_model_override_is_passed_to_api(self):
        stub = _StubClassifier()
        with patch.object(stub, "_call_api", wraps=stub._call_api) as call_api:
            _, details = stub.classify("the prompt", "2.3.0", model="other-model")
        call_api.assert_called_once_with("other-model", SYSTEM_PROMPT, "the prompt")
        assert details.model == "other-model"


class TestBaseClassifierRetry:
    def test_raises_unavailable_after_max_retries(self):
        calls = 0

        class _AlwaysFail(BaseClassifier):
            def _call_api(self, model, system_prompt, user_prompt):
                nonlocal calls
                calls += 1
                raise RuntimeError("network error")

        # Patch time.sleep so the test doesn't actually wait.
        with patch("changelens_core.providers.base.time.sleep") as sleep:
            with pytest.raises(OracleUnavailableError, match="network error"):
                _AlwaysFail().classify("prompt", "2.3.0")
        assert calls == BaseClassifier.MAX_RETRIES
        assert [c.args[0] for c in sleep.call_args_list] == [1, 2]

    def test_retries_on_transient_failure(self):
        call_count = 0

        class _FailOnceThenSucceed(BaseClassifier):
            def _call_api(self, model, system_prompt, user_prompt):
                nonlocal call_count
                call_count += 1
                if call_count == 1:
                    raise RuntimeError("transient")
                return ApiResult(VALID_JSON)

        with patch("changelens_core.providers.base.time.sleep"):
            entries, _ = _FailOnceThenSucceed().classify("prompt", "2.3.0")
        assert len(entries) == 1
        assert call_count == 2

    def test_protocol_errors_are_not_retried(self):
        call_count = 0

        class _Garbage(BaseClassifier):
            def _call_api(self, model, system_prompt, user_prompt):
                nonlocal call_count
                call_count += 1
                return ApiResult("I cannot help with that")

        with patch("changelens_core.providers.base.time.sleep"):
            with pytest.raises(OracleProtocolError):
                _Garbage().classify("prompt", "2.3.0")
        assert call_count == 1


class TestBaseClassifierCancellation:
    def test_already_cancelled_makes_no_call(self):
        cancel = threading.Event()
        cancel.set()
        stub = _StubClassifier()
        with patch.object(stub, "_call_api") as call_api:
            with pytest.raises(RunCancelled):
                stub.classify("prompt", "2.3.0", cancel=cancel)
        call_api.assert_not_called()

    def test_cancel_during_failing_call_stops_retries(self):
        cancel = threading.Event()
        calls = 0

        class _CancelledMidCall(BaseClassifier):
            def _call_api(self, model, system_prompt, user_prompt):
                nonlocal calls
                calls += 1
                cancel.set()
                raise RuntimeError("connection reset")

        with patch("changelens_core.providers.base.time.sleep") as sleep:
            with pytest.raises(RunCancelled):
                _CancelledMidCall().classify("prompt", "2.3.0", cancel=cancel)
        assert calls == 1
        sleep.assert_not_called()

    def test_cancel_during_backoff_stops_retries(self):
        cancel = MagicMock(spec=threading.Event)
        cancel.is_set.return_value = False
        cancel.wait.return_value = True  # the event fired while waiting
        calls = 0

        class _AlwaysFail(BaseClassifier):
            def _call_api(self, model, system_prompt, user_prompt):
                nonlocal calls
                calls += 1
                raise RuntimeError("503")

        with pytest.raises(RunCancelled, match="waiting to retry"):
            _AlwaysFail().classify("prompt", "2.3.0", cancel=cancel)
        assert calls == 1
        cancel.wait.assert_called_once_with(1)

    def test_backoff_waits_on_event_instead_of_sleeping(self):
        cancel = MagicMock(spec=threading.Event)
        cancel.is_set.return_value = False
        cancel.wait.return_value = False
        call_count = 0

        class _FailOnceThenSucceed(BaseClassifier):
            def _call_api(self, model, system_prompt, user_prompt):
                nonlocal call_count
                call_count += 1
                if call_count == 1:
                    raise RuntimeError("transient")
                return ApiResult(VALID_JSON)

        with patch("changelens_core.providers.base.time.sleep") as sleep:
            entries, _ = _FailOnceThenSucceed().classify("prompt", "2.3.0", cancel=cancel)
        assert len(entries) == 1
        sleep.assert_not_called()
        cancel.wait.assert_called_once_with(1)


# ---------------------------------------------------------------------------
# Provider-specific: only what differs between Anthropic and OpenAI
# ---------------------------------------------------------------------------


class TestAnthropicClassifier:
    def test_raises_import_error_without_sdk(self):
        with patch.dict("sys.modules", {"anthropic": None}):
            with pytest.raises(ImportError, match="changelens\\[anthropic\\]"):
                AnthropicClassifier(api_key="key")

    def test_model_is_claude(self):
        assert "claude" in AnthropicClassifier.MODEL

    def test_temperature_is_set(self):
        assert AnthropicClassifier.TEMPERATURE == 0.2

    def test_call_api_joins_text_blocks_and_reads_usage(self):
        from anthropic.types import TextBlock

        classifier = AnthropicClassifier(api_key="key")
        classifier.client = MagicMock()
        response = classifier.client.messages.create.return_value
        response.content = [TextBlock(type="text", text=VALID_JSON)]
        response.usage.input_tokens = 321
        response.usage.output_tokens = 12

        result = classifier._call_api("claude-x", "system", "user")

        assert result == ApiResult(VALID_JSON, 321, 12)
        kwargs = classifier.client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-x"
        assert kwargs["system"] == "system"
        assert kwargs["messages"] == [{"role": "user", "content": "user"}]


class TestOpenAIClassifier:
    def test_raises_import_error_without_sdk(self):
        import changelens_core.providers.openai as openai_mod

        real_openai = openai_mod._OpenAI
        openai_mod._OpenAI = None
        try:
            with pytest.raises(ImportError, match="changelens\\[openai\\]"):
                OpenAIClassifier(api_key="key")
        finally:
            openai_mod._OpenAI = real_openai

    def test_model_is_gpt(self):
        assert "gpt" in OpenAIClassifier.MODEL

    def test_temperature_is_set(self):
        assert OpenAIClassifier.TEMPERATURE == 0.2

    def test_call_api_requests_json_and_reads_usage(self):
        classifier = OpenAIClassifier(api_key="key")
        classifier.client = MagicMock()
        response = classifier.client.chat.completions.create.return_value
        response.choices[0].message.content = VALID_JSON
        response.usage.prompt_tokens = 500
        response.usage.completion_tokens = 50

        result = classifier._call_api("gpt-x", "system", "user")

        assert result == ApiResult(VALID_JSON, 500, 50)
        kwargs = classifier.client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][0] == {"role": "system", "content": "system"}
